# farmdist/couriers.py
from __future__ import annotations

import sqlalchemy as sa
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import or_

from .errors import Conflict, Forbidden, InvalidArgument, NotFound
from .extensions import db
from .models import Courier, ShipmentProcess
from .utils.db import atomic
from .utils.guards import account_required
from .utils.parsers import clean_str, iso
from .utils.passwords import hash_password, require_strong_password

couriers_bp = Blueprint("couriers", __name__, url_prefix="/pengirim")

_EDITABLE = ("name", "address", "vehicle_plate", "vehicle_type", "vehicle_color")


def courier_to_dict(c: Courier) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "email": c.email,
        "phone": c.phone,
        "address": c.address,
        "vehicle_plate": c.vehicle_plate,
        "vehicle_type": c.vehicle_type,
        "vehicle_color": c.vehicle_color,
        "farm_id": c.farm_id,
        "role": c.role,
        "created_at": iso(c.created_at),
    }


def _contact_taken(email: str | None, phone: str | None, exclude_id: int | None = None) -> bool:
    conds = []
    if email:
        conds.append(Courier.email == email)
    if phone:
        conds.append(Courier.phone == phone)
    if not conds:
        return False
    q = Courier.query.filter(or_(*conds))
    if exclude_id is not None:
        q = q.filter(Courier.id != exclude_id)
    return q.first() is not None


def _courier_of_my_farm(courier_id: int) -> Courier:
    courier = db.session.get(Courier, courier_id)
    if courier is None:
        raise NotFound("Courier not found")
    farm = current_user.owned_farm()
    if not current_user.is_admin and (farm is None or courier.farm_id != farm.id):
        raise Forbidden("This courier does not belong to your farm.")
    return courier


# =========================================================
# Create
# =========================================================
@couriers_bp.route("", methods=["POST"])
@account_required
def create_courier():
    farm = current_user.require_farm()
    data = request.get_json(silent=True) or {}

    name = clean_str(data.get("name"))
    email = (clean_str(data.get("email")) or "").lower()
    phone = clean_str(data.get("phone"))
    password = data.get("password") or ""
    if not name or not email or not phone or not password:
        raise InvalidArgument("name, email, phone and password are required.")

    require_strong_password(password)

    if _contact_taken(email, phone):
        raise Conflict("A courier with this email or phone number already exists.")

    courier = Courier(
        name=name,
        email=email,
        phone=phone,
        farm_id=farm.id,
        password_hash=hash_password(password),
        role="courier",
    )
    for key in _EDITABLE[1:]:
        setattr(courier, key, clean_str(data.get(key)))

    with atomic("Create courier"):
        db.session.add(courier)

    current_app.logger.info("Courier %s added to farm %s", courier.id, farm.id)
    return jsonify({"message": "Pengirim created successfully", "data": courier_to_dict(courier)}), 201


# =========================================================
# Read
# =========================================================
@couriers_bp.route("/farm/<int:farm_id>", methods=["GET"])
@account_required
def list_for_farm(farm_id: int):
    farm = current_user.owned_farm()
    if not current_user.is_admin and (farm is None or farm.id != farm_id):
        raise Forbidden("You can only list the couriers of your own farm.")
    rows = Courier.query.filter_by(farm_id=farm_id).order_by(Courier.id).all()
    return jsonify([courier_to_dict(c) for c in rows]), 200


@couriers_bp.route("/<int:courier_id>", methods=["GET"])
@account_required
def get_courier(courier_id: int):
    return jsonify(courier_to_dict(_courier_of_my_farm(courier_id))), 200


# =========================================================
# Update / delete
# =========================================================
@couriers_bp.route("/<int:courier_id>", methods=["PUT"])
@account_required
def update_courier(courier_id: int):
    courier = _courier_of_my_farm(courier_id)
    data = request.get_json(silent=True) or {}

    email = (clean_str(data.get("email")) or "").lower() or None
    phone = clean_str(data.get("phone"))
    if _contact_taken(email, phone, exclude_id=courier.id):
        raise Conflict("A courier with this email or phone number already exists.")

    changes = {key: clean_str(data.get(key)) for key in _EDITABLE}
    changes["email"] = email
    changes["phone"] = phone
    changes = {k: v for k, v in changes.items() if v is not None}

    password = data.get("password")
    if password:
        require_strong_password(password)
        changes["password_hash"] = hash_password(password)

    if not changes:
        raise InvalidArgument("No fields to update.")

    with atomic("Update courier"):
        for attr, value in changes.items():
            setattr(courier, attr, value)

    current_app.logger.info("Courier %s updated: %s", courier.id, ", ".join(sorted(changes)))
    return jsonify({"message": "Pengirim updated successfully", "data": courier_to_dict(courier)}), 200


@couriers_bp.route("/<int:courier_id>", methods=["DELETE"])
@account_required
def delete_courier(courier_id: int):
    courier = _courier_of_my_farm(courier_id)

    with atomic("Delete courier"):
        db.session.execute(
            sa.update(ShipmentProcess)
            .where(ShipmentProcess.courier_id == courier.id)
            .values(courier_id=None)
            .execution_options(synchronize_session="fetch")
        )
        db.session.delete(courier)

    current_app.logger.info("Courier %s deleted", courier_id)
    return jsonify({"message": "Pengirim deleted successfully", "id": courier_id}), 200
