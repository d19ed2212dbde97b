# farmdist/accounts.py
"""
Account administration (akun) and the caller's own address.

Admins list, add, edit and delete accounts. Deleting an account also removes
its address; accounts with order history or a farm are refused.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import or_

from .auth import account_to_dict
from .errors import Conflict, InvalidArgument, NotFound
from .extensions import db
from .models import Account, Address, Farm, Invoice, Order
from .utils.db import atomic
from .utils.guards import account_required, admin_required
from .utils.parsers import clean_str, parse_int, parse_point
from .utils.passwords import hash_password, require_strong_password

accounts_bp = Blueprint("accounts", __name__)

ACCOUNT_ROLES = ("buyer", "farmer", "admin")


def _account_or_404(raw_id) -> Account:
    aid = parse_int(raw_id)
    if not aid:
        raise InvalidArgument("Invalid or missing account ID.")
    acct = db.session.get(Account, aid)
    if acct is None:
        raise NotFound("Account not found")
    return acct


def _role(raw) -> str | None:
    role = (clean_str(raw) or "").lower() or None
    if role is not None and role not in ACCOUNT_ROLES:
        raise InvalidArgument(f"Invalid role. Use one of: {', '.join(ACCOUNT_ROLES)}.")
    return role


def _contact_taken(email: str | None, phone: str | None, exclude_id: int | None = None) -> bool:
    conds = []
    if email:
        conds.append(Account.email == email)
    if phone:
        conds.append(Account.phone == phone)
    if not conds:
        return False
    q = Account.query.filter(or_(*conds))
    if exclude_id is not None:
        q = q.filter(Account.id != exclude_id)
    return q.first() is not None


# =========================================================
# Admin: accounts
# =========================================================
@accounts_bp.route("/all/akun", methods=["GET"])
@admin_required
def list_accounts():
    q = Account.query
    role = _role(request.args.get("role"))
    if role:
        q = q.filter(Account.role == role)
    return jsonify([account_to_dict(a) for a in q.order_by(Account.id).all()]), 200


@accounts_bp.route("/get/akun", methods=["GET"])
@accounts_bp.route("/get/akun/", methods=["GET"])
@admin_required
def get_account():
    return jsonify(account_to_dict(_account_or_404(request.args.get("id")))), 200


@accounts_bp.route("/add/akun", methods=["POST"])
@admin_required
def add_account():
    data = request.get_json(silent=True) or {}

    name = clean_str(data.get("nama"))
    phone = clean_str(data.get("no_telp"))
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    role = _role(data.get("role")) or "buyer"

    if not name or not phone or not email or not password:
        raise InvalidArgument("nama, no_telp, email and password are required.")
    require_strong_password(password)
    if _contact_taken(email, phone):
        raise Conflict("Email or phone number is already registered.")

    acct = Account(name=name, phone=phone, email=email, role=role, password_hash=hash_password(password))
    with atomic("Add account"):
        db.session.add(acct)

    current_app.logger.info("Account %s (%s) added by admin %s", acct.id, role, current_user.subject_id)
    return jsonify({"message": "Account created successfully", "user": account_to_dict(acct)}), 201


@accounts_bp.route("/update/akun", methods=["PUT"])
@admin_required
def update_account():
    acct = _account_or_404(request.args.get("id"))
    data = request.get_json(silent=True) or {}

    changes = {
        "name": clean_str(data.get("nama")),
        "phone": clean_str(data.get("no_telp")),
        "email": (clean_str(data.get("email")) or "").lower() or None,
        "role": _role(data.get("role")),
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        raise InvalidArgument("No fields to update.")
    if _contact_taken(changes.get("email"), changes.get("phone"), exclude_id=acct.id):
        raise Conflict("Email or phone number is already registered.")

    with atomic("Update account"):
        for attr, value in changes.items():
            setattr(acct, attr, value)

    current_app.logger.info("Account %s updated by admin: %s", acct.id, ", ".join(sorted(changes)))
    return jsonify({"message": "Account updated successfully", "user": account_to_dict(acct)}), 200


@accounts_bp.route("/delete/akun", methods=["DELETE"])
@admin_required
def delete_account():
    acct = _account_or_404(request.args.get("id"))
    if acct.id == current_user.require_account().id:
        raise InvalidArgument("Admins cannot delete their own account.")
    if Invoice.query.filter_by(user_id=acct.id).first() or Order.query.filter_by(user_id=acct.id).first():
        raise Conflict("Account has order history and cannot be deleted.")
    if Farm.query.filter_by(owner_id=acct.id).first():
        raise Conflict("Account owns a farm; delete the farm first.")

    aid, address = acct.id, acct.address
    with atomic("Delete account"):
        db.session.delete(acct)
        if address is not None:
            db.session.delete(address)

    current_app.logger.info("Account %s deleted", aid)
    return jsonify({"message": "Account deleted successfully", "id": aid}), 200


# =========================================================
# Own address (alamat)
# =========================================================
def _address_fields(data) -> dict:
    fields = {k: clean_str(data.get(k)) for k in Address.FIELDS}
    return {k: v for k, v in fields.items() if v is not None}


@accounts_bp.route("/add/address", methods=["POST"])
@account_required
def add_address():
    acct = current_user.require_account()
    if acct.address is not None:
        raise Conflict("An address already exists; use /address/update.")

    data = request.get_json(silent=True) or {}
    fields = _address_fields(data)
    if not fields.get("street") or not fields.get("city"):
        raise InvalidArgument("street and city are required.")

    with atomic("Add address"):
        acct.address = Address(**fields)
        point = parse_point(data.get("location"))
        if point:
            acct.latitude, acct.longitude = point

    return jsonify({"message": "Address created successfully", "address": acct.address.to_dict()}), 201


@accounts_bp.route("/address", methods=["GET"])
@account_required
def get_address():
    acct = current_user.require_account()
    if acct.address is None:
        raise NotFound("No address found for this account.")
    body = acct.address.to_dict()
    body["location"] = [acct.longitude, acct.latitude] if acct.latitude is not None else None
    return jsonify(body), 200


@accounts_bp.route("/address/update", methods=["PUT"])
@account_required
def update_address():
    acct = current_user.require_account()
    if acct.address is None:
        raise NotFound("No address found for this account.")

    data = request.get_json(silent=True) or {}
    fields = _address_fields(data)
    point = parse_point(data.get("location"))
    if not fields and not point:
        raise InvalidArgument("No fields to update.")

    with atomic("Update address"):
        for attr, value in fields.items():
            setattr(acct.address, attr, value)
        if point:
            acct.latitude, acct.longitude = point

    return jsonify({"message": "Address updated successfully", "address": acct.address.to_dict()}), 200
