# farmdist/auth.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_

from .errors import Conflict, InvalidArgument, Unauthorized
from .extensions import db, limiter
from .models import Account, Address, Courier
from .utils.db import atomic
from .utils.guards import account_required
from .utils.parsers import clean_str, iso, parse_point
from .utils.passwords import hash_password, require_strong_password, verify_password
from .utils.principal import KIND_ACCOUNT, KIND_COURIER, issue_token

auth = Blueprint("auth", __name__)

# Roles a visitor may pick at registration; admins come from create_admin.py.
SELF_SERVICE_ROLES = ("buyer", "farmer")


# =========================================================
# Helpers
# =========================================================
def _normalize_role(role: str | None) -> str:
    return (role or "").strip().lower().replace("-", "_")


def account_to_dict(acct: Account) -> dict:
    return {
        "id_user": acct.id,
        "nama": acct.name,
        "no_telp": acct.phone,
        "email": acct.email,
        "role": acct.role,
        "alamat": acct.address.one_line() if acct.address else None,
        "location": [acct.longitude, acct.latitude] if acct.latitude is not None else None,
        "image_url": acct.image_url,
        "created_at": iso(acct.created_at),
    }


def _courier_to_dict(courier: Courier) -> dict:
    return {
        "id": courier.id,
        "name": courier.name,
        "email": courier.email,
        "phone": courier.phone,
        "farm_id": courier.farm_id,
        "role": courier.role,
    }


def _credentials(data: dict) -> tuple[str, str]:
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    if not email or not password:
        raise InvalidArgument("Email and password are required.")
    return email, password


# =========================================================
# Register
# =========================================================
@auth.route("/regis", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}

    name = clean_str(data.get("nama"))
    phone = clean_str(data.get("no_telp"))
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") or ""
    role = _normalize_role(data.get("role")) or "buyer"

    if not name or not phone or not email or not password:
        raise InvalidArgument("nama, no_telp, email and password are required.")
    if role not in SELF_SERVICE_ROLES:
        raise InvalidArgument("Invalid role.")

    require_strong_password(password)

    if Account.query.filter(or_(Account.email == email, Account.phone == phone)).first():
        raise Conflict("Email or phone number is already registered.")

    acct = Account(
        name=name,
        phone=phone,
        email=email,
        role=role,
        password_hash=hash_password(password),
    )
    address_fields = {
        k: clean_str(data.get(k)) for k in Address.FIELDS
    }
    if any(address_fields.values()):
        acct.address = Address(**address_fields)
    point = parse_point(data.get("location"))
    if point:
        acct.latitude, acct.longitude = point

    with atomic("Register account"):
        db.session.add(acct)

    current_app.logger.info("Account %s registered as %s", acct.id, acct.role)
    return jsonify({"message": "Registration successful", "user": account_to_dict(acct)}), 201


# =========================================================
# Login (accounts / couriers)
# =========================================================
@auth.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    email, password = _credentials(request.get_json(silent=True) or {})

    acct = Account.query.filter_by(email=email).first()
    if acct is None or not verify_password(acct.password_hash, password):
        current_app.logger.warning("Failed login for %s", email)
        raise Unauthorized("Invalid email or password.", error="Invalid credentials")

    return (
        jsonify(
            {
                "status": "success",
                "message": "Login successful",
                "token": issue_token(acct.phone, KIND_ACCOUNT),
                "user": {
                    "nama": acct.name,
                    "email": acct.email,
                    "no_telp": acct.phone,
                    "nama_role": acct.role,
                },
            }
        ),
        200,
    )


@auth.route("/login/pengirim", methods=["POST"])
@limiter.limit("5 per minute")
def login_courier():
    email, password = _credentials(request.get_json(silent=True) or {})

    courier = Courier.query.filter_by(email=email).first()
    if courier is None or not verify_password(courier.password_hash, password):
        current_app.logger.warning("Failed courier login for %s", email)
        raise Unauthorized("Invalid email or password.", error="Invalid credentials")

    return (
        jsonify(
            {
                "status": "success",
                "message": "Login successful",
                "token": issue_token(courier.phone, KIND_COURIER),
                "user": _courier_to_dict(courier),
            }
        ),
        200,
    )


# =========================================================
# Profile
# =========================================================
@auth.route("/profile", methods=["GET"])
@login_required
def profile():
    if current_user.kind == KIND_COURIER:
        return jsonify({"kind": KIND_COURIER, "user": _courier_to_dict(current_user.require_courier())}), 200
    return jsonify({"kind": KIND_ACCOUNT, "user": account_to_dict(current_user.require_account())}), 200


@auth.route("/profile/update", methods=["PUT"])
@account_required
def update_profile():
    """
    Partial update of the caller's own account. The phone number is the token
    subject and the role is managed by admins, so neither changes here.
    """
    acct = current_user.require_account()
    data = request.get_json(silent=True) or {}

    changes = {}
    name = clean_str(data.get("nama"))
    if name:
        changes["name"] = name
    email = (clean_str(data.get("email")) or "").lower()
    if email and email != acct.email:
        if Account.query.filter(Account.email == email, Account.id != acct.id).first():
            raise Conflict("Email is already registered.")
        changes["email"] = email
    point = parse_point(data.get("location"))
    if point:
        changes["latitude"], changes["longitude"] = point

    address_changes = {k: clean_str(data.get(k)) for k in Address.FIELDS}
    address_changes = {k: v for k, v in address_changes.items() if v is not None}

    if not changes and not address_changes:
        raise InvalidArgument("No fields to update.")

    with atomic("Update profile"):
        for attr, value in changes.items():
            setattr(acct, attr, value)
        if address_changes:
            if acct.address is None:
                acct.address = Address()
            for attr, value in address_changes.items():
                setattr(acct.address, attr, value)

    current_app.logger.info("Account %s updated its profile: %s", acct.id, ", ".join(sorted({**changes, **address_changes})))
    return jsonify({"message": "Profile updated successfully", "user": account_to_dict(acct)}), 200
