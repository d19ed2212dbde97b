# farmdist/utils/principal.py
"""
Bearer-token principals.

Accounts (buyers, farm owners, admins) and couriers log in separately but share
one token scheme: the JWT subject is the phone number and a ``kind`` claim says
which table it binds to. Flask-Login's request loader turns the token on every
request into a :class:`Principal`, available as ``current_user``.
"""

from __future__ import annotations

from functools import cached_property

from flask import current_app
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_login import UserMixin
from jwt.exceptions import PyJWTError

from farmdist.errors import NotFound, Unauthorized
from farmdist.extensions import login_manager
from farmdist.models import Account, Courier, Farm

KIND_ACCOUNT = "account"
KIND_COURIER = "courier"
KINDS = (KIND_ACCOUNT, KIND_COURIER)


class Principal(UserMixin):
    def __init__(self, subject_id: str, kind: str):
        self.subject_id = subject_id
        self.kind = kind

    def get_id(self) -> str:
        return f"{self.kind}:{self.subject_id}"

    def __repr__(self) -> str:
        return f"<Principal {self.kind} {self.subject_id}>"

    # ---------------------------------------------------------
    # Lazy subject resolution
    # ---------------------------------------------------------
    @cached_property
    def account(self) -> Account | None:
        if self.kind != KIND_ACCOUNT:
            return None
        return Account.query.filter_by(phone=self.subject_id).first()

    @cached_property
    def courier(self) -> Courier | None:
        if self.kind != KIND_COURIER:
            return None
        return Courier.query.filter_by(phone=self.subject_id).first()

    @property
    def role(self) -> str:
        if self.kind == KIND_COURIER:
            return "courier"
        acct = self.account
        return (acct.role or "").strip().lower() if acct else ""

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "super_admin")

    def require_account(self) -> Account:
        acct = self.account
        if acct is None:
            raise Unauthorized("No account found for this token.")
        return acct

    def require_courier(self) -> Courier:
        courier = self.courier
        if courier is None:
            raise Unauthorized("No courier found for this token.")
        return courier

    def owned_farm(self) -> Farm | None:
        acct = self.account
        if acct is None:
            return None
        return Farm.query.filter_by(owner_id=acct.id).first()

    def require_farm(self) -> Farm:
        self.require_account()
        farm = self.owned_farm()
        if farm is None:
            raise NotFound("No farm found for the given owner.", error="Farm not found")
        return farm


# =========================================================
# Token helpers
# =========================================================
def issue_token(subject_id: str, kind: str) -> str:
    if kind not in KINDS:
        raise ValueError(f"Unknown principal kind: {kind}")
    return create_access_token(identity=str(subject_id), additional_claims={"kind": kind})


def token_from_request(request) -> str | None:
    auth = (request.headers.get("Authorization") or "").strip()
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    # Older clients send the raw token in a "login" header.
    legacy = (request.headers.get("login") or "").strip()
    return legacy or None


def principal_from_token(token: str) -> Principal | None:
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as exc:
        current_app.logger.warning("Rejected bearer token: %s", exc)
        return None

    if claims.get("type") != "access":
        return None
    subject = claims.get("sub")
    kind = claims.get("kind", KIND_ACCOUNT)
    if not subject or kind not in KINDS:
        return None
    return Principal(str(subject), kind)


# =========================================================
# Flask-Login wiring
# =========================================================
@login_manager.request_loader
def load_principal_from_request(request):
    token = token_from_request(request)
    if not token:
        return None
    return principal_from_token(token)


@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthorized("Invalid or expired token. Please log in again.")
