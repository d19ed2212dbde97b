# farmdist/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Callable, Any

from flask_login import login_required, current_user

from farmdist.errors import Forbidden

from .principal import KIND_ACCOUNT, KIND_COURIER


def account_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """
    Only account tokens (buyers, farm owners, admins).
    The account must still exist; a token for a deleted account is a 401.
    """
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if current_user.kind != KIND_ACCOUNT:
            raise Forbidden("This action requires an account login.")
        current_user.require_account()
        return view(*args, **kwargs)

    return wrapped


def courier_required(view: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if current_user.kind != KIND_COURIER:
            raise Forbidden("This action requires a courier login.")
        current_user.require_courier()
        return view(*args, **kwargs)

    return wrapped


def admin_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """
    Allow only admin and super_admin accounts.
    Returns 403 for all other logged-in principals.
    """
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not current_user.is_admin:
            raise Forbidden("Admin access required.")
        return view(*args, **kwargs)

    return wrapped


def role_required(*allowed_roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("farmer", "admin")
        def view(): ...
    """
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role not in allowed_roles:
                raise Forbidden("You are not allowed to perform this action.")
            return view(*args, **kwargs)
        return wrapped
    return decorator
