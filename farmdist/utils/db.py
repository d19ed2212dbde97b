# farmdist/utils/db.py
from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from farmdist.errors import ApiError, Conflict, Internal
from farmdist.extensions import db


@contextmanager
def atomic(action: str):
    """
    All-or-nothing unit of work on the request session.

        with atomic("Create order"):
            ...add / update / flush...

    Commits when the block finishes. Anything raised inside rolls back
    everything the block did. Store errors are mapped to Conflict (constraint
    violations) or Internal; other exceptions propagate unchanged.
    """
    try:
        yield db.session
        db.session.commit()
    except ApiError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning("%s rejected by a constraint: %s", action, exc.orig)
        raise Conflict(f"{action} conflicts with existing data.") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise Internal(f"{action} failed. Please try again.") from exc
    except Exception:
        db.session.rollback()
        raise
