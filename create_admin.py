import os

from farmdist import create_app
from farmdist.extensions import db
from farmdist.models import Account
from farmdist.utils.passwords import hash_password, password_problem

NAME = os.environ.get("ADMIN_NAME", "Farmdist Admin")
EMAIL = os.environ.get("ADMIN_EMAIL", "admin@farmdist.local").strip().lower()
PHONE = os.environ.get("ADMIN_PHONE", "080000000000").strip()
PASSWORD = os.environ.get("ADMIN_PASSWORD", "")

problem = password_problem(PASSWORD)
if problem:
    raise SystemExit(f"ADMIN_PASSWORD rejected: {problem}")

app = create_app()

with app.app_context():
    existing = Account.query.filter((Account.email == EMAIL) | (Account.phone == PHONE)).first()
    if existing is not None:
        print("🔁 Promoting existing account to admin:", existing.email)
        existing.role = "admin"
        existing.password_hash = hash_password(PASSWORD)
    else:
        print("🔐 Creating new admin account...")
        db.session.add(
            Account(
                name=NAME,
                email=EMAIL,
                phone=PHONE,
                role="admin",
                password_hash=hash_password(PASSWORD),
            )
        )

    db.session.commit()
    print("✅ Admin ready:", EMAIL)
