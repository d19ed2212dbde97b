from __future__ import annotations

import pytest

from farmdist import create_app
from farmdist.extensions import db
from farmdist.models import Account, Courier, Farm, Product, ShippingTariff
from farmdist.utils.passwords import hash_password
from farmdist.utils.principal import KIND_ACCOUNT, KIND_COURIER, Principal, issue_token

PASSWORD = "secret123"


@pytest.fixture()
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'farmdist.db'}",
            "JWT_SECRET_KEY": "test-jwt-secret-key-with-enough-bytes",
            "RATELIMIT_ENABLED": False,
            "UPLOAD_DIR": str(tmp_path / "uploads"),
            "PUBLIC_BASE_URL": "http://testserver",
            "OBJECT_STORAGE": "local",
        }
    )

    with app.app_context():
        db.create_all()
        _seed()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


def _seed():
    buyer = Account(id=1, name="Budi", phone="081111111111", email="budi@example.com", role="buyer",
                    password_hash=hash_password(PASSWORD))
    owner = Account(id=2, name="Sari", phone="082222222222", email="sari@example.com", role="farmer",
                    password_hash=hash_password(PASSWORD))
    other_owner = Account(id=3, name="Joko", phone="083333333333", email="joko@example.com", role="farmer",
                          password_hash=hash_password(PASSWORD))
    admin = Account(id=4, name="Admin", phone="084444444444", email="admin@example.com", role="admin",
                    password_hash=hash_password(PASSWORD))
    db.session.add_all([buyer, owner, other_owner, admin])
    db.session.flush()

    db.session.add_all(
        [
            Farm(id=1, owner_id=2, name="Sari Farm"),
            Farm(id=2, owner_id=3, name="Joko Farm"),
        ]
    )
    db.session.flush()

    db.session.add_all(
        [
            Product(id=5, farm_id=1, name="Beef", price_per_kg=10000, stock_kg=10),
            Product(id=6, farm_id=1, name="Milk", price_per_kg=2500.5, stock_kg=100),
            Product(id=7, farm_id=2, name="Eggs", price_per_kg=3000, stock_kg=50),
            ShippingTariff(id=2, name="Pickup truck", fuel_consumption=0.1, fuel_price=15000),
            Courier(id=1, name="Andi", email="andi@example.com", phone="085555555555", farm_id=1,
                    password_hash=hash_password(PASSWORD)),
            Courier(id=2, name="Rudi", email="rudi@example.com", phone="086666666666", farm_id=2,
                    password_hash=hash_password(PASSWORD)),
        ]
    )
    db.session.commit()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def token_for(app):
    def _token(phone: str, kind: str = KIND_ACCOUNT) -> str:
        with app.app_context():
            return issue_token(phone, kind)

    return _token


@pytest.fixture()
def auth_headers(token_for):
    def _headers(phone: str, kind: str = KIND_ACCOUNT) -> dict:
        return {"Authorization": f"Bearer {token_for(phone, kind)}"}

    return _headers


@pytest.fixture()
def buyer_headers(auth_headers):
    return auth_headers("081111111111")


@pytest.fixture()
def owner_headers(auth_headers):
    return auth_headers("082222222222")


@pytest.fixture()
def other_owner_headers(auth_headers):
    return auth_headers("083333333333")


@pytest.fixture()
def admin_headers(auth_headers):
    return auth_headers("084444444444")


@pytest.fixture()
def courier_headers(auth_headers):
    return auth_headers("085555555555", KIND_COURIER)


@pytest.fixture()
def buyer():
    return Principal("081111111111", KIND_ACCOUNT)


@pytest.fixture()
def order_payload():
    return {
        "products": [{"product_id": 5, "quantity": 3}],
        "pengiriman_id": 2,
        "payment_method": "Transfer",
        "distance_km": 20,
    }


@pytest.fixture()
def place_order(client, buyer_headers, order_payload):
    def _place(payload=None, headers=None):
        resp = client.post("/order", json=payload or order_payload, headers=headers or buyer_headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    return _place
