# farmdist/models.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum as SAEnum

from .extensions import db


# Naive UTC everywhere: the DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.utcnow()


def _status_enum(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
        validate_strings=True,
    )


# =========================================================
# Status enums + transition tables
# =========================================================
class PaymentStatus(enum.Enum):
    PENDING = "Pending"
    SENDING = "Sending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class OrderStatus(enum.Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class ShipmentStatus(enum.Enum):
    PENDING = "Pending"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.SENDING, PaymentStatus.CANCELLED},
    # A rejected proof of transfer sends the invoice back to Pending.
    PaymentStatus.SENDING: {PaymentStatus.CONFIRMED, PaymentStatus.PENDING, PaymentStatus.CANCELLED},
    PaymentStatus.CONFIRMED: {PaymentStatus.COMPLETED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: set(),
    PaymentStatus.CANCELLED: set(),
}

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

SHIPMENT_TRANSITIONS = {
    ShipmentStatus.PENDING: {ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED},
    ShipmentStatus.IN_TRANSIT: {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED},
    ShipmentStatus.DELIVERED: set(),
    ShipmentStatus.CANCELLED: set(),
}


def can_transition(table: dict, current: enum.Enum, target: enum.Enum) -> bool:
    return target in table.get(current, set())


def parse_status(enum_cls: type[enum.Enum], raw) -> enum.Enum | None:
    """Case-insensitive lookup by value ("in transit") or by name ("IN_TRANSIT")."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    for member in enum_cls:
        if member.value.lower() == text.lower() or member.name.lower() == text.lower():
            return member
    return None


# =========================================================
# Address
# =========================================================
class Address(db.Model):
    __tablename__ = "address"

    FIELDS = ("street", "city", "state", "postal_code", "country")

    id = db.Column(db.Integer, primary_key=True)
    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)
    country = db.Column(db.String(100), nullable=True)

    def one_line(self) -> str:
        parts = [self.street, self.city, self.state, self.postal_code, self.country]
        return ", ".join(p for p in parts if p)

    def to_dict(self) -> dict:
        return {"id": self.id, **{f: getattr(self, f) for f in self.FIELDS}}


# =========================================================
# Account (akun): buyers, farm owners, admins
# =========================================================
class Account(db.Model):
    __tablename__ = "akun"

    id = db.Column("id_user", db.Integer, primary_key=True)

    name = db.Column("nama", db.String(100), nullable=False)
    # Natural key for token binding: tokens carry the phone number as subject.
    phone = db.Column("no_telp", db.String(20), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)

    # buyer / farmer / admin
    role = db.Column(db.String(30), nullable=False, default="buyer")
    password_hash = db.Column("password", db.String(255), nullable=False)

    address_id = db.Column(db.Integer, db.ForeignKey("address.id", ondelete="SET NULL"), nullable=True)
    address = db.relationship("Address", foreign_keys=[address_id], lazy="joined")

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    farm = db.relationship("Farm", back_populates="owner", uselist=False, lazy="select")

    def __repr__(self) -> str:
        return f"<Account {self.id} {self.phone}>"


# =========================================================
# Farm (peternakan)
# =========================================================
class Farm(db.Model):
    __tablename__ = "farms"

    id = db.Column(db.Integer, primary_key=True)

    # One farm per owner; queries rely on it.
    owner_id = db.Column(db.Integer, db.ForeignKey("akun.id_user", ondelete="CASCADE"), unique=True, nullable=False)
    owner = db.relationship("Account", back_populates="farm", lazy="joined")

    name = db.Column(db.String(160), nullable=False)
    farm_type = db.Column(db.String(60), nullable=True)

    address_id = db.Column(db.Integer, db.ForeignKey("address.id", ondelete="SET NULL"), nullable=True)
    address = db.relationship("Address", foreign_keys=[address_id], lazy="joined")

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    phone = db.Column(db.String(30), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    products = db.relationship("Product", back_populates="farm", lazy="select")

    def __repr__(self) -> str:
        return f"<Farm {self.id} {self.name}>"


# =========================================================
# Product availability window
# =========================================================
class StatusProduct(db.Model):
    __tablename__ = "status_product"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    available_date = db.Column(db.DateTime, nullable=True)


# =========================================================
# Product (farm_products)
# =========================================================
class Product(db.Model):
    __tablename__ = "farm_products"

    id = db.Column(db.Integer, primary_key=True)

    farm_id = db.Column(db.Integer, db.ForeignKey("farms.id", ondelete="CASCADE"), nullable=False, index=True)
    farm = db.relationship("Farm", back_populates="products", lazy="joined")

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price_per_kg = db.Column(db.Float, nullable=False, default=0.0)
    weight_per_unit = db.Column(db.Float, nullable=True)
    stock_kg = db.Column(db.Float, nullable=False, default=0.0)

    image_url = db.Column(db.String(500), nullable=True)

    status_id = db.Column(db.Integer, db.ForeignKey("status_product.id", ondelete="SET NULL"), nullable=True)
    status = db.relationship("StatusProduct", foreign_keys=[status_id], lazy="joined")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("stock_kg >= 0", name="ck_farm_products_stock_nonneg"),
    )

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name} stock={self.stock_kg}>"


# =========================================================
# Shipping tariff (pengiriman)
# =========================================================
class ShippingTariff(db.Model):
    __tablename__ = "pengiriman"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=True)
    fuel_consumption = db.Column(db.Float, nullable=False)  # litres per km
    fuel_price = db.Column(db.Float, nullable=False)  # per litre

    @property
    def cost_per_km(self) -> float:
        return self.fuel_consumption * self.fuel_price


# =========================================================
# Invoice
# =========================================================
class Invoice(db.Model):
    __tablename__ = "invoice"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("akun.id_user", ondelete="CASCADE"), nullable=False, index=True)
    buyer = db.relationship("Account", foreign_keys=[user_id], lazy="joined")

    invoice_number = db.Column(db.String(60), unique=True, nullable=False)

    payment_status = db.Column(
        _status_enum(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_method = db.Column(db.String(60), nullable=True)

    issued_date = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    due_date = db.Column(db.DateTime, nullable=True)

    # total_amount == total_harga_product + shipping_cost
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_harga_product = db.Column(db.Float, nullable=False, default=0.0)
    shipping_cost = db.Column(db.Float, nullable=False, default=0.0)

    proof_of_transfer = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    orders = db.relationship("Order", back_populates="invoice", lazy="select", order_by="Order.id")

    def __repr__(self) -> str:
        return f"<Invoice {self.id} {self.invoice_number} {self.payment_status}>"


# =========================================================
# Order line (orders)
# =========================================================
class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("akun.id_user", ondelete="CASCADE"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("farm_products.id"), nullable=False, index=True)
    product = db.relationship("Product", foreign_keys=[product_id], lazy="joined")

    quantity = db.Column(db.Integer, nullable=False)
    # price_per_kg * quantity at order time
    total_harga = db.Column(db.Float, nullable=False)

    status = db.Column(
        _status_enum(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
    )

    pengiriman_id = db.Column(db.Integer, db.ForeignKey("pengiriman.id"), nullable=False)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoice.id"), nullable=False, index=True)
    invoice = db.relationship("Invoice", back_populates="orders", lazy="select")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} invoice={self.invoice_id} product={self.product_id}>"


# =========================================================
# Courier (pengirim): separate login subject
# =========================================================
class Courier(db.Model):
    __tablename__ = "pengirim"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20), unique=True, nullable=False)
    address = db.Column(db.String(255), nullable=True)

    vehicle_plate = db.Column(db.String(30), nullable=True)
    vehicle_type = db.Column(db.String(60), nullable=True)
    vehicle_color = db.Column(db.String(30), nullable=True)

    farm_id = db.Column(db.Integer, db.ForeignKey("farms.id", ondelete="CASCADE"), nullable=False, index=True)
    farm = db.relationship("Farm", foreign_keys=[farm_id], lazy="joined")

    password_hash = db.Column("password", db.String(255), nullable=False)
    role = db.Column(db.String(30), nullable=False, default="courier")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def __repr__(self) -> str:
        return f"<Courier {self.id} {self.phone}>"


# =========================================================
# Shipment process (proses_pengiriman)
# =========================================================
class ShipmentProcess(db.Model):
    __tablename__ = "proses_pengiriman"

    id = db.Column(db.Integer, primary_key=True)

    # Back-reference to the invoice, not ownership.
    invoice_id = db.Column("id_invoice", db.Integer, db.ForeignKey("invoice.id"), nullable=False, index=True)
    invoice = db.relationship("Invoice", foreign_keys=[invoice_id], lazy="joined")

    farm_id = db.Column("id_farm", db.Integer, db.ForeignKey("farms.id"), nullable=False, index=True)
    farm = db.relationship("Farm", foreign_keys=[farm_id], lazy="joined")

    courier_id = db.Column("id_pengirim", db.Integer, db.ForeignKey("pengirim.id", ondelete="SET NULL"), nullable=True, index=True)
    courier = db.relationship("Courier", foreign_keys=[courier_id], lazy="joined")

    sent_day = db.Column("hari_dikirim", db.String(20), nullable=True)
    sent_at = db.Column("tanggal_dikirim", db.DateTime, nullable=True)
    received_day = db.Column("hari_diterima", db.String(20), nullable=True)
    received_at = db.Column("tanggal_diterima", db.DateTime, nullable=True)

    status = db.Column(
        "status_pengiriman",
        _status_enum(ShipmentStatus, "shipment_status"),
        nullable=False,
        default=ShipmentStatus.PENDING,
    )

    image_url = db.Column("image_pengiriman", db.String(500), nullable=True)

    sender_address = db.Column("alamat_pengirim", db.String(255), nullable=True)
    receiver_address = db.Column("alamat_penerima", db.String(255), nullable=True)

    sender_latitude = db.Column(db.Float, nullable=True)
    sender_longitude = db.Column(db.Float, nullable=True)
    receiver_latitude = db.Column(db.Float, nullable=True)
    receiver_longitude = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.UniqueConstraint("id_invoice", "id_farm", name="uq_proses_pengiriman_invoice_farm"),
    )

    def __repr__(self) -> str:
        return f"<ShipmentProcess {self.id} invoice={self.invoice_id} {self.status}>"
