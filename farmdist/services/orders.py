# farmdist/services/orders.py
"""
Order / invoice transaction engine.

``create_order`` prices a cart, writes the invoice and its order lines,
decrements stock and settles the invoice totals in one transaction. Either all
of it is committed or none of it is:

- every order line belongs to exactly one invoice,
- ``invoice.total_harga_product`` is ``SUM(orders.total_harga)`` for the invoice,
- ``invoice.total_amount == total_harga_product + shipping_cost``,
- ``stock_kg`` never goes below zero.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import timedelta

import sqlalchemy as sa
from flask import current_app

from farmdist.errors import Forbidden, InvalidArgument, NotFound
from farmdist.extensions import db
from farmdist.models import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    Courier,
    Invoice,
    Order,
    OrderStatus,
    PaymentStatus,
    Product,
    ShipmentProcess,
    ShipmentStatus,
    ShippingTariff,
    can_transition,
    parse_status,
    utcnow_naive,
)
from farmdist.services.object_storage import read_image, upload_image
from farmdist.utils.clock import day_name
from farmdist.utils.db import atomic
from farmdist.utils.format import round_money
from farmdist.utils.parsers import clean_str, parse_float, parse_int, parse_point


# =========================================================
# Request / result types
# =========================================================
@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class ShipmentDraft:
    courier_id: int | None = None
    sender_address: str | None = None
    receiver_address: str | None = None
    sender_point: tuple[float, float] | None = None  # (lat, lon)
    receiver_point: tuple[float, float] | None = None


@dataclass(frozen=True)
class OrderRequest:
    items: list[CartItem]
    tariff_id: int
    payment_method: str | None
    distance_km: float
    shipment: ShipmentDraft | None = None


@dataclass(frozen=True)
class OrderReceipt:
    invoice_id: int
    invoice_number: str
    subtotal: float
    shipping_cost: float
    total_amount: float
    shipment_ids: list[int] = field(default_factory=list)


# =========================================================
# Payload parsing
# =========================================================
def parse_order_request(payload) -> OrderRequest:
    if not isinstance(payload, dict):
        raise InvalidArgument("The JSON request body could not be decoded.", error="Invalid request payload")

    raw_items = payload.get("products")
    tariff_id = parse_int(payload.get("pengiriman_id"))
    if not raw_items or not isinstance(raw_items, list) or not tariff_id:
        raise InvalidArgument("Products and Pengiriman ID are required")

    items: list[CartItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise InvalidArgument("Each product must be an object with product_id and quantity.")
        product_id = parse_int(raw.get("product_id"))
        quantity = parse_int(raw.get("quantity"))
        if not product_id or product_id < 0:
            raise InvalidArgument("Every product needs a valid product_id.")
        if quantity is None or quantity <= 0:
            raise InvalidArgument("Quantity must be a positive whole number.")
        items.append(CartItem(product_id=product_id, quantity=quantity))

    # Missing distance means pickup: no travel, no shipping cost.
    raw_distance = payload.get("distance_km")
    distance_km = parse_float(raw_distance)
    if raw_distance not in (None, "") and distance_km is None:
        raise InvalidArgument("distance_km must be a number.")
    distance_km = distance_km or 0.0
    if distance_km < 0:
        raise InvalidArgument("distance_km cannot be negative.")

    shipment = None
    raw_shipment = payload.get("shipment")
    if raw_shipment is not None:
        if not isinstance(raw_shipment, dict):
            raise InvalidArgument("shipment must be an object.")
        shipment = ShipmentDraft(
            courier_id=parse_int(raw_shipment.get("id_pengirim")),
            sender_address=clean_str(raw_shipment.get("alamat_pengirim")),
            receiver_address=clean_str(raw_shipment.get("alamat_penerima")),
            sender_point=parse_point(raw_shipment.get("location_pengirim")),
            receiver_point=parse_point(raw_shipment.get("location_penerima")),
        )

    return OrderRequest(
        items=items,
        tariff_id=tariff_id,
        payment_method=clean_str(payload.get("payment_method")),
        distance_km=distance_km,
        shipment=shipment,
    )


# =========================================================
# Pricing helpers
# =========================================================
def shipping_cost_for(tariff: ShippingTariff, distance_km: float) -> float:
    return round_money(distance_km * tariff.fuel_consumption * tariff.fuel_price)


def generate_invoice_number(buyer_id: int) -> str:
    """
    "INV-<buyer>-<unix seconds>". Two orders from the same buyer inside one
    second would collide, so a "-2", "-3"... suffix is added when the plain
    number is taken. The column is unique in the store as well.
    """
    base = f"INV-{buyer_id}-{int(time.time())}"
    taken = set(
        db.session.scalars(
            sa.select(Invoice.invoice_number).where(
                sa.or_(Invoice.invoice_number == base, Invoice.invoice_number.like(f"{base}-%"))
            )
        )
    )
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def _take_stock(product: Product, quantity: int) -> None:
    """
    Conditional decrement: succeeds only while enough stock remains, so two
    concurrent orders can never both spend the last kilos.
    """
    result = db.session.execute(
        sa.update(Product)
        .where(Product.id == product.id, Product.stock_kg >= quantity)
        .values(stock_kg=Product.stock_kg - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidArgument("Stock is insufficient")
    db.session.expire(product, ["stock_kg"])


def _return_stock(product_id: int, quantity: int) -> None:
    db.session.execute(
        sa.update(Product)
        .where(Product.id == product_id)
        .values(stock_kg=Product.stock_kg + quantity)
        .execution_options(synchronize_session="evaluate")
    )


def invoice_subtotal(invoice_id: int) -> float:
    total = db.session.scalar(
        sa.select(sa.func.coalesce(sa.func.sum(Order.total_harga), 0)).where(Order.invoice_id == invoice_id)
    )
    return round_money(total)


# =========================================================
# CreateOrder
# =========================================================
def create_order(principal, payload) -> OrderReceipt:
    buyer = principal.require_account()
    req = parse_order_request(payload)

    tariff = db.session.get(ShippingTariff, req.tariff_id)
    if tariff is None:
        raise InvalidArgument("Invalid Pengiriman ID")

    shipping_cost = shipping_cost_for(tariff, req.distance_km)

    with atomic("Create order"):
        now = utcnow_naive()
        invoice = Invoice(
            user_id=buyer.id,
            invoice_number=generate_invoice_number(buyer.id),
            payment_status=PaymentStatus.PENDING,
            payment_method=req.payment_method,
            issued_date=now,
            due_date=now + timedelta(days=current_app.config.get("INVOICE_DUE_DAYS", 7)),
            total_amount=0.0,
            total_harga_product=0.0,
            shipping_cost=0.0,
        )
        db.session.add(invoice)
        db.session.flush()

        farms_in_cart: list[int] = []
        for item in req.items:
            product = db.session.get(Product, item.product_id)
            if product is None:
                raise InvalidArgument("Product not found")
            if product.stock_kg < item.quantity:
                raise InvalidArgument("Stock is insufficient")

            db.session.add(
                Order(
                    user_id=buyer.id,
                    product_id=product.id,
                    quantity=item.quantity,
                    total_harga=round_money(product.price_per_kg * item.quantity),
                    status=OrderStatus.PENDING,
                    pengiriman_id=tariff.id,
                    invoice_id=invoice.id,
                )
            )
            _take_stock(product, item.quantity)

            if product.farm_id not in farms_in_cart:
                farms_in_cart.append(product.farm_id)

        db.session.flush()
        subtotal = invoice_subtotal(invoice.id)
        invoice.total_harga_product = subtotal
        invoice.shipping_cost = shipping_cost
        invoice.total_amount = round_money(subtotal + shipping_cost)

        shipment_ids: list[int] = []
        if req.shipment is not None:
            shipment_ids = _open_shipments(invoice, farms_in_cart, req.shipment)

    current_app.logger.info(
        "Invoice %s created for account %s: %d line(s), total %.2f",
        invoice.invoice_number, buyer.id, len(req.items), invoice.total_amount,
    )
    return OrderReceipt(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        subtotal=invoice.total_harga_product,
        shipping_cost=invoice.shipping_cost,
        total_amount=invoice.total_amount,
        shipment_ids=shipment_ids,
    )


def _open_shipments(invoice: Invoice, farm_ids: list[int], draft: ShipmentDraft) -> list[int]:
    """One Pending shipment record per farm in the cart."""
    courier = None
    if draft.courier_id:
        courier = db.session.get(Courier, draft.courier_id)
        if courier is None or courier.farm_id not in farm_ids:
            raise InvalidArgument("Courier not found for the farms in this order.")

    today = day_name()
    records = []
    for farm_id in farm_ids:
        sp = ShipmentProcess(
            invoice_id=invoice.id,
            farm_id=farm_id,
            courier_id=courier.id if courier and courier.farm_id == farm_id else None,
            status=ShipmentStatus.PENDING,
            sent_day=today,
            sender_address=draft.sender_address,
            receiver_address=draft.receiver_address,
        )
        if draft.sender_point:
            sp.sender_latitude, sp.sender_longitude = draft.sender_point
        if draft.receiver_point:
            sp.receiver_latitude, sp.receiver_longitude = draft.receiver_point
        db.session.add(sp)
        records.append(sp)

    db.session.flush()
    return [sp.id for sp in records]


# =========================================================
# Invoice access helpers
# =========================================================
def get_invoice_or_404(invoice_id) -> Invoice:
    iid = parse_int(invoice_id)
    if not iid:
        raise InvalidArgument("Invalid or missing invoice ID.")
    invoice = db.session.get(Invoice, iid)
    if invoice is None:
        raise NotFound("Invoice not found")
    return invoice


def farm_owns_lines(farm_id: int | None, invoice_id: int) -> bool:
    if not farm_id:
        return False
    hit = db.session.scalar(
        sa.select(Order.id)
        .join(Product, Order.product_id == Product.id)
        .where(Order.invoice_id == invoice_id, Product.farm_id == farm_id)
        .limit(1)
    )
    return hit is not None


def _seller_farm_id(principal, invoice: Invoice) -> int | None:
    farm = principal.owned_farm()
    if farm and farm_owns_lines(farm.id, invoice.id):
        return farm.id
    return None


# =========================================================
# Line bookkeeping shared by the status operations
# =========================================================
OPEN_LINE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)
HANDED_OVER_STATUSES = (OrderStatus.SHIPPED, OrderStatus.DELIVERED)
OPEN_SHIPMENT_STATUSES = (ShipmentStatus.PENDING, ShipmentStatus.IN_TRANSIT)


def _handed_over_count(invoice_id: int) -> int:
    return Order.query.filter(Order.invoice_id == invoice_id, Order.status.in_(HANDED_OVER_STATUSES)).count()


def _cancel_open_lines(invoice_id: int) -> int:
    """Cancel every open line and shipment of the invoice, giving the stock back."""
    lines = (
        Order.query.filter(Order.invoice_id == invoice_id, Order.status.in_(OPEN_LINE_STATUSES))
        .order_by(Order.id)
        .all()
    )
    for line in lines:
        _return_stock(line.product_id, line.quantity)
        line.status = OrderStatus.CANCELLED

    for sp in ShipmentProcess.query.filter(
        ShipmentProcess.invoice_id == invoice_id, ShipmentProcess.status.in_(OPEN_SHIPMENT_STATUSES)
    ):
        sp.status = ShipmentStatus.CANCELLED
    return len(lines)


# =========================================================
# UpdateOrderStatus
# =========================================================
def update_order_status(principal, invoice_id, raw_status) -> tuple[int, OrderStatus, int]:
    """
    Move every order line of an invoice to ``raw_status``.

    Farm owners move the lines of their own products, admins move all lines,
    the buyer may only cancel. Cancelled lines give their quantity back to stock.
    Returns (invoice_id, new_status, lines_updated).
    """
    acct = principal.require_account()
    iid = parse_int(invoice_id)
    target = parse_status(OrderStatus, raw_status)
    if not iid or raw_status in (None, ""):
        raise InvalidArgument("Invoice ID and status are required")
    if target is None:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidArgument(f"Unknown order status. Use one of: {allowed}.")

    invoice = db.session.get(Invoice, iid)
    if invoice is None:
        raise NotFound("No orders found with the given invoice ID")

    query = Order.query.filter_by(invoice_id=iid)
    seller_farm_id = _seller_farm_id(principal, invoice)
    if principal.is_admin:
        pass
    elif seller_farm_id:
        query = query.join(Product, Order.product_id == Product.id).filter(Product.farm_id == seller_farm_id)
    elif invoice.user_id == acct.id:
        if target is not OrderStatus.CANCELLED:
            raise Forbidden("Buyers can only cancel their orders.")
    else:
        raise Forbidden("You are not allowed to update this order.")

    lines = query.order_by(Order.id).all()
    if not lines:
        raise NotFound("No orders found with the given invoice ID")
    if invoice.payment_status is PaymentStatus.CANCELLED and target is not OrderStatus.CANCELLED:
        raise InvalidArgument(
            "The invoice is cancelled; its orders can no longer move.",
            error="Invalid status transition",
        )

    with atomic("Update order status"):
        for line in lines:
            if line.status is target:
                continue
            if not can_transition(ORDER_TRANSITIONS, line.status, target):
                raise InvalidArgument(
                    f"Order {line.id} cannot move from {line.status.value} to {target.value}.",
                    error="Invalid status transition",
                )
            if target is OrderStatus.CANCELLED:
                _return_stock(line.product_id, line.quantity)
            line.status = target

    current_app.logger.info("Invoice %s: %d order line(s) -> %s", iid, len(lines), target.value)
    return iid, target, len(lines)


# =========================================================
# DeleteOrderByInvoiceID
# =========================================================
DELETABLE_PAYMENT_STATUSES = {PaymentStatus.PENDING, PaymentStatus.CANCELLED}


def delete_order(principal, invoice_id) -> int:
    """
    Remove an unpaid invoice with its order lines and shipment records in one
    transaction. Nothing on it may have been shipped yet; stock held by lines
    that were not cancelled is given back.
    """
    acct = principal.require_account()
    if not parse_int(invoice_id):
        raise InvalidArgument("Invoice ID is required")
    invoice = get_invoice_or_404(invoice_id)

    if invoice.user_id != acct.id and not principal.is_admin:
        raise Forbidden("You are not allowed to delete this order.")
    if invoice.payment_status not in DELETABLE_PAYMENT_STATUSES:
        raise InvalidArgument(
            f"Invoice with payment status {invoice.payment_status.value} can no longer be deleted."
        )
    if _handed_over_count(invoice.id):
        raise InvalidArgument("Orders that were shipped or delivered cannot be deleted.")

    iid = invoice.id
    with atomic("Delete order"):
        for line in Order.query.filter_by(invoice_id=iid).all():
            if line.status is not OrderStatus.CANCELLED:
                _return_stock(line.product_id, line.quantity)

        db.session.execute(sa.delete(ShipmentProcess).where(ShipmentProcess.invoice_id == iid))
        db.session.execute(sa.delete(Order).where(Order.invoice_id == iid))
        db.session.execute(sa.delete(Invoice).where(Invoice.id == iid))

    current_app.logger.info("Invoice %s deleted by account %s", iid, acct.id)
    return iid


# =========================================================
# BuktiTransfer (proof of transfer)
# =========================================================
def attach_transfer_proof(principal, invoice_id, file_storage) -> str:
    acct = principal.require_account()
    invoice = get_invoice_or_404(invoice_id)
    if invoice.user_id != acct.id:
        raise Forbidden("Only the buyer can upload a proof of transfer.")

    current = invoice.payment_status
    if current is not PaymentStatus.SENDING and not can_transition(PAYMENT_TRANSITIONS, current, PaymentStatus.SENDING):
        raise InvalidArgument(
            f"Invoice with payment status {current.value} does not accept a proof of transfer.",
            error="Invalid status transition",
        )

    content, ext = read_image(file_storage)
    stored = upload_image(content, folder="proof_of_transfer", ext=ext)

    with atomic("Attach proof of transfer"):
        invoice.proof_of_transfer = stored.url
        invoice.payment_status = PaymentStatus.SENDING

    current_app.logger.info("Invoice %s: proof of transfer stored at %s", invoice.id, stored.url)
    return stored.url


# =========================================================
# Payment status (seller / admin side)
# =========================================================
def update_payment_status(principal, invoice_id, raw_status) -> PaymentStatus:
    acct = principal.require_account()
    invoice = get_invoice_or_404(invoice_id)
    target = parse_status(PaymentStatus, raw_status)
    if target is None:
        allowed = ", ".join(s.value for s in PaymentStatus)
        raise InvalidArgument(f"Unknown payment status. Use one of: {allowed}.")

    is_seller = _seller_farm_id(principal, invoice) is not None
    is_buyer = invoice.user_id == acct.id
    if not (principal.is_admin or is_seller):
        if is_buyer and target is PaymentStatus.CANCELLED:
            pass
        else:
            raise Forbidden("You are not allowed to change this invoice's payment status.")

    if not can_transition(PAYMENT_TRANSITIONS, invoice.payment_status, target):
        raise InvalidArgument(
            f"Payment status cannot move from {invoice.payment_status.value} to {target.value}.",
            error="Invalid status transition",
        )
    if target is PaymentStatus.CANCELLED and _handed_over_count(invoice.id):
        raise InvalidArgument(
            "Goods on this invoice were already shipped; it can no longer be cancelled.",
            error="Invalid status transition",
        )

    cancelled = 0
    with atomic("Update payment status"):
        invoice.payment_status = target
        if target is PaymentStatus.CANCELLED:
            cancelled = _cancel_open_lines(invoice.id)

    current_app.logger.info(
        "Invoice %s payment status -> %s (%d line(s) cancelled)", invoice.id, target.value, cancelled
    )
    return target
