# farmdist/services/projections.py
"""
Read-side views over invoices and their order lines.

Pure queries: nothing here writes. Every list is ordered explicitly so the same
request against an unchanged store yields the same JSON.
"""

from __future__ import annotations

import sqlalchemy as sa

from farmdist.errors import NotFound
from farmdist.extensions import db
from farmdist.models import Invoice, Order, Product, ShipmentProcess
from farmdist.services.orders import get_invoice_or_404
from farmdist.utils.format import format_currency
from farmdist.utils.parsers import iso
from farmdist.utils.principal import KIND_COURIER


def _line_to_dict(line: Order) -> dict:
    return {
        "order_id": line.id,
        "product_id": line.product_id,
        "product_name": line.product.name if line.product else None,
        "quantity": line.quantity,
        "total_harga": line.total_harga,
        "status": line.status.value,
    }


# =========================================================
# Farm owner dashboard: GET /all/order
# =========================================================
def orders_for_farm(principal) -> list[dict]:
    farm = principal.require_farm()

    lines = (
        Order.query.join(Product, Order.product_id == Product.id)
        .filter(Product.farm_id == farm.id)
        .order_by(Order.invoice_id.desc(), Order.id)
        .all()
    )

    grouped: dict[int, dict] = {}
    for line in lines:
        entry = grouped.get(line.invoice_id)
        if entry is None:
            inv = line.invoice
            buyer = inv.buyer
            entry = grouped[line.invoice_id] = {
                "id_invoice": inv.id,
                "invoice_number": inv.invoice_number,
                "nama_pembeli": buyer.name if buyer else None,
                "no_telp": buyer.phone if buyer else None,
                "email": buyer.email if buyer else None,
                "payment_status": inv.payment_status.value,
                "payment_method": inv.payment_method,
                "issued_date": iso(inv.issued_date),
                "total_harga": format_currency(inv.total_amount),
                "proof_of_transfer": inv.proof_of_transfer,
                "orders": [],
                "_farm_total": 0.0,
            }
        entry["orders"].append(_line_to_dict(line))
        entry["_farm_total"] += line.total_harga

    out = []
    for entry in grouped.values():
        entry["total_harga_farm"] = format_currency(entry.pop("_farm_total"))
        out.append(entry)
    return out


# =========================================================
# Single invoice: GET /order/by?id_invoice=
# =========================================================
def _can_view_invoice(principal, invoice: Invoice) -> bool:
    if principal.kind == KIND_COURIER:
        courier = principal.require_courier()
        hit = db.session.scalar(
            sa.select(ShipmentProcess.id)
            .where(ShipmentProcess.invoice_id == invoice.id, ShipmentProcess.courier_id == courier.id)
            .limit(1)
        )
        return hit is not None

    acct = principal.require_account()
    if invoice.user_id == acct.id or principal.is_admin:
        return True

    farm = principal.owned_farm()
    if farm is None:
        return False
    hit = db.session.scalar(
        sa.select(Order.id)
        .join(Product, Order.product_id == Product.id)
        .where(Order.invoice_id == invoice.id, Product.farm_id == farm.id)
        .limit(1)
    )
    return hit is not None


def order_by_invoice(principal, invoice_id) -> dict:
    invoice = get_invoice_or_404(invoice_id)
    if not _can_view_invoice(principal, invoice):
        raise NotFound("Invoice not found")

    lines = Order.query.filter_by(invoice_id=invoice.id).order_by(Order.id).all()
    return {
        "invoice": {
            "id_invoice": invoice.id,
            "invoice_number": invoice.invoice_number,
            "payment_status": invoice.payment_status.value,
            "payment_method": invoice.payment_method,
            "issued_date": iso(invoice.issued_date),
            "due_date": iso(invoice.due_date),
            "total_amount": invoice.total_amount,
            "shipping_cost": invoice.shipping_cost,
            "total_harga_product": invoice.total_harga_product,
            "proof_of_transfer": invoice.proof_of_transfer,
        },
        "orders": [_line_to_dict(line) for line in lines],
    }


# =========================================================
# Buyer history: GET /order/user
# =========================================================
def orders_for_buyer(principal) -> list[dict]:
    acct = principal.require_account()
    invoices = Invoice.query.filter_by(user_id=acct.id).order_by(Invoice.id.desc()).all()

    data = []
    for inv in invoices:
        data.append(
            {
                "id_invoice": inv.id,
                "invoice_number": inv.invoice_number,
                "payment_status": inv.payment_status.value,
                "payment_method": inv.payment_method,
                "issued_date": iso(inv.issued_date),
                "due_date": iso(inv.due_date),
                "total_harga_product": format_currency(inv.total_harga_product),
                "shipping_cost": format_currency(inv.shipping_cost),
                "total_amount": format_currency(inv.total_amount),
                "proof_of_transfer": inv.proof_of_transfer,
                "orders": [_line_to_dict(line) for line in inv.orders],
            }
        )
    return data
