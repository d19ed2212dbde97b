# farmdist/orders.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user

from .services import orders as order_service
from .services import projections
from .utils.format import format_currency
from .utils.guards import account_required

orders_bp = Blueprint("orders", __name__)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _invoice_id_arg(data: dict | None = None):
    """Invoice id from the query string (id_invoice) or the JSON body (invoice_id)."""
    data = data or {}
    return request.args.get("id_invoice") or data.get("invoice_id") or data.get("id_invoice")


# =========================================================
# Create order
# =========================================================
@orders_bp.route("/order", methods=["POST"])
@account_required
def create_order():
    receipt = order_service.create_order(current_user, request.get_json(silent=True))
    return (
        jsonify(
            {
                "message": "Order created successfully",
                "invoice_id": receipt.invoice_id,
                "invoice_number": receipt.invoice_number,
                "total_harga": format_currency(receipt.subtotal),
                "shipping_cost": format_currency(receipt.shipping_cost),
                "total_amount": format_currency(receipt.total_amount),
                "shipment_ids": receipt.shipment_ids,
            }
        ),
        201,
    )


# =========================================================
# Read views
# =========================================================
@orders_bp.route("/all/order", methods=["GET"])
@account_required
def orders_for_farm():
    return jsonify(projections.orders_for_farm(current_user)), 200


@orders_bp.route("/order/by", methods=["GET"])
@account_required
def order_by_invoice():
    return jsonify(projections.order_by_invoice(current_user, request.args.get("id_invoice"))), 200


@orders_bp.route("/order/user", methods=["GET"])
@account_required
def orders_for_buyer():
    data = projections.orders_for_buyer(current_user)
    return (
        jsonify(
            {
                "status": "success",
                "message": "Orders retrieved successfully",
                "data": data,
            }
        ),
        200,
    )


# =========================================================
# Status / delete
# =========================================================
@orders_bp.route("/order/update", methods=["PUT"])
@account_required
def update_order_status():
    data = _json_body()
    invoice_id, status, count = order_service.update_order_status(
        current_user, _invoice_id_arg(data), data.get("status")
    )
    return (
        jsonify(
            {
                "message": "Order status updated successfully",
                "invoice_id": invoice_id,
                "status": status.value,
                "updated": count,
            }
        ),
        200,
    )


@orders_bp.route("/order/delete", methods=["DELETE"])
@account_required
def delete_order():
    invoice_id = order_service.delete_order(current_user, _invoice_id_arg(_json_body()))
    return jsonify({"message": "Order and invoice deleted successfully", "invoice_id": invoice_id}), 200


@orders_bp.route("/order/payment-status", methods=["PUT"])
@account_required
def update_payment_status():
    data = _json_body()
    status = order_service.update_payment_status(
        current_user, _invoice_id_arg(data), data.get("payment_status")
    )
    return jsonify({"message": "Payment status updated successfully", "payment_status": status.value}), 200


# =========================================================
# Proof of transfer
# =========================================================
@orders_bp.route("/order/bukti-transfer", methods=["PUT"])
@account_required
def upload_transfer_proof():
    url = order_service.attach_transfer_proof(
        current_user, request.args.get("id_invoice"), request.files.get("bukti_transfer")
    )
    return (
        jsonify(
            {
                "message": "Bukti transfer uploaded successfully",
                "proof_of_transfer": url,
                "payment_status": "Sending",
            }
        ),
        200,
    )
