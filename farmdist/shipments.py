# farmdist/shipments.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from .services import shipments as shipment_service
from .utils.guards import account_required, courier_required

shipments_bp = Blueprint("shipments", __name__, url_prefix="/proses-pengiriman")


@shipments_bp.route("", methods=["GET"])
@account_required
def list_for_buyer():
    return jsonify(shipment_service.list_for_buyer(current_user)), 200


@shipments_bp.route("/farm", methods=["GET"])
@account_required
def list_for_farm():
    return jsonify(shipment_service.list_for_farm(current_user)), 200


@shipments_bp.route("/pengirim", methods=["GET"])
@courier_required
def list_for_courier():
    return jsonify(shipment_service.list_for_courier(current_user)), 200


@shipments_bp.route("/by", methods=["GET"])
@login_required
def get_shipment():
    return jsonify(shipment_service.get_shipment(current_user, request.args.get("id"))), 200


@shipments_bp.route("", methods=["POST"])
@account_required
def create_shipment():
    record = shipment_service.create_shipment(current_user, request.get_json(silent=True))
    return jsonify({"message": "Shipment process created successfully", "data": record}), 201


@shipments_bp.route("/update", methods=["PUT"])
@login_required
def update_shipment():
    # Multipart from the mobile clients; JSON works too when no image is sent.
    fields = request.form if request.form else (request.get_json(silent=True) or {})
    record = shipment_service.update_shipment(
        current_user,
        request.args.get("id"),
        fields,
        request.files.get("image_pengiriman"),
    )
    return jsonify({"message": "Shipment process updated successfully", "data": record}), 200
