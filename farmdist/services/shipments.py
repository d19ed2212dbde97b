# farmdist/services/shipments.py
"""
Shipment process tracker (proses_pengiriman).

One record per (invoice, farm). Visibility follows the ownership chain:
the buyer sees records of their invoices, a farm owner sees their farm's
records, a courier sees the records assigned to them, admins see everything.
A record the caller cannot see is reported as missing.
"""

from __future__ import annotations

from datetime import timezone

from flask import current_app

from farmdist.errors import Conflict, Forbidden, InvalidArgument, NotFound
from farmdist.extensions import db
from farmdist.models import (
    SHIPMENT_TRANSITIONS,
    Courier,
    Invoice,
    ShipmentProcess,
    ShipmentStatus,
    can_transition,
    parse_status,
    utcnow_naive,
)
from farmdist.services.object_storage import read_image, upload_image
from farmdist.services.orders import farm_owns_lines
from farmdist.utils.clock import day_name
from farmdist.utils.db import atomic
from farmdist.utils.parsers import clean_str, iso, parse_datetime, parse_int, parse_point
from farmdist.utils.principal import KIND_COURIER


# =========================================================
# Serialization
# =========================================================
def _point(lat, lon):
    if lat is None or lon is None:
        return None
    return [lon, lat]


def shipment_to_dict(sp: ShipmentProcess) -> dict:
    return {
        "id": sp.id,
        "id_invoice": sp.invoice_id,
        "invoice_number": sp.invoice.invoice_number if sp.invoice else None,
        "id_farm": sp.farm_id,
        "nama_farm": sp.farm.name if sp.farm else None,
        "id_pengirim": sp.courier_id,
        "nama_pengirim": sp.courier.name if sp.courier else None,
        "hari_dikirim": sp.sent_day,
        "tanggal_dikirim": iso(sp.sent_at),
        "hari_diterima": sp.received_day,
        "tanggal_diterima": iso(sp.received_at),
        "status_pengiriman": sp.status.value if sp.status else None,
        "image_pengiriman": sp.image_url,
        "alamat_pengirim": sp.sender_address,
        "alamat_penerima": sp.receiver_address,
        "location_pengirim": _point(sp.sender_latitude, sp.sender_longitude),
        "location_penerima": _point(sp.receiver_latitude, sp.receiver_longitude),
    }


# =========================================================
# Reads
# =========================================================
def list_for_buyer(principal) -> list[dict]:
    acct = principal.require_account()
    rows = (
        ShipmentProcess.query.join(Invoice, ShipmentProcess.invoice_id == Invoice.id)
        .filter(Invoice.user_id == acct.id)
        .order_by(ShipmentProcess.id)
        .all()
    )
    return [shipment_to_dict(sp) for sp in rows]


def list_for_farm(principal) -> list[dict]:
    farm = principal.require_farm()
    rows = ShipmentProcess.query.filter_by(farm_id=farm.id).order_by(ShipmentProcess.id).all()
    return [shipment_to_dict(sp) for sp in rows]


def list_for_courier(principal) -> list[dict]:
    courier = principal.require_courier()
    rows = ShipmentProcess.query.filter_by(courier_id=courier.id).order_by(ShipmentProcess.id).all()
    return [shipment_to_dict(sp) for sp in rows]


def _relation(principal, sp: ShipmentProcess) -> str | None:
    """How the caller relates to a record: owner / courier / buyer / admin, or None."""
    if principal.kind == KIND_COURIER:
        courier = principal.require_courier()
        return "courier" if sp.courier_id == courier.id else None

    acct = principal.require_account()
    farm = principal.owned_farm()
    if farm and sp.farm_id == farm.id:
        return "owner"
    if principal.is_admin:
        return "admin"
    if sp.invoice and sp.invoice.user_id == acct.id:
        return "buyer"
    return None


def _visible_or_404(principal, shipment_id) -> tuple[ShipmentProcess, str]:
    sid = parse_int(shipment_id)
    if not sid:
        raise InvalidArgument("Invalid or missing shipment ID.")
    sp = db.session.get(ShipmentProcess, sid)
    relation = _relation(principal, sp) if sp else None
    if relation is None:
        raise NotFound("Shipment process not found")
    return sp, relation


def get_shipment(principal, shipment_id) -> dict:
    sp, _ = _visible_or_404(principal, shipment_id)
    return shipment_to_dict(sp)


# =========================================================
# Writes
# =========================================================
def _courier_for_farm(courier_id: int, farm_id: int) -> Courier:
    courier = db.session.get(Courier, courier_id)
    if courier is None or courier.farm_id != farm_id:
        raise InvalidArgument("Courier not found for this farm.")
    return courier


def create_shipment(principal, payload) -> dict:
    farm = principal.require_farm()
    payload = payload if isinstance(payload, dict) else {}

    invoice_id = parse_int(payload.get("id_invoice"))
    if not invoice_id:
        raise InvalidArgument("id_invoice is required")
    if db.session.get(Invoice, invoice_id) is None:
        raise InvalidArgument("Invoice not found")
    if not farm_owns_lines(farm.id, invoice_id):
        raise Forbidden("This invoice has no products from your farm.")

    existing = ShipmentProcess.query.filter_by(invoice_id=invoice_id, farm_id=farm.id).first()
    if existing is not None:
        raise Conflict("A shipment process already exists for this invoice.")

    sp = ShipmentProcess(
        invoice_id=invoice_id,
        farm_id=farm.id,
        status=ShipmentStatus.PENDING,
        sent_day=day_name(),
        sender_address=clean_str(payload.get("alamat_pengirim")),
        receiver_address=clean_str(payload.get("alamat_penerima")),
    )
    courier_id = parse_int(payload.get("id_pengirim"))
    if courier_id:
        sp.courier_id = _courier_for_farm(courier_id, farm.id).id
    sender = parse_point(payload.get("location_pengirim"))
    if sender:
        sp.sender_latitude, sp.sender_longitude = sender
    receiver = parse_point(payload.get("location_penerima"))
    if receiver:
        sp.receiver_latitude, sp.receiver_longitude = receiver

    with atomic("Create shipment process"):
        db.session.add(sp)

    current_app.logger.info("Shipment process %s opened for invoice %s (farm %s)", sp.id, invoice_id, farm.id)
    return shipment_to_dict(sp)


def _set_if_given(fields, key: str):
    """Blank and missing both mean "leave as is"."""
    return clean_str(fields.get(key)) if fields is not None else None


def _date_field(fields, key: str):
    raw = _set_if_given(fields, key)
    if raw is None:
        return None
    value = parse_datetime(raw)
    if value is None:
        raise InvalidArgument(f"{key} must be an ISO date or datetime.")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def update_shipment(principal, shipment_id, fields, image=None) -> dict:
    """
    Partial update. Every field that is missing or blank keeps its stored value,
    the image included. Status moves follow SHIPMENT_TRANSITIONS; entering
    "In Transit" or "Delivered" stamps the matching date and day when the
    record has none yet.
    """
    sp, relation = _visible_or_404(principal, shipment_id)
    if relation not in ("owner", "courier", "admin"):
        raise Forbidden("Only the farm owner or the assigned courier can update this shipment.")

    changes: dict = {}

    raw_courier = _set_if_given(fields, "id_pengirim")
    if raw_courier is not None:
        if relation == "courier":
            raise Forbidden("Couriers cannot reassign a shipment.")
        courier_id = parse_int(raw_courier)
        if not courier_id:
            raise InvalidArgument("id_pengirim must be a number.")
        changes["courier_id"] = _courier_for_farm(courier_id, sp.farm_id).id

    for key, attr in (
        ("hari_dikirim", "sent_day"),
        ("hari_diterima", "received_day"),
        ("alamat_pengirim", "sender_address"),
        ("alamat_penerima", "receiver_address"),
    ):
        value = _set_if_given(fields, key)
        if value is not None:
            changes[attr] = value

    for key, attr, day_attr in (
        ("tanggal_dikirim", "sent_at", "sent_day"),
        ("tanggal_diterima", "received_at", "received_day"),
    ):
        value = _date_field(fields, key)
        if value is not None:
            changes[attr] = value
            changes.setdefault(day_attr, day_name(value))

    for key, lat_attr, lon_attr in (
        ("location_pengirim", "sender_latitude", "sender_longitude"),
        ("location_penerima", "receiver_latitude", "receiver_longitude"),
    ):
        raw = fields.get(key) if fields is not None else None
        if isinstance(raw, str):
            raw = clean_str(raw)
        if not raw:
            continue
        point = parse_point(raw)
        if point is None:
            raise InvalidArgument(f"{key} must be a [lon, lat] pair.")
        changes[lat_attr], changes[lon_attr] = point

    raw_status = _set_if_given(fields, "status_pengiriman")
    if raw_status is not None:
        target = parse_status(ShipmentStatus, raw_status)
        if target is None:
            allowed = ", ".join(s.value for s in ShipmentStatus)
            raise InvalidArgument(f"Unknown shipment status. Use one of: {allowed}.")
        if target is not sp.status:
            if not can_transition(SHIPMENT_TRANSITIONS, sp.status, target):
                raise InvalidArgument(
                    f"Shipment cannot move from {sp.status.value} to {target.value}.",
                    error="Invalid status transition",
                )
            changes["status"] = target
            _stamp(sp, target, changes)

    has_image = image is not None and (image.filename or "").strip()
    if not changes and not has_image:
        raise InvalidArgument("No fields to update.")

    if has_image:
        content, ext = read_image(image)
        changes["image_url"] = upload_image(content, folder="proses_pengiriman", ext=ext).url

    with atomic("Update shipment process"):
        for attr, value in changes.items():
            setattr(sp, attr, value)

    current_app.logger.info("Shipment process %s updated by %s: %s", sp.id, relation, ", ".join(sorted(changes)))
    return shipment_to_dict(sp)


def _stamp(sp: ShipmentProcess, target: ShipmentStatus, changes: dict) -> None:
    if target is ShipmentStatus.IN_TRANSIT:
        date_attr, day_attr = "sent_at", "sent_day"
    elif target is ShipmentStatus.DELIVERED:
        date_attr, day_attr = "received_at", "received_day"
    else:
        return

    if changes.get(date_attr) is None and getattr(sp, date_attr) is None:
        stamped = utcnow_naive()
        changes[date_attr] = stamped
        changes.setdefault(day_attr, day_name(stamped))
