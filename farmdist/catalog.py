# farmdist/catalog.py
"""Farms, nearby-farm lookup, product statuses, products and shipping tariffs."""

from __future__ import annotations

import sqlalchemy as sa
from flask import Blueprint, current_app, jsonify, request, send_from_directory
from flask_login import current_user

from .errors import Conflict, Forbidden, InvalidArgument, NotFound
from .extensions import db
from .models import Address, Courier, Farm, Order, Product, ShipmentProcess, ShippingTariff, StatusProduct
from .services.object_storage import read_image, upload_dir, upload_image
from .utils.db import atomic
from .utils.geo import haversine_km, valid_point
from .utils.guards import admin_required, role_required
from .utils.parsers import clean_str, iso, parse_datetime, parse_float, parse_int

catalog = Blueprint("catalog", __name__)


# =========================================================
# Helpers
# =========================================================
def _payload():
    """Multipart form (with an image) or JSON body."""
    if request.form:
        return request.form
    return request.get_json(silent=True) or {}


def _optional_image(field: str, folder: str) -> str | None:
    f = request.files.get(field)
    if f is None or not (f.filename or "").strip():
        return None
    content, ext = read_image(f)
    return upload_image(content, folder=folder, ext=ext).url


def farm_to_dict(farm: Farm) -> dict:
    return {
        "id": farm.id,
        "user_id": farm.owner_id,
        "nama_peternakan": farm.name,
        "farm_type": farm.farm_type,
        "alamat": farm.address.one_line() if farm.address else None,
        "lat": farm.latitude,
        "lon": farm.longitude,
        "phone": farm.phone,
        "email": farm.email,
        "website": farm.website,
        "description": farm.description,
        "image_farm": farm.image_url,
        "created_at": iso(farm.created_at),
    }


def product_to_dict(p: Product) -> dict:
    return {
        "id": p.id,
        "farm_id": p.farm_id,
        "nama_peternakan": p.farm.name if p.farm else None,
        "product_name": p.name,
        "description": p.description,
        "price_per_kg": p.price_per_kg,
        "weight_per_unit": p.weight_per_unit,
        "stock_kg": p.stock_kg,
        "image_url": p.image_url,
        "status": p.status.name if p.status else None,
        "status_id": p.status_id,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def _own_product(product_id) -> Product:
    pid = parse_int(product_id)
    if not pid:
        raise InvalidArgument("Invalid or missing product ID.")
    product = db.session.get(Product, pid)
    if product is None:
        raise NotFound("Product not found")
    farm = current_user.owned_farm()
    if not current_user.is_admin and (farm is None or product.farm_id != farm.id):
        raise Forbidden("This product does not belong to your farm.")
    return product


def _product_numbers(data, *, required: bool) -> dict:
    out = {}
    for key, attr in (("price_per_kg", "price_per_kg"), ("weight_per_unit", "weight_per_unit"), ("stock_kg", "stock_kg")):
        raw = data.get(key)
        if raw in (None, ""):
            if required and key != "weight_per_unit":
                raise InvalidArgument(f"{key} is required.")
            continue
        value = parse_float(raw)
        if value is None or value < 0:
            raise InvalidArgument(f"{key} must be a non-negative number.")
        out[attr] = value

    raw_status = data.get("status_id")
    if raw_status not in (None, ""):
        status_id = parse_int(raw_status)
        if not status_id or db.session.get(StatusProduct, status_id) is None:
            raise InvalidArgument("Unknown status_id.")
        out["status_id"] = status_id
    return out


# =========================================================
# Farms (peternakan)
# =========================================================
@catalog.route("/peternakan", methods=["POST"])
@role_required("farmer", "admin")
def create_farm():
    acct = current_user.require_account()
    if current_user.owned_farm() is not None:
        raise Conflict("This account already owns a farm.")

    data = _payload()
    name = clean_str(data.get("nama_peternakan")) or clean_str(data.get("name"))
    if not name:
        raise InvalidArgument("nama_peternakan is required.")

    farm = Farm(
        owner_id=acct.id,
        name=name,
        farm_type=clean_str(data.get("farm_type")),
        latitude=parse_float(data.get("lat")),
        longitude=parse_float(data.get("lon")),
        phone=clean_str(data.get("phone")),
        email=clean_str(data.get("email")),
        website=clean_str(data.get("website")),
        description=clean_str(data.get("description")),
    )
    address = {k: clean_str(data.get(k)) for k in Address.FIELDS}
    if any(address.values()):
        farm.address = Address(**address)
    farm.image_url = _optional_image("image_farm", "farms")

    with atomic("Create farm"):
        db.session.add(farm)

    current_app.logger.info("Farm %s created by account %s", farm.id, acct.id)
    return jsonify({"message": "Peternakan created successfully", "data": farm_to_dict(farm)}), 201


@catalog.route("/peternakan/get", methods=["GET"])
@role_required("farmer", "admin")
def get_my_farm():
    return jsonify(farm_to_dict(current_user.require_farm())), 200


def _farm_for_caller(raw_id) -> Farm:
    """Owners act on their own farm; admins name one with ?id=."""
    fid = parse_int(raw_id)
    if current_user.is_admin and fid:
        farm = db.session.get(Farm, fid)
        if farm is None:
            raise NotFound("Farm not found")
        return farm
    farm = current_user.require_farm()
    if fid and fid != farm.id:
        raise Forbidden("You can only manage your own farm.")
    return farm


@catalog.route("/peternakan/update", methods=["PUT"])
@role_required("farmer", "admin")
def update_farm():
    farm = _farm_for_caller(request.args.get("id"))
    data = _payload()

    changes = {
        attr: clean_str(data.get(key))
        for key, attr in (
            ("nama_peternakan", "name"),
            ("farm_type", "farm_type"),
            ("phone", "phone"),
            ("email", "email"),
            ("website", "website"),
            ("description", "description"),
        )
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    for key, attr in (("lat", "latitude"), ("lon", "longitude")):
        if data.get(key) in (None, ""):
            continue
        value = parse_float(data.get(key))
        if value is None:
            raise InvalidArgument(f"{key} must be a number.")
        changes[attr] = value
    image_url = _optional_image("image_farm", "farms")
    if image_url:
        changes["image_url"] = image_url

    address = {k: clean_str(data.get(k)) for k in Address.FIELDS}
    address = {k: v for k, v in address.items() if v is not None}
    if not changes and not address:
        raise InvalidArgument("No fields to update.")

    with atomic("Update farm"):
        for attr, value in changes.items():
            setattr(farm, attr, value)
        if address:
            if farm.address is None:
                farm.address = Address()
            for attr, value in address.items():
                setattr(farm.address, attr, value)

    current_app.logger.info("Farm %s updated: %s", farm.id, ", ".join(sorted({**changes, **address})))
    return jsonify({"message": "Peternakan updated successfully", "data": farm_to_dict(farm)}), 200


@catalog.route("/peternakan/delete", methods=["DELETE"])
@role_required("farmer", "admin")
def delete_farm():
    farm = _farm_for_caller(request.args.get("id"))

    has_orders = (
        db.session.query(Order.id)
        .join(Product, Order.product_id == Product.id)
        .filter(Product.farm_id == farm.id)
        .first()
    )
    if has_orders or ShipmentProcess.query.filter_by(farm_id=farm.id).first():
        raise Conflict("Farm has orders and cannot be deleted.")

    fid, address = farm.id, farm.address
    with atomic("Delete farm"):
        db.session.execute(sa.delete(Courier).where(Courier.farm_id == fid))
        db.session.execute(sa.delete(Product).where(Product.farm_id == fid))
        db.session.delete(farm)
        if address is not None:
            db.session.delete(address)

    current_app.logger.info("Farm %s deleted", fid)
    return jsonify({"message": "Peternakan deleted successfully", "id": fid}), 200


@catalog.route("/all/peternak", methods=["GET"])
def list_farms():
    out = []
    for farm in Farm.query.order_by(Farm.id).all():
        row = farm_to_dict(farm)
        row["owner"] = {"id_user": farm.owner.id, "nama": farm.owner.name, "no_telp": farm.owner.phone,
                        "email": farm.owner.email}
        out.append(row)
    return jsonify(out), 200


# =========================================================
# Nearby farms (toko)
# =========================================================
@catalog.route("/toko", methods=["GET"])
def farms_within_radius():
    lat = parse_float(request.args.get("lat"))
    lon = parse_float(request.args.get("lon"))
    radius_km = parse_float(request.args.get("radius"))
    if not valid_point(lat, lon):
        raise InvalidArgument("lat must be within [-90, 90] and lon within [-180, 180].")
    if radius_km is None or radius_km < 0:
        raise InvalidArgument("radius must be a non-negative number of kilometres.")

    found = []
    for farm in Farm.query.filter(Farm.latitude.isnot(None), Farm.longitude.isnot(None)).all():
        distance = haversine_km(lat, lon, farm.latitude, farm.longitude)
        if distance <= radius_km:
            found.append((distance, farm))
    if not found:
        raise NotFound("No stores found within the given radius")

    found.sort(key=lambda pair: (pair[0], pair[1].id))
    data = [
        {
            "id": farm.id,
            "nama_toko": farm.name,
            "kategori": farm.farm_type,
            "phonenumber": farm.phone,
            "email": farm.email,
            "description": farm.description,
            "gambar_toko": farm.image_url,
            "location": [farm.longitude, farm.latitude],
            "distance_km": round(distance, 3),
            "created_at": iso(farm.created_at),
        }
        for distance, farm in found
    ]
    return jsonify({"status": "success", "message": "Stores found within radius", "data": data}), 200


# =========================================================
# Product status (status_product)
# =========================================================
def status_to_dict(s: StatusProduct) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "description": s.description,
        "available_date": iso(s.available_date),
    }


def _status_or_404(raw_id) -> StatusProduct:
    sid = parse_int(raw_id)
    if not sid:
        raise InvalidArgument("Invalid or missing status ID.")
    status = db.session.get(StatusProduct, sid)
    if status is None:
        raise NotFound("Status product not found")
    return status


def _available_date(data):
    raw = clean_str(data.get("available_date"))
    if raw is None:
        return None
    value = parse_datetime(raw)
    if value is None:
        raise InvalidArgument("available_date must be an ISO date or datetime.")
    return value


@catalog.route("/status-product", methods=["POST"])
@role_required("farmer", "admin")
def create_status_product():
    data = request.get_json(silent=True) or {}
    name = clean_str(data.get("name"))
    if not name:
        raise InvalidArgument("name is required.")

    status = StatusProduct(
        name=name,
        description=clean_str(data.get("description")),
        available_date=_available_date(data),
    )
    with atomic("Create status product"):
        db.session.add(status)

    return jsonify({"message": "Status product created successfully", "data": status_to_dict(status)}), 201


@catalog.route("/status-product/get", methods=["GET"])
def list_status_products():
    rows = StatusProduct.query.order_by(StatusProduct.id).all()
    return jsonify([status_to_dict(s) for s in rows]), 200


@catalog.route("/status-product/get-by-id", methods=["GET"])
def get_status_product():
    return jsonify(status_to_dict(_status_or_404(request.args.get("id")))), 200


@catalog.route("/status-product/update", methods=["PUT"])
@role_required("farmer", "admin")
def update_status_product():
    status = _status_or_404(request.args.get("id"))
    data = request.get_json(silent=True) or {}

    changes = {"name": clean_str(data.get("name")), "description": clean_str(data.get("description"))}
    changes = {k: v for k, v in changes.items() if v is not None}
    available = _available_date(data)
    if available is not None:
        changes["available_date"] = available
    if not changes:
        raise InvalidArgument("No fields to update.")

    with atomic("Update status product"):
        for attr, value in changes.items():
            setattr(status, attr, value)

    return jsonify({"message": "Status product updated successfully", "data": status_to_dict(status)}), 200


@catalog.route("/status-product/delete", methods=["DELETE"])
@role_required("farmer", "admin")
def delete_status_product():
    status = _status_or_404(request.args.get("id"))

    sid = status.id
    with atomic("Delete status product"):
        db.session.execute(
            sa.update(Product)
            .where(Product.status_id == sid)
            .values(status_id=None)
            .execution_options(synchronize_session="fetch")
        )
        db.session.delete(status)

    current_app.logger.info("Status product %s deleted", sid)
    return jsonify({"message": "Status product deleted successfully", "id": sid}), 200


# =========================================================
# Products
# =========================================================
@catalog.route("/add/product", methods=["POST"])
@role_required("farmer", "admin")
def create_product():
    farm = current_user.require_farm()
    data = _payload()

    name = clean_str(data.get("product_name")) or clean_str(data.get("name"))
    if not name:
        raise InvalidArgument("product_name is required.")

    product = Product(
        farm_id=farm.id,
        name=name,
        description=clean_str(data.get("description")),
        **_product_numbers(data, required=True),
    )
    product.image_url = _optional_image("image", "products")

    with atomic("Create product"):
        db.session.add(product)

    current_app.logger.info("Product %s added to farm %s", product.id, farm.id)
    return jsonify({"message": "Product created successfully", "data": product_to_dict(product)}), 201


@catalog.route("/product", methods=["GET"])
def list_products():
    q = Product.query
    farm_id = parse_int(request.args.get("farm_id"))
    if farm_id:
        q = q.filter(Product.farm_id == farm_id)
    return jsonify([product_to_dict(p) for p in q.order_by(Product.id).all()]), 200


@catalog.route("/product/get", methods=["GET"])
def get_product():
    pid = parse_int(request.args.get("id"))
    if not pid:
        raise InvalidArgument("Invalid or missing product ID.")
    product = db.session.get(Product, pid)
    if product is None:
        raise NotFound("Product not found")
    return jsonify(product_to_dict(product)), 200


@catalog.route("/product/edit", methods=["PUT"])
@role_required("farmer", "admin")
def update_product():
    product = _own_product(request.args.get("id"))
    data = _payload()

    changes = _product_numbers(data, required=False)
    name = clean_str(data.get("product_name")) or clean_str(data.get("name"))
    if name:
        changes["name"] = name
    description = clean_str(data.get("description"))
    if description:
        changes["description"] = description
    image_url = _optional_image("image", "products")
    if image_url:
        changes["image_url"] = image_url

    if not changes:
        raise InvalidArgument("No fields to update.")

    with atomic("Update product"):
        for attr, value in changes.items():
            setattr(product, attr, value)

    current_app.logger.info("Product %s updated: %s", product.id, ", ".join(sorted(changes)))
    return jsonify({"message": "Product updated successfully", "data": product_to_dict(product)}), 200


@catalog.route("/product/delete", methods=["DELETE"])
@role_required("farmer", "admin")
def delete_product():
    product = _own_product(request.args.get("id"))
    if Order.query.filter_by(product_id=product.id).first() is not None:
        raise Conflict("Product has orders and cannot be deleted.")

    pid = product.id
    with atomic("Delete product"):
        db.session.delete(product)

    current_app.logger.info("Product %s deleted", pid)
    return jsonify({"message": "Product deleted successfully", "id": pid}), 200


# =========================================================
# Shipping tariffs (pengiriman)
# =========================================================
def tariff_to_dict(t: ShippingTariff) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "fuel_consumption": t.fuel_consumption,
        "fuel_price": t.fuel_price,
        "cost_per_km": t.cost_per_km,
    }


@catalog.route("/pengiriman", methods=["GET"])
def list_tariffs():
    rows = ShippingTariff.query.order_by(ShippingTariff.id).all()
    return jsonify([tariff_to_dict(t) for t in rows]), 200


@catalog.route("/pengiriman", methods=["POST"])
@admin_required
def create_tariff():
    data = request.get_json(silent=True) or {}
    fuel_consumption = parse_float(data.get("fuel_consumption"))
    fuel_price = parse_float(data.get("fuel_price"))
    if fuel_consumption is None or fuel_price is None or fuel_consumption < 0 or fuel_price < 0:
        raise InvalidArgument("fuel_consumption and fuel_price must be non-negative numbers.")

    tariff = ShippingTariff(
        name=clean_str(data.get("name")),
        fuel_consumption=fuel_consumption,
        fuel_price=fuel_price,
    )
    with atomic("Create tariff"):
        db.session.add(tariff)

    current_app.logger.info("Tariff %s created", tariff.id)
    return jsonify({"message": "Tariff created successfully", "data": tariff_to_dict(tariff)}), 201


# =========================================================
# Uploaded files (local storage backend)
# =========================================================
@catalog.route("/files/<path:key>", methods=["GET"])
def uploaded_file(key: str):
    return send_from_directory(upload_dir(), key)
