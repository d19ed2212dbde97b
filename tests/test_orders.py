from __future__ import annotations

import io

import pytest
import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from farmdist.errors import InvalidArgument, Unauthorized
from farmdist.extensions import db
from farmdist.models import Invoice, Order, OrderStatus, PaymentStatus, Product, ShipmentProcess
from farmdist.services import orders as order_service
from farmdist.utils.principal import KIND_ACCOUNT, Principal


def _stock(app, product_id):
    with app.app_context():
        return db.session.get(Product, product_id).stock_kg


def _invoice_count(app):
    with app.app_context():
        return Invoice.query.count()


def _order_count(app):
    with app.app_context():
        return Order.query.count()


# =========================================================
# CreateOrder: scenarios
# =========================================================
def test_create_order_prices_cart_and_decrements_stock(app, client, buyer_headers, order_payload):
    resp = client.post("/order", json=order_payload, headers=buyer_headers)

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["invoice_number"].startswith("INV-1-")
    assert body["total_harga"] == "Rp.30,000.00"
    assert body["shipping_cost"] == "Rp.30,000.00"
    assert body["total_amount"] == "Rp.60,000.00"

    with app.app_context():
        inv = db.session.get(Invoice, body["invoice_id"])
        assert inv.total_harga_product == 30000
        assert inv.shipping_cost == 30000
        assert inv.total_amount == 60000
        assert inv.payment_status is PaymentStatus.PENDING
        assert (inv.due_date - inv.issued_date).days == 7
        assert [line.total_harga for line in inv.orders] == [30000]
        assert db.session.get(Product, 5).stock_kg == 7


def test_insufficient_stock_rejects_without_mutation(app, client, buyer_headers, order_payload):
    with app.app_context():
        db.session.get(Product, 5).stock_kg = 2
        db.session.commit()

    resp = client.post("/order", json=order_payload, headers=buyer_headers)

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Stock is insufficient"
    assert _stock(app, 5) == 2
    assert _invoice_count(app) == 0
    assert _order_count(app) == 0


def test_unknown_tariff_rejects(app, client, buyer_headers, order_payload):
    order_payload["pengiriman_id"] = 99

    resp = client.post("/order", json=order_payload, headers=buyer_headers)

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Bad Request", "message": "Invalid Pengiriman ID"}
    assert _invoice_count(app) == 0


def test_failure_on_later_item_rolls_back_earlier_lines(app, client, buyer_headers, order_payload):
    order_payload["products"] = [
        {"product_id": 6, "quantity": 4},
        {"product_id": 5, "quantity": 3},
        {"product_id": 404, "quantity": 1},
    ]

    resp = client.post("/order", json=order_payload, headers=buyer_headers)

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Product not found"
    assert _stock(app, 5) == 10
    assert _stock(app, 6) == 100
    assert _invoice_count(app) == 0
    assert _order_count(app) == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"products": [], "pengiriman_id": 2},
        {"products": [{"product_id": 5, "quantity": 1}]},
        {"products": [{"product_id": 5, "quantity": 1}], "pengiriman_id": 0},
        {"products": [{"product_id": 5, "quantity": 0}], "pengiriman_id": 2},
        {"products": [{"product_id": 5, "quantity": 1.5}], "pengiriman_id": 2},
        {"products": [{"product_id": 5, "quantity": 1}], "pengiriman_id": 2, "distance_km": -1},
        {"products": [{"product_id": 5, "quantity": 1}], "pengiriman_id": 2, "distance_km": "far"},
    ],
)
def test_malformed_cart_is_invalid_argument(app, client, buyer_headers, payload):
    resp = client.post("/order", json=payload, headers=buyer_headers)

    assert resp.status_code == 400
    assert set(resp.get_json()) == {"error", "message"}
    assert _invoice_count(app) == 0


def test_create_order_requires_token(client, order_payload):
    resp = client.post("/order", json=order_payload)

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Unauthorized"


def test_token_for_unknown_account_is_unauthorized(app, client, auth_headers, order_payload):
    resp = client.post("/order", json=order_payload, headers=auth_headers("089999999999"))

    assert resp.status_code == 401


def test_courier_cannot_place_orders(client, courier_headers, order_payload):
    resp = client.post("/order", json=order_payload, headers=courier_headers)

    assert resp.status_code == 403


def test_missing_distance_means_no_shipping(app, client, buyer_headers, order_payload):
    del order_payload["distance_km"]

    body = client.post("/order", json=order_payload, headers=buyer_headers).get_json()

    assert body["shipping_cost"] == "Rp.0.00"
    assert body["total_amount"] == "Rp.30,000.00"


def test_same_product_twice_in_cart_counts_against_one_stock(app, client, buyer_headers, order_payload):
    order_payload["products"] = [{"product_id": 5, "quantity": 6}, {"product_id": 5, "quantity": 6}]

    resp = client.post("/order", json=order_payload, headers=buyer_headers)

    assert resp.status_code == 400
    assert _stock(app, 5) == 10


# =========================================================
# CreateOrder: invariants (direct service calls)
# =========================================================
def test_subtotal_and_total_consistency_over_many_orders(app, buyer):
    carts = [
        [{"product_id": 5, "quantity": 1}],
        [{"product_id": 6, "quantity": 3}, {"product_id": 7, "quantity": 2}],
        [{"product_id": 6, "quantity": 1}, {"product_id": 5, "quantity": 2}],
    ]
    with app.app_context():
        for i, cart in enumerate(carts):
            order_service.create_order(
                buyer, {"products": cart, "pengiriman_id": 2, "distance_km": 3.5 * i}
            )

        for inv in Invoice.query.all():
            assert inv.total_harga_product == order_service.invoice_subtotal(inv.id)
            assert inv.total_amount == pytest.approx(inv.total_harga_product + inv.shipping_cost)

        assert db.session.get(Product, 5).stock_kg == 7
        assert db.session.get(Product, 6).stock_kg == 96
        assert db.session.get(Product, 7).stock_kg == 48


def test_line_total_is_snapshotted(app, buyer, order_payload):
    with app.app_context():
        receipt = order_service.create_order(buyer, order_payload)
        db.session.get(Product, 5).price_per_kg = 99999
        db.session.commit()

        line = Order.query.filter_by(invoice_id=receipt.invoice_id).one()
        assert line.total_harga == 30000


def test_create_order_unknown_subject_is_unauthorized(app, order_payload):
    with app.app_context():
        with pytest.raises(Unauthorized):
            order_service.create_order(Principal("000", KIND_ACCOUNT), order_payload)


def test_invoice_number_collision_gets_suffix(app, buyer, order_payload, monkeypatch):
    monkeypatch.setattr(order_service.time, "time", lambda: 1700000000.4)
    order_payload["products"] = [{"product_id": 6, "quantity": 1}]

    with app.app_context():
        numbers = [order_service.create_order(buyer, order_payload).invoice_number for _ in range(3)]

    assert numbers == ["INV-1-1700000000", "INV-1-1700000000-2", "INV-1-1700000000-3"]


def test_conditional_decrement_refuses_when_stock_moved(app, buyer, order_payload, monkeypatch):
    """Stock drained between the read and the decrement: the update affects no row."""
    real_take = order_service._take_stock

    def drain_then_take(product, quantity):
        db.session.execute(sa.update(Product).where(Product.id == product.id).values(stock_kg=1))
        real_take(product, quantity)

    monkeypatch.setattr(order_service, "_take_stock", drain_then_take)

    with app.app_context():
        with pytest.raises(InvalidArgument, match="Stock is insufficient"):
            order_service.create_order(buyer, order_payload)

    assert _stock(app, 5) == 10
    assert _invoice_count(app) == 0


# =========================================================
# CreateOrder with shipment records
# =========================================================
def test_order_with_shipment_opens_one_record_per_farm(app, client, buyer_headers, order_payload):
    order_payload["products"].append({"product_id": 7, "quantity": 1})
    order_payload["shipment"] = {
        "id_pengirim": 1,
        "alamat_pengirim": "Jl. Peternakan 1",
        "alamat_penerima": "Jl. Pembeli 9",
        "location_penerima": [107.6, -6.9],
    }

    body = client.post("/order", json=order_payload, headers=buyer_headers).get_json()

    assert len(body["shipment_ids"]) == 2
    with app.app_context():
        records = ShipmentProcess.query.order_by(ShipmentProcess.farm_id).all()
        assert [(sp.farm_id, sp.courier_id) for sp in records] == [(1, 1), (2, None)]
        assert all(sp.status.value == "Pending" and sp.sent_day for sp in records)
        assert records[0].receiver_latitude == -6.9
        assert records[0].receiver_longitude == 107.6


def test_order_with_foreign_courier_rolls_back(app, client, buyer_headers, order_payload):
    order_payload["shipment"] = {"id_pengirim": 2}

    resp = client.post("/order", json=order_payload, headers=buyer_headers)

    assert resp.status_code == 400
    assert _stock(app, 5) == 10
    assert _invoice_count(app) == 0


# =========================================================
# UpdateOrderStatus
# =========================================================
def test_owner_moves_lines_through_legal_states(app, client, owner_headers, place_order):
    inv_id = place_order()["invoice_id"]

    for status in ("Processing", "Shipped", "Delivered"):
        resp = client.put("/order/update", json={"invoice_id": inv_id, "status": status}, headers=owner_headers)
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()["status"] == status


def test_illegal_transition_is_rejected(app, client, owner_headers, place_order):
    inv_id = place_order()["invoice_id"]

    resp = client.put("/order/update", json={"invoice_id": inv_id, "status": "Delivered"}, headers=owner_headers)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid status transition"
    with app.app_context():
        assert Order.query.filter_by(invoice_id=inv_id).one().status is OrderStatus.PENDING


def test_unknown_status_is_rejected(client, owner_headers, place_order):
    inv_id = place_order()["invoice_id"]

    resp = client.put("/order/update", json={"invoice_id": inv_id, "status": "Teleported"}, headers=owner_headers)

    assert resp.status_code == 400


def test_update_missing_invoice_is_not_found(client, admin_headers):
    resp = client.put("/order/update", json={"invoice_id": 404, "status": "Processing"}, headers=admin_headers)

    assert resp.status_code == 404


def test_buyer_may_only_cancel_and_cancel_restores_stock(app, client, buyer_headers, place_order):
    inv_id = place_order()["invoice_id"]
    assert _stock(app, 5) == 7

    resp = client.put("/order/update", json={"invoice_id": inv_id, "status": "Processing"}, headers=buyer_headers)
    assert resp.status_code == 403

    resp = client.put("/order/update", json={"invoice_id": inv_id, "status": "Cancelled"}, headers=buyer_headers)
    assert resp.status_code == 200
    assert _stock(app, 5) == 10


def test_owner_only_touches_own_farm_lines(app, client, owner_headers, place_order, order_payload):
    order_payload["products"].append({"product_id": 7, "quantity": 1})
    inv_id = place_order(order_payload)["invoice_id"]

    resp = client.put("/order/update", json={"invoice_id": inv_id, "status": "Processing"}, headers=owner_headers)

    assert resp.get_json()["updated"] == 1
    with app.app_context():
        statuses = {line.product_id: line.status for line in Order.query.filter_by(invoice_id=inv_id)}
    assert statuses == {5: OrderStatus.PROCESSING, 7: OrderStatus.PENDING}


def test_unrelated_account_cannot_update(client, other_owner_headers, place_order):
    inv_id = place_order()["invoice_id"]

    resp = client.put("/order/update", json={"invoice_id": inv_id, "status": "Cancelled"}, headers=other_owner_headers)

    assert resp.status_code == 403


# =========================================================
# DeleteOrderByInvoiceID
# =========================================================
def test_delete_removes_invoice_lines_and_shipments(app, client, buyer_headers, place_order, order_payload):
    order_payload["shipment"] = {}
    inv_id = place_order(order_payload)["invoice_id"]

    resp = client.delete("/order/delete", json={"invoice_id": inv_id}, headers=buyer_headers)

    assert resp.status_code == 200
    with app.app_context():
        assert db.session.get(Invoice, inv_id) is None
        assert Order.query.filter_by(invoice_id=inv_id).count() == 0
        assert ShipmentProcess.query.filter_by(invoice_id=inv_id).count() == 0
    assert _stock(app, 5) == 10


def test_delete_unknown_invoice_is_not_found(client, buyer_headers):
    resp = client.delete("/order/delete", json={"invoice_id": 404}, headers=buyer_headers)

    assert resp.status_code == 404


def test_delete_by_other_buyer_is_forbidden(client, other_owner_headers, place_order):
    inv_id = place_order()["invoice_id"]

    resp = client.delete("/order/delete", json={"invoice_id": inv_id}, headers=other_owner_headers)

    assert resp.status_code == 403


def test_delete_is_all_or_nothing(app, client, buyer_headers, place_order, monkeypatch):
    inv_id = place_order()["invoice_id"]

    def boom(product_id, quantity):
        raise InvalidArgument("store went away")

    monkeypatch.setattr(order_service, "_return_stock", boom)
    resp = client.delete("/order/delete", json={"invoice_id": inv_id}, headers=buyer_headers)

    assert resp.status_code == 400
    with app.app_context():
        assert db.session.get(Invoice, inv_id) is not None
        assert Order.query.filter_by(invoice_id=inv_id).count() == 1


def test_paid_invoice_cannot_be_deleted(app, client, buyer_headers, place_order):
    inv_id = place_order()["invoice_id"]
    with app.app_context():
        db.session.get(Invoice, inv_id).payment_status = PaymentStatus.CONFIRMED
        db.session.commit()

    resp = client.delete("/order/delete", json={"invoice_id": inv_id}, headers=buyer_headers)

    assert resp.status_code == 400
    assert _invoice_count(app) == 1


# =========================================================
# BuktiTransfer / payment status
# =========================================================
def _png(name="bukti.png", size=64):
    return (io.BytesIO(b"\x89PNG\r\n\x1a\n" + b"0" * size), name)


def test_proof_of_transfer_sets_sending(app, client, buyer_headers, place_order):
    inv_id = place_order()["invoice_id"]

    resp = client.put(
        f"/order/bukti-transfer?id_invoice={inv_id}",
        data={"bukti_transfer": _png()},
        headers=buyer_headers,
        content_type="multipart/form-data",
    )

    assert resp.status_code == 200, resp.get_json()
    url = resp.get_json()["proof_of_transfer"]
    assert url.startswith("http://testserver/files/proof_of_transfer/")
    with app.app_context():
        inv = db.session.get(Invoice, inv_id)
        assert inv.payment_status is PaymentStatus.SENDING
        assert inv.proof_of_transfer == url

    served = client.get(url.replace("http://testserver", ""))
    assert served.status_code == 200


@pytest.mark.parametrize(
    "upload, message",
    [
        ((io.BytesIO(b"%PDF"), "bukti.pdf"), "Only .jpg, .jpeg, and .png are allowed."),
        ((io.BytesIO(b"0" * (5 * 1024 * 1024 + 1)), "big.jpg"), "File size exceeds 5MB."),
    ],
)
def test_proof_of_transfer_rejects_bad_files(app, client, buyer_headers, place_order, upload, message):
    inv_id = place_order()["invoice_id"]

    resp = client.put(
        f"/order/bukti-transfer?id_invoice={inv_id}",
        data={"bukti_transfer": upload},
        headers=buyer_headers,
        content_type="multipart/form-data",
    )

    assert resp.status_code == 400
    assert resp.get_json()["message"] == message
    with app.app_context():
        assert db.session.get(Invoice, inv_id).payment_status is PaymentStatus.PENDING


def test_payment_status_follows_transition_table(app, client, owner_headers, buyer_headers, place_order):
    inv_id = place_order()["invoice_id"]

    resp = client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Completed"},
                      headers=owner_headers)
    assert resp.status_code == 400

    resp = client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Confirmed"},
                      headers=buyer_headers)
    assert resp.status_code == 403

    resp = client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Sending"},
                      headers=owner_headers)
    assert resp.status_code == 200
    resp = client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Confirmed"},
                      headers=owner_headers)
    assert resp.get_json()["payment_status"] == "Confirmed"


def test_shipped_or_delivered_orders_cannot_be_deleted(app, client, owner_headers, buyer_headers, place_order):
    inv_id = place_order()["invoice_id"]
    for status in ("Processing", "Shipped", "Delivered"):
        client.put("/order/update", json={"invoice_id": inv_id, "status": status}, headers=owner_headers)

    resp = client.delete("/order/delete", json={"invoice_id": inv_id}, headers=buyer_headers)

    assert resp.status_code == 400
    assert _stock(app, 5) == 7
    with app.app_context():
        line = Order.query.filter_by(invoice_id=inv_id).one()
        assert line.status is OrderStatus.DELIVERED


# =========================================================
# Cancelling the invoice
# =========================================================
def test_cancelling_invoice_cancels_open_lines_and_shipments(app, client, buyer_headers, place_order, order_payload):
    order_payload["products"].append({"product_id": 7, "quantity": 2})
    order_payload["shipment"] = {}
    inv_id = place_order(order_payload)["invoice_id"]
    assert (_stock(app, 5), _stock(app, 7)) == (7, 48)

    resp = client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Cancelled"},
                      headers=buyer_headers)

    assert resp.status_code == 200, resp.get_json()
    assert (_stock(app, 5), _stock(app, 7)) == (10, 50)
    with app.app_context():
        assert {line.status for line in Order.query.filter_by(invoice_id=inv_id)} == {OrderStatus.CANCELLED}
        assert {sp.status.value for sp in ShipmentProcess.query.filter_by(invoice_id=inv_id)} == {"Cancelled"}


def test_lines_of_cancelled_invoice_cannot_move(app, client, buyer_headers, owner_headers, place_order):
    inv_id = place_order()["invoice_id"]
    client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Cancelled"},
               headers=buyer_headers)

    resp = client.put("/order/update", json={"invoice_id": inv_id, "status": "Processing"}, headers=owner_headers)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid status transition"
    assert _stock(app, 5) == 10
    with app.app_context():
        assert Order.query.filter_by(invoice_id=inv_id).one().status is OrderStatus.CANCELLED


def test_invoice_with_shipped_goods_cannot_be_cancelled(app, client, owner_headers, place_order):
    inv_id = place_order()["invoice_id"]
    for status in ("Processing", "Shipped"):
        client.put("/order/update", json={"invoice_id": inv_id, "status": status}, headers=owner_headers)

    resp = client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Cancelled"},
                      headers=owner_headers)

    assert resp.status_code == 400
    assert _stock(app, 5) == 7
    with app.app_context():
        assert db.session.get(Invoice, inv_id).payment_status is PaymentStatus.PENDING


def test_cancelling_after_a_line_was_cancelled_returns_stock_once(app, client, buyer_headers, place_order,
                                                                   order_payload):
    order_payload["products"].append({"product_id": 6, "quantity": 10})
    inv_id = place_order(order_payload)["invoice_id"]
    with app.app_context():
        line = Order.query.filter_by(invoice_id=inv_id, product_id=6).one()
        line.status = OrderStatus.CANCELLED
        db.session.execute(sa.update(Product).where(Product.id == 6).values(stock_kg=Product.stock_kg + 10))
        db.session.commit()

    client.put("/order/payment-status", json={"invoice_id": inv_id, "payment_status": "Cancelled"},
               headers=buyer_headers)

    assert (_stock(app, 5), _stock(app, 6)) == (10, 100)


# =========================================================
# CreateOrder: failures at the insert and total steps
# =========================================================
def _store_failure(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("disk I/O error"))


def test_failed_line_insert_rolls_back_everything(app, client, buyer_headers, order_payload):
    order_payload["products"] = [{"product_id": 6, "quantity": 2}, {"product_id": 5, "quantity": 3}]
    event.listen(Order, "before_insert", _store_failure)
    try:
        resp = client.post("/order", json=order_payload, headers=buyer_headers)
    finally:
        event.remove(Order, "before_insert", _store_failure)

    assert resp.status_code == 500
    assert resp.get_json()["error"] == "Internal Server Error"
    assert (_stock(app, 5), _stock(app, 6)) == (10, 100)
    assert _invoice_count(app) == 0
    assert _order_count(app) == 0


def test_failed_total_recompute_rolls_back_everything(app, client, buyer_headers, order_payload, monkeypatch):
    monkeypatch.setattr(order_service, "invoice_subtotal", _store_failure)

    resp = client.post("/order", json=order_payload, headers=buyer_headers)

    assert resp.status_code == 500
    assert _stock(app, 5) == 10
    assert _invoice_count(app) == 0
    assert _order_count(app) == 0


def test_unexpected_error_inside_transaction_rolls_back(app, buyer, order_payload, monkeypatch):
    def broken(invoice_id):
        raise TypeError("unsupported operand")

    monkeypatch.setattr(order_service, "invoice_subtotal", broken)

    with app.app_context():
        with pytest.raises(TypeError):
            order_service.create_order(buyer, order_payload)

    assert _stock(app, 5) == 10
    assert _invoice_count(app) == 0
