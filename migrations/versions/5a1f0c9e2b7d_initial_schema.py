"""initial_schema

Revision ID: 5a1f0c9e2b7d
Revises:
Create Date: 2026-10-19 09:12:41.318204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5a1f0c9e2b7d'
down_revision = None
branch_labels = None
depends_on = None


PAYMENT_STATUSES = ("Pending", "Sending", "Confirmed", "Completed", "Cancelled")
ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")
SHIPMENT_STATUSES = ("Pending", "In Transit", "Delivered", "Cancelled")


def _in(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def upgrade():
    # =========================
    # address
    # =========================
    op.create_table(
        "address",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("street", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=True),
    )

    # =========================
    # akun (accounts)
    # =========================
    op.create_table(
        "akun",
        sa.Column("id_user", sa.Integer(), primary_key=True),
        sa.Column("nama", sa.String(length=100), nullable=False),
        sa.Column("no_telp", sa.String(length=20), nullable=False, unique=True),
        sa.Column("email", sa.String(length=120), nullable=False, unique=True),
        sa.Column("role", sa.String(length=30), nullable=False, server_default="buyer"),
        sa.Column("password", sa.String(length=255), nullable=False),
        sa.Column("address_id", sa.Integer(), sa.ForeignKey("address.id", ondelete="SET NULL"), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )

    # =========================
    # farms (one per owner)
    # =========================
    op.create_table(
        "farms",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("akun.id_user", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("farm_type", sa.String(length=60), nullable=True),
        sa.Column("address_id", sa.Integer(), sa.ForeignKey("address.id", ondelete="SET NULL"), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("email", sa.String(length=120), nullable=True),
        sa.Column("website", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )

    # =========================
    # status_product / farm_products
    # =========================
    op.create_table(
        "status_product",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("available_date", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "farm_products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("farm_id", sa.Integer(), sa.ForeignKey("farms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_per_kg", sa.Float(), nullable=False, server_default="0"),
        sa.Column("weight_per_unit", sa.Float(), nullable=True),
        sa.Column("stock_kg", sa.Float(), nullable=False, server_default="0"),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("status_id", sa.Integer(), sa.ForeignKey("status_product.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("stock_kg >= 0", name="ck_farm_products_stock_nonneg"),
    )
    op.create_index("ix_farm_products_farm_id", "farm_products", ["farm_id"])

    # =========================
    # pengiriman (shipping tariffs)
    # =========================
    op.create_table(
        "pengiriman",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("fuel_consumption", sa.Float(), nullable=False),
        sa.Column("fuel_price", sa.Float(), nullable=False),
    )

    # =========================
    # invoice / orders
    # =========================
    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("akun.id_user", ondelete="CASCADE"), nullable=False),
        sa.Column("invoice_number", sa.String(length=60), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="Pending"),
        sa.Column("payment_method", sa.String(length=60), nullable=True),
        sa.Column("issued_date", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_harga_product", sa.Float(), nullable=False, server_default="0"),
        sa.Column("shipping_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("proof_of_transfer", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("invoice_number", name="uq_invoice_invoice_number"),
        sa.CheckConstraint(_in("payment_status", PAYMENT_STATUSES), name="ck_invoice_payment_status"),
    )
    op.create_index("ix_invoice_user_id", "invoice", ["user_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("akun.id_user", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("farm_products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_harga", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
        sa.Column("pengiriman_id", sa.Integer(), sa.ForeignKey("pengiriman.id"), nullable=False),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoice.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
        sa.CheckConstraint(_in("status", ORDER_STATUSES), name="ck_orders_status"),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index("ix_orders_product_id", "orders", ["product_id"])
    op.create_index("ix_orders_invoice_id", "orders", ["invoice_id"])

    # =========================
    # pengirim (couriers)
    # =========================
    op.create_table(
        "pengirim",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False, unique=True),
        sa.Column("phone", sa.String(length=20), nullable=False, unique=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("vehicle_plate", sa.String(length=30), nullable=True),
        sa.Column("vehicle_type", sa.String(length=60), nullable=True),
        sa.Column("vehicle_color", sa.String(length=30), nullable=True),
        sa.Column("farm_id", sa.Integer(), sa.ForeignKey("farms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False, server_default="courier"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_pengirim_farm_id", "pengirim", ["farm_id"])

    # =========================
    # proses_pengiriman (shipment records)
    # one per (invoice, farm)
    # =========================
    op.create_table(
        "proses_pengiriman",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("id_invoice", sa.Integer(), sa.ForeignKey("invoice.id"), nullable=False),
        sa.Column("id_farm", sa.Integer(), sa.ForeignKey("farms.id"), nullable=False),
        sa.Column("id_pengirim", sa.Integer(), sa.ForeignKey("pengirim.id", ondelete="SET NULL"), nullable=True),
        sa.Column("hari_dikirim", sa.String(length=20), nullable=True),
        sa.Column("tanggal_dikirim", sa.DateTime(), nullable=True),
        sa.Column("hari_diterima", sa.String(length=20), nullable=True),
        sa.Column("tanggal_diterima", sa.DateTime(), nullable=True),
        sa.Column("status_pengiriman", sa.String(length=20), nullable=False, server_default="Pending"),
        sa.Column("image_pengiriman", sa.String(length=500), nullable=True),
        sa.Column("alamat_pengirim", sa.String(length=255), nullable=True),
        sa.Column("alamat_penerima", sa.String(length=255), nullable=True),
        sa.Column("sender_latitude", sa.Float(), nullable=True),
        sa.Column("sender_longitude", sa.Float(), nullable=True),
        sa.Column("receiver_latitude", sa.Float(), nullable=True),
        sa.Column("receiver_longitude", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("id_invoice", "id_farm", name="uq_proses_pengiriman_invoice_farm"),
        sa.CheckConstraint(_in("status_pengiriman", SHIPMENT_STATUSES), name="ck_proses_pengiriman_status"),
    )
    op.create_index("ix_proses_pengiriman_id_invoice", "proses_pengiriman", ["id_invoice"])
    op.create_index("ix_proses_pengiriman_id_farm", "proses_pengiriman", ["id_farm"])
    op.create_index("ix_proses_pengiriman_id_pengirim", "proses_pengiriman", ["id_pengirim"])


def downgrade():
    op.drop_table("proses_pengiriman")
    op.drop_table("pengirim")
    op.drop_table("orders")
    op.drop_table("invoice")
    op.drop_table("pengiriman")
    op.drop_table("farm_products")
    op.drop_table("status_product")
    op.drop_table("farms")
    op.drop_table("akun")
    op.drop_table("address")
