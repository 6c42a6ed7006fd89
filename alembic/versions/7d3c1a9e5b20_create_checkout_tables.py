"""create checkout tables

Revision ID: 7d3c1a9e5b20
Revises:
Create Date: 2026-10-19 09:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '7d3c1a9e5b20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


order_status = sa.Enum("PENDING", "PAID", "FAILED", "CANCELLED", name="orderstatus")
fulfillment_flow = sa.Enum("DOMESTIC", "INTERNATIONAL", name="fulfillmentflow")
payment_status = sa.Enum("CAPTURED", "FAILED", "REFUNDED", name="paymentstatus")
discount_type = sa.Enum("PERCENT", "FLAT", name="discounttype")
rule_scope = sa.Enum("DEFAULT", "STATE", "DISTRICT", name="rulescope")


def upgrade():
    op.create_table(
        "address",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("line1", sa.String(), nullable=False),
        sa.Column("line2", sa.String(), nullable=True),
        sa.Column("country_id", sa.Integer(), nullable=False),
        sa.Column("state_id", sa.Integer(), nullable=True),
        sa.Column("district_id", sa.Integer(), nullable=True),
        sa.Column("pincode", sa.String(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_address_customer_id", "address", ["customer_id"])
    op.create_index("ix_address_country_id", "address", ["country_id"])

    op.create_table(
        "delivery_partner",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("code", sa.String(), nullable=True),
        sa.Column("tracking_url_template", sa.String(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_delivery_partner_code", "delivery_partner", ["code"])

    op.create_table(
        "delivery_fee_rule",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scope", rule_scope, nullable=False),
        sa.Column("scope_id", sa.Integer(), nullable=True),
        sa.Column("fee_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_delivery_fee_rule_scope", "delivery_fee_rule", ["scope"])
    op.create_index("ix_delivery_fee_rule_scope_id", "delivery_fee_rule", ["scope_id"])
    op.create_index("ix_delivery_fee_rule_active", "delivery_fee_rule", ["active"])

    op.create_table(
        "coupon",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("discount_type", discount_type, nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("min_order_total", sa.Numeric(12, 2), nullable=True),
        sa.Column("min_items", sa.Integer(), nullable=True),
        sa.Column("valid_from", sa.DateTime(), nullable=True),
        sa.Column("valid_to", sa.DateTime(), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("per_customer_limit", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("visible", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_coupon_code", "coupon", ["code"], unique=True)

    op.create_table(
        "store_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("free_shipping_threshold", sa.Numeric(12, 2), nullable=True),
        sa.Column("whatsapp_number", sa.String(), nullable=True),
        sa.Column("merchant_name", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("public_code", sa.String(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("flow", fulfillment_flow, nullable=False),
        sa.Column("status", order_status, nullable=False),
        sa.Column("items_subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("shipping_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("grand_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupon.id"), nullable=True),
        sa.Column("coupon_code", sa.String(), nullable=True),
        sa.Column("delivery_partner_id", sa.Integer(), sa.ForeignKey("delivery_partner.id"), nullable=True),
        sa.Column("courier_name", sa.String(), nullable=True),
        sa.Column("order_notes", sa.String(), nullable=True),
        sa.Column("ship_name", sa.String(), nullable=False),
        sa.Column("ship_phone", sa.String(), nullable=True),
        sa.Column("ship_line1", sa.String(), nullable=False),
        sa.Column("ship_line2", sa.String(), nullable=True),
        sa.Column("ship_country_id", sa.Integer(), nullable=False),
        sa.Column("ship_state_id", sa.Integer(), nullable=True),
        sa.Column("ship_district_id", sa.Integer(), nullable=True),
        sa.Column("ship_pincode", sa.String(), nullable=True),
        sa.Column("gateway_order_id", sa.String(), nullable=True),
        sa.Column("idempotency_key", sa.String(), nullable=True),
        sa.Column("checkout_response", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_order_public_code", "order", ["public_code"], unique=True)
    op.create_index("ix_order_customer_id", "order", ["customer_id"])
    op.create_index("ix_order_status", "order", ["status"])
    op.create_index("ix_order_gateway_order_id", "order", ["gateway_order_id"])
    op.create_index("ix_order_idempotency_key", "order", ["idempotency_key"], unique=True)

    op.create_table(
        "orderitem",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("order.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("line_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("options_text", sa.String(), nullable=True),
    )
    op.create_index("ix_orderitem_order_id", "orderitem", ["order_id"])

    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("order.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("txn_id", sa.String(), nullable=False),
        sa.Column("gateway_order_id", sa.String(), nullable=True),
        sa.Column("gateway_signature", sa.String(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payment_order_id", "payment", ["order_id"])
    op.create_index("ix_payment_customer_id", "payment", ["customer_id"])
    op.create_index("ix_payment_txn_id", "payment", ["txn_id"], unique=True)
    op.create_index("ix_payment_gateway_order_id", "payment", ["gateway_order_id"])

    op.create_table(
        "coupon_redemption",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupon.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("order.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("amount_applied", sa.Numeric(12, 2), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_coupon_redemption_coupon_id", "coupon_redemption", ["coupon_id"])
    op.create_index("ix_coupon_redemption_order_id", "coupon_redemption", ["order_id"], unique=True)
    op.create_index("ix_coupon_redemption_customer_id", "coupon_redemption", ["customer_id"])

    op.create_table(
        "order_event",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("order.id"), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
    )
    op.create_index("ix_order_event_order_id", "order_event", ["order_id"])
    op.create_index("ix_order_event_event_type", "order_event", ["event_type"])


def downgrade():
    op.drop_table("order_event")
    op.drop_table("coupon_redemption")
    op.drop_table("payment")
    op.drop_table("orderitem")
    op.drop_table("order")
    op.drop_table("store_settings")
    op.drop_table("coupon")
    op.drop_table("delivery_fee_rule")
    op.drop_table("delivery_partner")
    op.drop_table("address")

    bind = op.get_bind()
    for enum in (order_status, fulfillment_flow, payment_status, discount_type, rule_scope):
        enum.drop(bind, checkfirst=True)
