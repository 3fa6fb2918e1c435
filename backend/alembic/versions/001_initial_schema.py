"""Initial schema: users, catalog, coupons, bookings, payments and refunds.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'customer'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('customer', 'staff', 'admin')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(120), nullable=False),
        sa.Column("category", sa.String(40), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_price", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("add_ons", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("base_price >= 0", name="check_service_base_price_non_negative"),
        sa.CheckConstraint("duration_minutes >= 30", name="check_service_min_duration"),
    )
    op.create_index("ix_services_id", "services", ["id"])
    op.create_index("ix_services_slug", "services", ["slug"], unique=True)
    op.create_index("ix_services_is_active", "services", ["is_active"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(40), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("discount_type", sa.String(10), nullable=False),
        sa.Column("discount_value", MONEY, nullable=False),
        sa.Column("minimum_order_value", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("maximum_discount", MONEY, nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("discount_type IN ('percentage', 'fixed')", name="check_coupon_discount_type"),
        sa.CheckConstraint("discount_value >= 0", name="check_coupon_value_non_negative"),
        sa.CheckConstraint("usage_count >= 0", name="check_coupon_usage_non_negative"),
        sa.CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="check_coupon_usage_within_limit",
        ),
    )
    op.create_index("ix_coupons_id", "coupons", ["id"])
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)

    op.create_table(
        "booking_sequences",
        sa.Column("day", sa.String(8), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_number", sa.String(32), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("street", sa.String(255), nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("state", sa.String(100), nullable=False),
        sa.Column("zip_code", sa.String(20), nullable=False),
        sa.Column("country", sa.String(100), nullable=False, server_default=sa.text("'India'")),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_time_slot", sa.String(32), nullable=False),
        sa.Column("special_instructions", sa.String(500), nullable=True),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.Column("tax", MONEY, nullable=False),
        sa.Column("discount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("total", MONEY, nullable=False),
        sa.Column("coupon_code", sa.String(40), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cancelled_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("refund_amount", MONEY, nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'assigned', 'in_progress', 'completed', 'cancelled')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "subtotal >= 0 AND tax >= 0 AND discount >= 0 AND total >= 0",
            name="check_booking_pricing_non_negative",
        ),
        sa.CheckConstraint("rating IS NULL OR rating BETWEEN 1 AND 5", name="check_booking_rating"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_booking_number", "bookings", ["booking_number"], unique=True)
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    # Customer history listing: WHERE customer_id = ? ORDER BY created_at DESC
    op.create_index("ix_bookings_customer_created", "bookings", ["customer_id", "created_at"])
    # Upcoming jobs: WHERE status IN (...) AND scheduled_date BETWEEN ? AND ?
    op.create_index("ix_bookings_status_scheduled", "bookings", ["status", "scheduled_date"])

    op.create_table(
        "booking_line_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("service_name", sa.String(100), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("base_price", MONEY, nullable=False),
        sa.Column("add_ons", sa.JSON(), nullable=False),
        sa.Column("subtotal", MONEY, nullable=False),
        sa.CheckConstraint("quantity >= 1", name="check_line_item_quantity_positive"),
        sa.CheckConstraint("base_price >= 0 AND subtotal >= 0", name="check_line_item_prices_non_negative"),
    )
    op.create_index("ix_booking_line_items_booking_id", "booking_line_items", ["booking_id"])

    op.create_table(
        "booking_staff",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(10), nullable=False, server_default=sa.text("'helper'")),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("booking_id", "staff_id", name="uq_booking_staff"),
        sa.CheckConstraint("role IN ('lead', 'helper')", name="check_booking_staff_role"),
    )
    op.create_index("ix_booking_staff_booking_id", "booking_staff", ["booking_id"])
    op.create_index("ix_booking_staff_staff_id", "booking_staff", ["staff_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(40), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'INR'")),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default=sa.text("'razorpay'")),
        sa.Column("gateway", sa.String(20), nullable=False, server_default=sa.text("'razorpay'")),
        sa.Column("gateway_order_id", sa.String(64), nullable=True),
        sa.Column("gateway_transaction_id", sa.String(64), nullable=True),
        sa.Column("gateway_signature", sa.String(128), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'initiated'")),
        sa.Column("is_refunded", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("refund_amount", MONEY, nullable=False, server_default=sa.text("0")),
        sa.Column("refund_transaction_id", sa.String(64), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_reason", sa.String(500), nullable=True),
        sa.Column("refund_processed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        sa.CheckConstraint(
            "refund_amount >= 0 AND refund_amount <= amount",
            name="check_payment_refund_within_amount",
        ),
        sa.CheckConstraint(
            "status IN ('initiated', 'pending', 'success', 'failed', 'cancelled', 'refunded')",
            name="check_payment_status",
        ),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_transaction_id", "payments", ["transaction_id"], unique=True)
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_customer_id", "payments", ["customer_id"])
    op.create_index("ix_payments_gateway_order_id", "payments", ["gateway_order_id"], unique=True)
    op.create_index("ix_payments_gateway_transaction_id", "payments", ["gateway_transaction_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_status_created", "payments", ["status", "created_at"])
    # PARTIAL UNIQUE INDEX: at most one successful payment per booking.
    # Two concurrent captures for the same booking both pass the application
    # check; the second INSERT/UPDATE to 'success' fails here instead.
    op.create_index(
        "uq_payments_one_success_per_booking",
        "payments",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status = 'success'"),
    )

    op.create_table(
        "payment_refunds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("gateway_refund_id", sa.String(64), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("processed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default=sa.text("'api'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("gateway_refund_id", name="uq_payment_refunds_gateway_refund_id"),
        sa.CheckConstraint("amount > 0", name="check_refund_amount_positive"),
    )
    op.create_index("ix_payment_refunds_payment_id", "payment_refunds", ["payment_id"])


def downgrade() -> None:
    op.drop_table("payment_refunds")
    op.drop_index("uq_payments_one_success_per_booking", table_name="payments")
    op.drop_table("payments")
    op.drop_table("booking_staff")
    op.drop_table("booking_line_items")
    op.drop_table("bookings")
    op.drop_table("booking_sequences")
    op.drop_table("coupons")
    op.drop_table("services")
    op.drop_table("users")
