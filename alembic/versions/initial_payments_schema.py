"""initial payments schema: users, partners, bill requests, orders, sequences

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None

partner_status = sa.Enum(
    "PENDING", "UNDER_REVIEW", "VERIFIED", "ACTIVE", "SUSPENDED", "REJECTED", "BLOCKED",
    name="partner_status",
)
business_category = sa.Enum(
    "RESTAURANT", "CAFE", "RETAIL", "GROCERY", "SALON", "GYM", "HOTEL", "TRAVEL", "ENTERTAINMENT", "OTHER",
    name="business_category",
)
bill_status = sa.Enum("ACTIVE", "EXPIRED", "USED", "CANCELLED", name="bill_status")
order_status = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETED", "FAILED", "REFUNDED", "CANCELLED",
    name="order_status",
)
payment_method = sa.Enum("UPI", "CARD", "NETBANKING", "WALLET", name="payment_method")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("roles", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("total_savings", sa.BigInteger(), nullable=False),
        sa.Column("total_orders", sa.Integer(), nullable=False),
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), "users", ["id"], unique=False)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_phone"), "users", ["phone"], unique=True)
    op.create_index(op.f("ix_users_is_active"), "users", ["is_active"], unique=False)

    op.create_table(
        "partners",
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("category", business_category, nullable=False),
        sa.Column("discount_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", partner_status, nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("payout_enabled", sa.Boolean(), nullable=False),
        sa.Column("total_orders", sa.Integer(), nullable=False),
        sa.Column("total_revenue", sa.BigInteger(), nullable=False),
        sa.Column("total_discount_given", sa.BigInteger(), nullable=False),
        sa.Column("average_order_value", sa.BigInteger(), nullable=False),
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_partners_id"), "partners", ["id"], unique=False)
    op.create_index(op.f("ix_partners_user_id"), "partners", ["user_id"], unique=True)
    op.create_index(op.f("ix_partners_business_name"), "partners", ["business_name"], unique=False)
    op.create_index(op.f("ix_partners_status"), "partners", ["status"], unique=False)

    op.create_table(
        "bill_requests",
        sa.Column("bill_id", sa.String(20), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("discount_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("description", sa.String(200), nullable=True),
        sa.Column("qr_token", sa.Text(), nullable=True),
        sa.Column("status", bill_status, nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used_by", sa.UUID(), nullable=True),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("order_id", sa.UUID(), nullable=True),
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("partner_id", sa.UUID(), nullable=False),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["used_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("qr_token"),
    )
    op.create_index(op.f("ix_bill_requests_id"), "bill_requests", ["id"], unique=False)
    op.create_index(op.f("ix_bill_requests_bill_id"), "bill_requests", ["bill_id"], unique=True)
    op.create_index(op.f("ix_bill_requests_status"), "bill_requests", ["status"], unique=False)
    op.create_index(op.f("ix_bill_requests_expires_at"), "bill_requests", ["expires_at"], unique=False)
    op.create_index(op.f("ix_bill_requests_order_id"), "bill_requests", ["order_id"], unique=False)
    op.create_index(op.f("ix_bill_requests_partner_id"), "bill_requests", ["partner_id"], unique=False)
    op.create_index("ix_bill_requests_partner_created", "bill_requests", ["partner_id", "created_at"], unique=False)

    op.create_table(
        "orders",
        sa.Column("order_id", sa.String(20), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("bill_request_id", sa.UUID(), nullable=True),
        sa.Column("original_amount", sa.BigInteger(), nullable=False),
        sa.Column("discount_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("discount_amount", sa.BigInteger(), nullable=False),
        sa.Column("platform_fee", sa.BigInteger(), nullable=False),
        sa.Column("final_amount", sa.BigInteger(), nullable=False),
        sa.Column("partner_payout", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.String(200), nullable=True),
        sa.Column("payment_method", payment_method, nullable=True),
        sa.Column("gateway_order_id", sa.String(64), nullable=True),
        sa.Column("gateway_payment_id", sa.String(64), nullable=True),
        sa.Column("gateway_signature", sa.String(256), nullable=True),
        sa.Column("status", order_status, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_settled", sa.Boolean(), nullable=False),
        sa.Column("settled_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("partner_id", sa.UUID(), nullable=False),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["bill_request_id"], ["bill_requests.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_orders_id"), "orders", ["id"], unique=False)
    op.create_index(op.f("ix_orders_order_id"), "orders", ["order_id"], unique=True)
    op.create_index(op.f("ix_orders_user_id"), "orders", ["user_id"], unique=False)
    op.create_index(op.f("ix_orders_bill_request_id"), "orders", ["bill_request_id"], unique=False)
    op.create_index(op.f("ix_orders_gateway_order_id"), "orders", ["gateway_order_id"], unique=True)
    op.create_index(op.f("ix_orders_gateway_payment_id"), "orders", ["gateway_payment_id"], unique=False)
    op.create_index(op.f("ix_orders_status"), "orders", ["status"], unique=False)
    op.create_index(op.f("ix_orders_partner_id"), "orders", ["partner_id"], unique=False)
    op.create_index("ix_orders_user_status_created", "orders", ["user_id", "status", "created_at"], unique=False)
    op.create_index("ix_orders_partner_status_created", "orders", ["partner_id", "status", "created_at"], unique=False)

    op.create_table(
        "sequence_counters",
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("value", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )


def downgrade() -> None:
    op.drop_table("sequence_counters")
    op.drop_table("orders")
    op.drop_table("bill_requests")
    op.drop_table("partners")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (payment_method, order_status, bill_status, business_category, partner_status):
        enum_type.drop(bind, checkfirst=True)
