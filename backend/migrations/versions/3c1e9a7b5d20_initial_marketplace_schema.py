"""initial marketplace schema: orders, escrow ledger, payouts, disputes

Revision ID: 3c1e9a7b5d20
Revises:
Create Date: 2026-10-19 09:12:44.018311

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c1e9a7b5d20'
down_revision = None
branch_labels = None
depends_on = None


def _money(name, **kw):
    return sa.Column(name, sa.Numeric(precision=12, scale=2), **kw)


def upgrade():
    bind = op.get_bind()
    existing = set(sa.inspect(bind).get_table_names())

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("phone_number", sa.String(length=32), nullable=True),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="USER"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
            sa.Column("is_seller", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("total_orders_completed", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if "services" not in existing:
        op.create_table(
            "services",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("title", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("category", sa.String(length=64), nullable=False, server_default=""),
            _money("price", nullable=False),
            sa.Column("delivery_time", sa.Integer(), nullable=False),
            sa.Column("revisions", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("admin_notes", sa.Text(), nullable=True),
            sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_services_seller_id", "services", ["seller_id"])
        op.create_index("ix_services_status", "services", ["status"])

    if "orders" not in existing:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
            sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("title", sa.String(length=120), nullable=False),
            _money("price", nullable=False),
            sa.Column("delivery_time", sa.Integer(), nullable=False),
            sa.Column("max_revisions", sa.Integer(), nullable=False),
            sa.Column("requirements", sa.Text(), nullable=False),
            sa.Column("attachments", sa.JSON(), nullable=False),
            sa.Column("delivery_files", sa.JSON(), nullable=False),
            sa.Column("delivery_note", sa.Text(), nullable=True),
            sa.Column("delivered_at", sa.DateTime(), nullable=True),
            sa.Column("status", sa.String(length=24), nullable=False, server_default="DRAFT"),
            sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("paid_at", sa.DateTime(), nullable=True),
            sa.Column("revision_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("revision_notes", sa.JSON(), nullable=False),
            sa.Column("due_date", sa.DateTime(), nullable=False),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(), nullable=True),
            sa.Column("cancellation_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint("revision_count <= max_revisions", name="ck_orders_revision_quota"),
        )
        op.create_index("ix_orders_service_id", "orders", ["service_id"])
        op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
        op.create_index("ix_orders_status", "orders", ["status"])

    if "order_events" not in existing:
        op.create_table(
            "order_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("event", sa.String(length=64), nullable=False),
            sa.Column("from_status", sa.String(length=24), nullable=True),
            sa.Column("to_status", sa.String(length=24), nullable=True),
            sa.Column("note", sa.String(length=250), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_order_events_order_id", "order_events", ["order_id"])

    if "order_progress_logs" not in existing:
        op.create_table(
            "order_progress_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("title", sa.String(length=160), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("images", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_order_progress_logs_order_id", "order_progress_logs", ["order_id"])

    if "payments" not in existing:
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            _money("amount", nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("gateway", sa.String(length=32), nullable=False, server_default="midtrans"),
            sa.Column("gateway_token", sa.String(length=255), nullable=True),
            sa.Column("gateway_redirect_url", sa.String(length=512), nullable=True),
            sa.Column("gateway_order_id", sa.String(length=80), nullable=True),
            sa.Column("payment_type", sa.String(length=32), nullable=True),
            sa.Column("transaction_id", sa.String(length=128), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("transaction_id", name="uq_payments_transaction_id"),
        )
        op.create_index("ix_payments_order_id", "payments", ["order_id"], unique=True)
        op.create_index("ix_payments_gateway_order_id", "payments", ["gateway_order_id"])

    if "wallets" not in existing:
        op.create_table(
            "wallets",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            _money("balance", nullable=False, server_default="0"),
            sa.Column("currency", sa.String(length=8), nullable=False, server_default="IDR"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
        )
        op.create_index("ix_wallets_user_id", "wallets", ["user_id"], unique=True)

    if "payout_accounts" not in existing:
        op.create_table(
            "payout_accounts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("bank_name", sa.String(length=80), nullable=False),
            sa.Column("account_name", sa.String(length=120), nullable=False),
            sa.Column("account_number", sa.String(length=32), nullable=False),
            sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("user_id", "account_number", name="uq_payout_accounts_user_number"),
        )
        op.create_index("ix_payout_accounts_user_id", "payout_accounts", ["user_id"])

    if "payout_requests" not in existing:
        op.create_table(
            "payout_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("wallet_id", sa.Integer(), sa.ForeignKey("wallets.id"), nullable=False),
            sa.Column("account_id", sa.Integer(), sa.ForeignKey("payout_accounts.id"), nullable=False),
            _money("amount", nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("requested_at", sa.DateTime(), nullable=False),
            sa.Column("processed_at", sa.DateTime(), nullable=True),
            sa.Column("admin_notes", sa.Text(), nullable=True),
        )
        op.create_index("ix_payout_requests_user_id", "payout_requests", ["user_id"])
        op.create_index("ix_payout_requests_wallet_id", "payout_requests", ["wallet_id"])
        op.create_index("ix_payout_requests_account_id", "payout_requests", ["account_id"])
        op.create_index("ix_payout_requests_status", "payout_requests", ["status"])

    if "disputes" not in existing:
        op.create_table(
            "disputes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("opened_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("resolution", sa.String(length=24), nullable=True),
            sa.Column("resolved_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("resolved_at", sa.DateTime(), nullable=True),
            sa.Column("admin_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_disputes_order_id", "disputes", ["order_id"], unique=True)
        op.create_index("ix_disputes_status", "disputes", ["status"])

    if "wallet_txns" not in existing:
        op.create_table(
            "wallet_txns",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("wallet_id", sa.Integer(), sa.ForeignKey("wallets.id"), nullable=False),
            sa.Column("type", sa.String(length=32), nullable=False),
            _money("amount", nullable=False),
            _money("balance_before", nullable=False),
            _money("balance_after", nullable=False),
            sa.Column("description", sa.String(length=240), nullable=False, server_default=""),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True),
            sa.Column("payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=True),
            sa.Column("payout_request_id", sa.Integer(), sa.ForeignKey("payout_requests.id"), nullable=True),
            sa.Column("dispute_id", sa.Integer(), sa.ForeignKey("disputes.id"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_wallet_txns_wallet_id", "wallet_txns", ["wallet_id"])
        op.create_index("ix_wallet_txns_order_id", "wallet_txns", ["order_id"])
        op.create_index("ix_wallet_txns_payout_request_id", "wallet_txns", ["payout_request_id"])

    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("link", sa.String(length=255), nullable=True),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="GENERAL"),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(length=64), nullable=False),
            sa.Column("target_type", sa.String(length=64), nullable=True),
            sa.Column("target_id", sa.Integer(), nullable=True),
            sa.Column("meta", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    if "idempotency_keys" not in existing:
        op.create_table(
            "idempotency_keys",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(length=128), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("route", sa.String(length=128), nullable=False),
            sa.Column("request_hash", sa.String(length=64), nullable=False),
            sa.Column("response_body", sa.Text(), nullable=True),
            sa.Column("response_status", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.UniqueConstraint("user_id", "route", "key", name="uq_idempotency_keys_scope"),
        )
        op.create_index("ix_idempotency_keys_user_id", "idempotency_keys", ["user_id"])


def downgrade():
    bind = op.get_bind()
    existing = set(sa.inspect(bind).get_table_names())
    for table in (
        "idempotency_keys",
        "audit_logs",
        "notifications",
        "wallet_txns",
        "disputes",
        "payout_requests",
        "payout_accounts",
        "wallets",
        "payments",
        "order_progress_logs",
        "order_events",
        "orders",
        "services",
        "users",
    ):
        if table in existing:
            op.drop_table(table)
