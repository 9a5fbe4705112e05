"""create salesops tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "team_user",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="sales_agent"),
        sa.Column("manager_id", sa.Uuid(), nullable=True),
        sa.Column("deactivated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["manager_id"], ["team_user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_team_user_manager", "team_user", ["manager_id"], unique=False)

    op.create_table(
        "sales_customer",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("card_code", sa.String(length=64), nullable=False),
        sa.Column("card_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("assigned_to_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["assigned_to_id"], ["team_user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("card_code"),
    )
    op.create_index("ix_sales_customer_assigned_to", "sales_customer", ["assigned_to_id"], unique=False)

    op.create_table(
        "sales_invoice",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("doc_entry", sa.Integer(), nullable=False),
        sa.Column("doc_num", sa.Integer(), nullable=False),
        sa.Column("card_code", sa.String(length=64), nullable=False),
        sa.Column("card_name", sa.Text(), nullable=False),
        sa.Column("doc_date", sa.Date(), nullable=False),
        sa.Column("doc_total", sa.Numeric(18, 2), nullable=False),
        sa.Column("vat_sum", sa.Numeric(18, 2), nullable=False),
        sa.Column("paid_to_date", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("doc_entry"),
    )
    op.create_index("ix_sales_invoice_card_date", "sales_invoice", ["card_code", "doc_date"], unique=False)
    op.create_index("ix_sales_invoice_doc_num", "sales_invoice", ["doc_num"], unique=False)

    op.create_table(
        "sales_invoice_line",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), nullable=False),
        sa.Column("line_num", sa.Integer(), nullable=False),
        sa.Column("item_code", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 4), nullable=False),
        sa.Column("price", sa.Numeric(18, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(18, 2), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["sales_invoice.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "sales_payment",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("doc_entry", sa.Integer(), nullable=False),
        sa.Column("doc_num", sa.Integer(), nullable=False),
        sa.Column("card_code", sa.String(length=64), nullable=False),
        sa.Column("card_name", sa.Text(), nullable=False),
        sa.Column("doc_date", sa.Date(), nullable=False),
        sa.Column("doc_total", sa.Numeric(18, 2), nullable=True),
        sa.Column("cash_sum", sa.Numeric(18, 2), nullable=False),
        sa.Column("transfer_sum", sa.Numeric(18, 2), nullable=False),
        sa.Column("check_sum", sa.Numeric(18, 2), nullable=False),
        sa.Column("credit_sum", sa.Numeric(18, 2), nullable=False),
        sa.Column("credit_cards", sa.JSON(), nullable=False),
        sa.Column("checks", sa.JSON(), nullable=False),
        sa.Column("applied_invoices", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("doc_entry"),
    )
    op.create_index("ix_sales_payment_card_date", "sales_payment", ["card_code", "doc_date"], unique=False)

    op.create_table(
        "sales_payment_link",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("payment_number", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.Integer(), nullable=False),
        sa.Column("payment_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("invoice_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("customer_code", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_payment_link_invoice", "sales_payment_link", ["invoice_number"], unique=False)
    op.create_index("ix_sales_payment_link_payment", "sales_payment_link", ["payment_number"], unique=False)

    for table_name in ("sales_order", "sales_quotation"):
        columns = [
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("doc_entry", sa.Integer(), nullable=False),
            sa.Column("doc_num", sa.Integer(), nullable=False),
            sa.Column("card_code", sa.String(length=64), nullable=False),
            sa.Column("doc_date", sa.Date(), nullable=False),
            sa.Column("doc_total", sa.Numeric(18, 2), nullable=False),
            sa.Column("sales_person_id", sa.Uuid(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        ]
        if table_name == "sales_quotation":
            columns.append(sa.Column("approval_status", sa.String(length=32), nullable=False, server_default="pending"))
            columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
        op.create_table(
            table_name,
            *columns,
            sa.ForeignKeyConstraint(["sales_person_id"], ["team_user.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("doc_entry"),
        )
        op.create_index(f"ix_{table_name}_card_date", table_name, ["card_code", "doc_date"], unique=False)

    op.create_table(
        "sales_call",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("agent_id", sa.Uuid(), nullable=False),
        sa.Column("card_code", sa.String(length=64), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("direction", sa.String(length=8), nullable=False),
        sa.Column("missed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("duration_seconds", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["agent_id"], ["team_user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_call_agent_started", "sales_call", ["agent_id", "started_at"], unique=False)

    op.create_table(
        "workflow_lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone_number", sa.String(length=64), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("assigned_to_id", sa.Uuid(), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("next_follow_up", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["assigned_to_id"], ["team_user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_lead_assigned_status", "workflow_lead", ["assigned_to_id", "status"], unique=False)

    op.create_table(
        "workflow_task",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("lead_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="follow-up"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("completed_date", sa.Date(), nullable=True),
        sa.Column("assigned_to_id", sa.Uuid(), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("related_quotation_doc_entry", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["lead_id"], ["workflow_lead.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_task_assigned_status", "workflow_task", ["assigned_to_id", "status"], unique=False)
    op.create_index("ix_workflow_task_due", "workflow_task", ["due_date"], unique=False)

    op.create_table(
        "workflow_deal",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("deal_name", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="EUR"),
        sa.Column("pipeline", sa.String(length=64), nullable=False),
        sa.Column("stage", sa.String(length=64), nullable=True),
        sa.Column("probability", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="open"),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("card_code", sa.String(length=64), nullable=True),
        sa.Column("customer_name", sa.Text(), nullable=True),
        sa.Column("customer_email", sa.Text(), nullable=True),
        sa.Column("close_date", sa.Date(), nullable=True),
        sa.Column("owner_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_deal_owner_status", "workflow_deal", ["owner_id", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_workflow_deal_owner_status", table_name="workflow_deal")
    op.drop_table("workflow_deal")
    op.drop_index("ix_workflow_task_due", table_name="workflow_task")
    op.drop_index("ix_workflow_task_assigned_status", table_name="workflow_task")
    op.drop_table("workflow_task")
    op.drop_index("ix_workflow_lead_assigned_status", table_name="workflow_lead")
    op.drop_table("workflow_lead")
    op.drop_index("ix_sales_call_agent_started", table_name="sales_call")
    op.drop_table("sales_call")
    for table_name in ("sales_quotation", "sales_order"):
        op.drop_index(f"ix_{table_name}_card_date", table_name=table_name)
        op.drop_table(table_name)
    op.drop_index("ix_sales_payment_link_payment", table_name="sales_payment_link")
    op.drop_index("ix_sales_payment_link_invoice", table_name="sales_payment_link")
    op.drop_table("sales_payment_link")
    op.drop_index("ix_sales_payment_card_date", table_name="sales_payment")
    op.drop_table("sales_payment")
    op.drop_table("sales_invoice_line")
    op.drop_index("ix_sales_invoice_doc_num", table_name="sales_invoice")
    op.drop_index("ix_sales_invoice_card_date", table_name="sales_invoice")
    op.drop_table("sales_invoice")
    op.drop_index("ix_sales_customer_assigned_to", table_name="sales_customer")
    op.drop_table("sales_customer")
    op.drop_index("ix_team_user_manager", table_name="team_user")
    op.drop_table("team_user")
