"""create payroll tables

Revision ID: 0001
Revises: None
Create Date: 2026-02-27
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

adjustment_type = sa.Enum(
    "overtime",
    "bonus",
    "commission",
    "late_day_deduction",
    "unpaid_leave_deduction",
    "other_deduction",
    "other_addition",
    name="adjustment_type",
)
payroll_status = sa.Enum("pending", "processing", "completed", "failed", name="payroll_status")


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("wallet_balance", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("wallet_balance >= 0", name="ck_organizations_wallet_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(op.f("ix_organizations_id"), "organizations", ["id"], unique=False)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("bank_account_number", sa.String(length=20), nullable=False),
        sa.Column("bank_code", sa.String(length=10), nullable=False),
        sa.Column("bank_name", sa.String(length=100), nullable=False),
        sa.Column("base_salary", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("base_salary >= 0", name="ck_employees_base_salary_non_negative"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "email", name="uq_employees_org_email"),
    )
    op.create_index(op.f("ix_employees_id"), "employees", ["id"], unique=False)
    op.create_index("ix_employees_org_active", "employees", ["organization_id", "is_active"], unique=False)

    rate_checks = [
        sa.CheckConstraint(f"{column} >= 0 AND {column} <= 100", name=f"ck_tax_configs_{column}_range")
        for column in ("paye_rate", "pension_rate", "nhf_rate", "nhis_rate")
    ]
    op.create_table(
        "tax_configs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("paye_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("pension_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("nhf_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("nhis_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        *rate_checks,
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id"),
    )
    op.create_index(op.f("ix_tax_configs_id"), "tax_configs", ["id"], unique=False)

    op.create_table(
        "payroll_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("adjustment_type", adjustment_type, nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("pay_period", sa.String(length=7), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_payroll_adjustments_amount_positive"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_payroll_adjustments_id"), "payroll_adjustments", ["id"], unique=False)
    op.create_index(
        "ix_payroll_adjustments_employee_period", "payroll_adjustments", ["employee_id", "pay_period"], unique=False
    )

    op.create_table(
        "payroll_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("pay_period", sa.String(length=7), nullable=False),
        sa.Column("status", payroll_status, nullable=False, server_default="pending"),
        sa.Column("total_gross", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total_deductions", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total_net", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("employee_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("initiated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_payroll_runs_id"), "payroll_runs", ["id"], unique=False)
    op.create_index("ix_payroll_runs_org_period", "payroll_runs", ["organization_id", "pay_period"], unique=False)
    op.create_index(
        "uq_payroll_runs_active_period",
        "payroll_runs",
        ["organization_id", "pay_period"],
        unique=True,
        postgresql_where=sa.text("status <> 'failed'"),
        sqlite_where=sa.text("status <> 'failed'"),
    )

    op.create_table(
        "payroll_slips",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payroll_run_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("pay_period", sa.String(length=7), nullable=False),
        sa.Column("base_salary", sa.Numeric(15, 2), nullable=False),
        sa.Column("total_additions", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("gross_salary", sa.Numeric(15, 2), nullable=False),
        sa.Column("paye_tax", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("pension_deduction", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("nhf_deduction", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("nhis_deduction", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("other_deductions", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total_deductions", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("net_salary", sa.Numeric(15, 2), nullable=False),
        sa.Column("gateway_reference", sa.String(length=255), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="failed"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["payroll_run_id"], ["payroll_runs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payroll_run_id", "employee_id", name="uq_payroll_slips_run_employee"),
    )
    op.create_index(op.f("ix_payroll_slips_id"), "payroll_slips", ["id"], unique=False)
    op.create_index(op.f("ix_payroll_slips_payroll_run_id"), "payroll_slips", ["payroll_run_id"], unique=False)
    op.create_index(op.f("ix_payroll_slips_employee_id"), "payroll_slips", ["employee_id"], unique=False)


def downgrade() -> None:
    op.drop_table("payroll_slips")
    op.drop_index("uq_payroll_runs_active_period", table_name="payroll_runs")
    op.drop_table("payroll_runs")
    op.drop_table("payroll_adjustments")
    op.drop_table("tax_configs")
    op.drop_table("employees")
    op.drop_table("organizations")
    payroll_status.drop(op.get_bind(), checkfirst=True)
    adjustment_type.drop(op.get_bind(), checkfirst=True)
