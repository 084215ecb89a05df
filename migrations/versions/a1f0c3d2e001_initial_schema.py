"""initial schema: users, organizations, engineers, orders, work sessions, salaries

Revision ID: a1f0c3d2e001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f0c3d2e001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENGINEER_TYPE = sa.Enum('staff', 'remote', 'contract', name='engineer_type_enum')
CALC_STATUS = sa.Enum('draft', 'calculated', 'approved', 'paid', name='salary_calc_status_enum')
PAYMENT_TYPE = sa.Enum('advance', 'regular', 'bonus', 'adjustment', name='salary_payment_type_enum')
PAYMENT_METHOD = sa.Enum('cash', 'bank_transfer', 'card', 'other', name='salary_payment_method_enum')
PAYMENT_STATUS = sa.Enum('pending', 'completed', 'cancelled', name='salary_payment_status_enum')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def _money(name, p=10, nullable=False):
    return sa.Column(name, sa.Numeric(p, 2), nullable=nullable, server_default=None if nullable else '0')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        _money('base_rate', nullable=True),
        sa.Column('overtime_multiplier', sa.Numeric(4, 2), nullable=True),
        sa.Column('has_overtime', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    op.create_table(
        'engineers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False, unique=True),
        sa.Column('type', ENGINEER_TYPE, nullable=False, server_default='staff'),
        _money('base_rate', nullable=True),
        _money('overtime_rate', nullable=True),
        sa.Column('overtime_coefficient', sa.Numeric(4, 2), nullable=True),
        sa.Column('plan_hours_month', sa.Integer(), nullable=False, server_default='160'),
        _money('home_territory_fixed_amount'),
        _money('fixed_salary'),
        _money('fixed_car_amount'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_engineers_is_active', 'engineers', ['is_active'])

    op.create_table(
        'engineer_organization_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('engineer_id', sa.Integer(), sa.ForeignKey('engineers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        _money('custom_base_rate', nullable=True),
        _money('custom_overtime_rate', nullable=True),
        _money('custom_zone1_extra', nullable=True),
        _money('custom_zone2_extra', nullable=True),
        _money('custom_zone3_extra', nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('engineer_id', 'organization_id', name='uq_engineer_org_rate'),
    )
    op.create_index('ix_engineer_organization_rates_engineer_id', 'engineer_organization_rates', ['engineer_id'])
    op.create_index('ix_engineer_organization_rates_organization_id', 'engineer_organization_rates', ['organization_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('assigned_engineer_id', sa.Integer(), sa.ForeignKey('engineers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('distance_km', sa.Numeric(8, 2), nullable=True),
        sa.Column('territory_type', sa.String(20), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('planned_start_date', sa.Date(), nullable=True),
        sa.Column('actual_start_date', sa.DateTime(), nullable=True),
        sa.Column('completion_date', sa.DateTime(), nullable=True),
        sa.Column('work_notes', sa.Text(), nullable=True),
        sa.Column('regular_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        _money('calculated_amount', 12),
        _money('car_usage_amount', 12),
        _money('organization_payment', 12),
        _money('regular_payment', 12),
        _money('overtime_payment', 12),
        _money('organization_regular_payment', 12),
        _money('organization_overtime_payment', 12),
        _money('profit', 12),
        _money('engineer_base_rate', nullable=True),
        _money('engineer_overtime_rate', nullable=True),
        _money('organization_base_rate', nullable=True),
        sa.Column('organization_overtime_multiplier', sa.Numeric(4, 2), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_orders_organization_id', 'orders', ['organization_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_order_engineer_status', 'orders', ['assigned_engineer_id', 'status'])

    op.create_table(
        'work_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('engineer_id', sa.Integer(), sa.ForeignKey('engineers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('regular_hours', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('calculated_amount'),
        _money('car_usage_amount'),
        _money('regular_payment'),
        _money('overtime_payment'),
        _money('organization_payment'),
        _money('organization_regular_payment'),
        _money('organization_overtime_payment'),
        _money('profit'),
        sa.Column('engineer_base_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('engineer_overtime_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('organization_base_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('organization_overtime_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('organization_overtime_multiplier', sa.Numeric(4, 2), nullable=True),
        sa.Column('distance_km', sa.Numeric(8, 2), nullable=True),
        sa.Column('territory_type', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('photo_url', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('can_be_invoiced', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_work_sessions_order_id', 'work_sessions', ['order_id'])
    op.create_index('ix_work_sessions_work_date', 'work_sessions', ['work_date'])
    op.create_index('ix_work_sessions_status', 'work_sessions', ['status'])
    op.create_index('ix_ws_engineer_date', 'work_sessions', ['engineer_id', 'work_date'])

    op.create_table(
        'work_reports',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('engineer_id', sa.Integer(), sa.ForeignKey('engineers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('total_hours', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('is_overtime', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('work_result', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('distance_km', sa.Numeric(8, 2), nullable=True),
        sa.Column('territory_type', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _money('calculated_amount'),
        _money('car_usage_amount'),
        _money('organization_payment'),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_work_reports_order_id', 'work_reports', ['order_id'])

    op.create_table(
        'salary_calculations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('engineer_id', sa.Integer(), sa.ForeignKey('engineers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('planned_hours', sa.Integer(), nullable=False, server_default='160'),
        sa.Column('actual_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        _money('base_amount', 12),
        _money('overtime_amount', 12),
        _money('bonus_amount', 12),
        _money('car_usage_amount', 12),
        _money('fixed_salary', 12),
        _money('fixed_car_amount', 12),
        _money('total_amount', 12),
        _money('client_revenue', 12),
        _money('profit_margin', 12),
        sa.Column('status', CALC_STATUS, nullable=False, server_default='draft'),
        sa.Column('calculated_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('engineer_id', 'year', 'month', name='uq_salary_calc_engineer_period'),
    )
    op.create_index('ix_salary_calculations_engineer_id', 'salary_calculations', ['engineer_id'])

    op.create_table(
        'salary_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('engineer_id', sa.Integer(), sa.ForeignKey('engineers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('salary_calculation_id', sa.Integer(),
                  sa.ForeignKey('salary_calculations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('month', sa.Integer(), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('type', PAYMENT_TYPE, nullable=False, server_default='regular'),
        sa.Column('method', PAYMENT_METHOD, nullable=False, server_default='bank_transfer'),
        sa.Column('status', PAYMENT_STATUS, nullable=False, server_default='completed'),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('paid_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('document_number', sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_salary_payments_salary_calculation_id', 'salary_payments', ['salary_calculation_id'])
    op.create_index('ix_salary_payments_status', 'salary_payments', ['status'])
    op.create_index('ix_salary_payments_payment_date', 'salary_payments', ['payment_date'])
    op.create_index('ix_salary_payment_engineer_date', 'salary_payments', ['engineer_id', 'payment_date'])

    op.create_table(
        'engineer_balances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('engineer_id', sa.Integer(), sa.ForeignKey('engineers.id', ondelete='CASCADE'), nullable=False, unique=True),
        _money('total_accrued', 14),
        _money('total_paid', 14),
        _money('balance', 14),
        sa.Column('last_accrual_date', sa.Date(), nullable=True),
        sa.Column('last_payment_date', sa.Date(), nullable=True),
        sa.Column('last_calculated_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    for table in (
        'engineer_balances', 'salary_payments', 'salary_calculations', 'work_reports',
        'work_sessions', 'orders', 'engineer_organization_rates', 'engineers',
        'organizations', 'user_roles', 'roles', 'users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (PAYMENT_STATUS, PAYMENT_METHOD, PAYMENT_TYPE, CALC_STATUS, ENGINEER_TYPE):
        enum.drop(bind, checkfirst=True)
