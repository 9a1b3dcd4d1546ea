"""Initial schema: companies, users, expenses, approval flows and states

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('ADMIN', 'MANAGER', 'EMPLOYEE', name='user_role')
expense_status = sa.Enum('DRAFT', 'WAITING', 'APPROVED', 'REJECTED', name='expense_status')
approval_state = sa.Enum('WAITING', 'APPROVED', 'REJECTED', name='approval_state')
approval_decision_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='approval_decision_status')


def upgrade():
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False, unique=True),
        sa.Column('country', sa.String(length=120), nullable=True),
        sa.Column('currency_code', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('reset_required', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_company_id', 'users', ['company_id'])

    op.create_table(
        'employee_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('manager_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
    )
    op.create_index('ix_employee_profiles_manager_id', 'employee_profiles', ['manager_id'])

    op.create_table(
        'approval_flows',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_manager_first', sa.Boolean(), nullable=False),
        sa.Column('sequence_enabled', sa.Boolean(), nullable=False),
        sa.Column('approvers', sa.JSON(), nullable=False),
        sa.Column('percent_threshold', sa.Integer(), nullable=True),
        sa.Column('specific_approver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_approval_flows_company_id', 'approval_flows', ['company_id'])

    op.create_table(
        'expenses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('submitter_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount_original', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency_original', sa.String(length=10), nullable=False),
        sa.Column('amount_in_company_currency', sa.Numeric(12, 2), nullable=True),
        sa.Column('conversion_rate', sa.Numeric(18, 8), nullable=True),
        sa.Column('conversion_low_confidence', sa.Boolean(), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('spend_date', sa.Date(), nullable=False),
        sa.Column('paid_by', sa.String(length=120), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('status', expense_status, nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_expenses_company_id', 'expenses', ['company_id'])
    op.create_index('ix_expenses_submitter_user_id', 'expenses', ['submitter_user_id'])

    op.create_table(
        'expense_approval_states',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('expense_id', sa.Integer(), sa.ForeignKey('expenses.id'), nullable=False, unique=True),
        sa.Column('flow_snapshot', sa.JSON(), nullable=False),
        sa.Column('manager_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('step_index', sa.Integer(), nullable=False),
        sa.Column('status', approval_state, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'expense_approvals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('state_id', sa.Integer(), sa.ForeignKey('expense_approval_states.id'), nullable=False),
        sa.Column('expense_id', sa.Integer(), sa.ForeignKey('expenses.id'), nullable=False),
        sa.Column('approver_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=False),
        sa.Column('required', sa.Boolean(), nullable=False),
        sa.Column('status', approval_decision_status, nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('acted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('state_id', 'approver_user_id', name='uq_expense_approvals_state_approver'),
    )
    op.create_index('ix_expense_approvals_state_id', 'expense_approvals', ['state_id'])
    op.create_index('ix_expense_approvals_expense_id', 'expense_approvals', ['expense_id'])
    op.create_index('ix_expense_approvals_approver_user_id', 'expense_approvals', ['approver_user_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('entity_type', sa.String(length=120), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(length=120), nullable=False),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('extra_data', sa.JSON(), nullable=True),
    )
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade():
    op.drop_index('ix_audit_logs_entity_id', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_expense_approvals_approver_user_id', table_name='expense_approvals')
    op.drop_index('ix_expense_approvals_expense_id', table_name='expense_approvals')
    op.drop_index('ix_expense_approvals_state_id', table_name='expense_approvals')
    op.drop_table('expense_approvals')
    op.drop_table('expense_approval_states')
    op.drop_index('ix_expenses_submitter_user_id', table_name='expenses')
    op.drop_index('ix_expenses_company_id', table_name='expenses')
    op.drop_table('expenses')
    op.drop_index('ix_approval_flows_company_id', table_name='approval_flows')
    op.drop_table('approval_flows')
    op.drop_index('ix_employee_profiles_manager_id', table_name='employee_profiles')
    op.drop_table('employee_profiles')
    op.drop_index('ix_users_company_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.drop_table('companies')

    bind = op.get_bind()
    for enum_type in (approval_decision_status, approval_state, expense_status, user_role):
        enum_type.drop(bind, checkfirst=True)
