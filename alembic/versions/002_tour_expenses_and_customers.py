"""tour_expenses_and_customers

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 16:40:03.517284

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, Sequence[str], None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('customers'):
        op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('language', sa.String(length=10), nullable=False, server_default='ko'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_customers_id'), 'customers', ['id'], unique=False)
        op.create_index(op.f('ix_customers_email'), 'customers', ['email'], unique=True)

    reservation_columns = {column['name'] for column in inspector.get_columns('reservations')}
    if 'customer_id' not in reservation_columns:
        op.add_column('reservations', sa.Column('customer_id', sa.Integer(), nullable=True))
        op.create_index(op.f('ix_reservations_customer_id'), 'reservations', ['customer_id'], unique=False)
        op.create_foreign_key(
            'fk_reservations_customer_id', 'reservations', 'customers', ['customer_id'], ['id']
        )

    if not inspector.has_table('tour_expenses'):
        op.create_table('tour_expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='sync'),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('expense_code', sa.String(length=100), nullable=False),
        sa.Column('tour_id', sa.String(length=100), nullable=True),
        sa.Column('product_id', sa.String(length=100), nullable=True),
        sa.Column('tour_date', sa.Date(), nullable=False),
        sa.Column('submit_on', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submitted_by', sa.String(length=255), nullable=False),
        sa.Column('paid_to', sa.String(length=255), nullable=True),
        sa.Column('paid_for', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_method', sa.String(length=255), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('file_path', sa.Text(), nullable=True),
        sa.Column('audited_by', sa.String(length=255), nullable=True),
        sa.Column('checked_by', sa.String(length=255), nullable=True),
        sa.Column('checked_on', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_tour_expenses_id'), 'tour_expenses', ['id'], unique=False)
        op.create_index(op.f('ix_tour_expenses_source'), 'tour_expenses', ['source'], unique=False)
        op.create_index(op.f('ix_tour_expenses_expense_code'), 'tour_expenses', ['expense_code'], unique=True)
        op.create_index(op.f('ix_tour_expenses_tour_id'), 'tour_expenses', ['tour_id'], unique=False)
        op.create_index(op.f('ix_tour_expenses_tour_date'), 'tour_expenses', ['tour_date'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table('tour_expenses'):
        op.drop_table('tour_expenses')

    reservation_columns = {column['name'] for column in inspector.get_columns('reservations')}
    if 'customer_id' in reservation_columns:
        op.drop_constraint('fk_reservations_customer_id', 'reservations', type_='foreignkey')
        op.drop_index(op.f('ix_reservations_customer_id'), table_name='reservations')
        op.drop_column('reservations', 'customer_id')

    if inspector.has_table('customers'):
        op.drop_table('customers')
