"""create_sync_tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:12:41.208113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _technical_columns() -> list:
    """Columnas comunes de las tablas destino del sync."""
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False, server_default='sync'),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
    ]


def _create_target_table(name: str, key: str, columns: list) -> None:
    op.create_table(
        name,
        *_technical_columns(),
        sa.Column(key, sa.String(length=100), nullable=False),
        *columns,
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f(f'ix_{name}_id'), name, ['id'], unique=False)
    op.create_index(op.f(f'ix_{name}_source'), name, ['source'], unique=False)
    op.create_index(op.f(f'ix_{name}_{key}'), name, [key], unique=True)


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table('reservations'):
        _create_target_table('reservations', 'reservation_number', [
            sa.Column('customer_name', sa.String(length=255), nullable=True),
            sa.Column('customer_email', sa.String(length=255), nullable=True),
            sa.Column('customer_phone', sa.String(length=50), nullable=True),
            sa.Column('adults', sa.Integer(), nullable=True),
            sa.Column('child', sa.Integer(), nullable=True),
            sa.Column('infant', sa.Integer(), nullable=True),
            sa.Column('total_people', sa.Integer(), nullable=True),
            sa.Column('tour_date', sa.Date(), nullable=True),
            sa.Column('tour_time', sa.Time(), nullable=True),
            sa.Column('product_id', sa.String(length=100), nullable=True),
            sa.Column('choice', sa.String(length=100), nullable=True),
            sa.Column('tour_id', sa.String(length=100), nullable=True),
            sa.Column('pickup_hotel', sa.String(length=255), nullable=True),
            sa.Column('pickup_time', sa.Time(), nullable=True),
            sa.Column('channel', sa.String(length=100), nullable=True),
            sa.Column('channel_rn', sa.String(length=100), nullable=True),
            sa.Column('added_by', sa.String(length=255), nullable=True),
            sa.Column('status', sa.String(length=50), nullable=True),
            sa.Column('event_note', sa.Text(), nullable=True),
            sa.Column('is_private_tour', sa.Boolean(), nullable=True),
            sa.Column('selected_options', sa.JSON(), nullable=True),
        ])
        op.create_index(op.f('ix_reservations_tour_date'), 'reservations', ['tour_date'], unique=False)
        op.create_index(op.f('ix_reservations_tour_id'), 'reservations', ['tour_id'], unique=False)

    if not inspector.has_table('tours'):
        _create_target_table('tours', 'tour_number', [
            sa.Column('product_id', sa.String(length=100), nullable=True),
            sa.Column('tour_date', sa.Date(), nullable=True),
            sa.Column('tour_status', sa.String(length=50), nullable=True),
            sa.Column('tour_guide_id', sa.String(length=255), nullable=True),
            sa.Column('assistant_id', sa.String(length=255), nullable=True),
            sa.Column('tour_car_id', sa.String(length=100), nullable=True),
            sa.Column('is_private_tour', sa.Boolean(), nullable=True),
            sa.Column('reservation_ids', sa.JSON(), nullable=True),
        ])
        op.create_index(op.f('ix_tours_tour_date'), 'tours', ['tour_date'], unique=False)

    if not inspector.has_table('payment_methods'):
        _create_target_table('payment_methods', 'method_code', [
            sa.Column('method', sa.String(length=255), nullable=False),
            sa.Column('method_type', sa.String(length=20), nullable=True),
            sa.Column('user_email', sa.String(length=255), nullable=True),
            sa.Column('limit_amount', sa.Numeric(precision=12, scale=2), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=True),
            sa.Column('card_number_last4', sa.String(length=4), nullable=True),
            sa.Column('card_type', sa.String(length=20), nullable=True),
        ])

    if not inspector.has_table('reservation_expenses'):
        _create_target_table('reservation_expenses', 'expense_code', [
            sa.Column('submit_on', sa.DateTime(timezone=True), nullable=True),
            sa.Column('submitted_by', sa.String(length=255), nullable=True),
            sa.Column('paid_to', sa.String(length=255), nullable=True),
            sa.Column('paid_for', sa.String(length=255), nullable=True),
            sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
            sa.Column('payment_method', sa.String(length=255), nullable=True),
            sa.Column('note', sa.Text(), nullable=True),
            sa.Column('image_url', sa.Text(), nullable=True),
            sa.Column('file_path', sa.Text(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=True),
            sa.Column('reservation_id', sa.String(length=100), nullable=True),
            sa.Column('event_id', sa.String(length=100), nullable=True),
        ])
        op.create_index(
            op.f('ix_reservation_expenses_reservation_id'), 'reservation_expenses', ['reservation_id'], unique=False
        )

    if not inspector.has_table('sync_history'):
        op.create_table('sync_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('target_table', sa.String(length=100), nullable=False),
        sa.Column('spreadsheet_id', sa.String(length=255), nullable=False),
        sa.Column('last_sync_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('record_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('target_table', 'spreadsheet_id', name='uq_sync_history_table_spreadsheet')
        )
        op.create_index(op.f('ix_sync_history_id'), 'sync_history', ['id'], unique=False)
        op.create_index(op.f('ix_sync_history_target_table'), 'sync_history', ['target_table'], unique=False)

    if not inspector.has_table('sync_column_mappings'):
        op.create_table('sync_column_mappings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sheet_name', sa.String(length=255), nullable=False),
        sa.Column('target_table', sa.String(length=100), nullable=False),
        sa.Column('mapping', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sheet_name', 'target_table', name='uq_column_mapping_sheet_table')
        )
        op.create_index(op.f('ix_sync_column_mappings_id'), 'sync_column_mappings', ['id'], unique=False)
        op.create_index(
            op.f('ix_sync_column_mappings_target_table'), 'sync_column_mappings', ['target_table'], unique=False
        )


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in (
        'sync_column_mappings',
        'sync_history',
        'reservation_expenses',
        'payment_methods',
        'tours',
        'reservations',
    ):
        if inspector.has_table(table):
            op.drop_table(table)
