"""create_booking_tables

Revision ID: 5c1e8a0f3b27
Revises:
Create Date: 2026-03-01 10:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e8a0f3b27'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


client_role = sa.Enum('client', 'admin', name='client_role')
shift = sa.Enum('morning', 'evening', name='shift')
credit_lot_status = sa.Enum('active', 'expired', 'exhausted', name='credit_lot_status')
reservation_status = sa.Enum('pending', 'confirmed', 'cancelled', name='reservation_status')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'clients',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('dni', sa.String(length=8), nullable=False, comment='National identity number, 7-8 digits'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', client_role, nullable=False),
        sa.Column('studio_id', sa.Integer(), nullable=False),
        sa.Column('shift_preference', shift, nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clients_dni', 'clients', ['dni'], unique=True)
    op.create_index('ix_clients_studio_id', 'clients', ['studio_id'])

    op.create_table(
        'packs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('studio_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('class_count', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('class_count > 0', name='pack_class_count_positive'),
        sa.CheckConstraint('duration_days > 0', name='pack_duration_positive'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_packs_studio_id', 'packs', ['studio_id'])

    op.create_table(
        'credit_lots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('pack_id', sa.Uuid(), nullable=True),
        sa.Column('total_credits', sa.Integer(), nullable=False),
        sa.Column('remaining_credits', sa.Integer(), nullable=False),
        sa.Column('carried_over_credits', sa.Integer(), nullable=False, comment='Credits rolled in from a renewed lot'),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('status', credit_lot_status, nullable=False),
        sa.Column('amount_paid', sa.Numeric(10, 2), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'remaining_credits >= 0 AND remaining_credits <= total_credits',
            name='credit_lot_remaining_in_range',
        ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pack_id'], ['packs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_credit_lots_client_id', 'credit_lots', ['client_id'])
    op.create_index('ix_credit_lots_expiry_date', 'credit_lots', ['expiry_date'])
    op.create_index('ix_credit_lots_client_status', 'credit_lots', ['client_id', 'status'])

    op.create_table(
        'reservations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('credit_lot_id', sa.Uuid(), nullable=False),
        sa.Column('class_date', sa.Date(), nullable=False),
        sa.Column('class_time', sa.Time(), nullable=False),
        sa.Column('resource_unit', sa.Integer(), nullable=False),
        sa.Column('status', reservation_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('resource_unit >= 1', name='reservation_unit_positive'),
        sa.CheckConstraint(
            "cancelled_at IS NULL OR status = 'cancelled'",
            name='reservation_cancelled_at_only_when_cancelled',
        ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['credit_lot_id'], ['credit_lots.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reservations_client_id', 'reservations', ['client_id'])
    op.create_index('ix_reservations_credit_lot_id', 'reservations', ['credit_lot_id'])
    op.create_index('ix_reservations_status', 'reservations', ['status'])
    op.create_index('ix_reservations_slot', 'reservations', ['class_date', 'class_time'])

    # Live reservations only: a cancelled row frees its bed and its day
    op.create_index(
        'uq_reservation_slot_unit',
        'reservations',
        ['class_date', 'class_time', 'resource_unit'],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )
    op.create_index(
        'uq_reservation_client_day',
        'reservations',
        ['client_id', 'class_date'],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    op.create_table(
        'fixed_schedule',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('weekday', sa.Integer(), nullable=False),
        sa.Column('class_time', sa.Time(), nullable=False),
        sa.CheckConstraint('weekday BETWEEN 0 AND 6', name='fixed_schedule_weekday_range'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'weekday', 'class_time', name='uq_fixed_schedule_entry'),
    )
    op.create_index('ix_fixed_schedule_client_id', 'fixed_schedule', ['client_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('fixed_schedule')
    op.drop_index('uq_reservation_client_day', table_name='reservations')
    op.drop_index('uq_reservation_slot_unit', table_name='reservations')
    op.drop_table('reservations')
    op.drop_table('credit_lots')
    op.drop_table('packs')
    op.drop_table('clients')

    bind = op.get_bind()
    for enum in (reservation_status, credit_lot_status, shift, client_role):
        enum.drop(bind, checkfirst=True)
