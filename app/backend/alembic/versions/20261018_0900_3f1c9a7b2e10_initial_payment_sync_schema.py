"""initial payment sync schema

Revision ID: 3f1c9a7b2e10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '3f1c9a7b2e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_type = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    op.create_table('sale_payment_links',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('cin7_sale_id', sa.String(length=64), nullable=False),
    sa.Column('cin7_reference', sa.String(length=255), nullable=False),
    sa.Column('stripe_payment_link_id', sa.String(length=255), nullable=False),
    sa.Column('stripe_payment_link_url', sa.String(length=1024), nullable=False),
    sa.Column('amount', sa.Integer(), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sale_payment_links_cin7_sale_id'), 'sale_payment_links', ['cin7_sale_id'], unique=True)
    op.create_index(op.f('ix_sale_payment_links_stripe_payment_link_id'), 'sale_payment_links', ['stripe_payment_link_id'], unique=False)

    op.create_table('webhook_events',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('event_id', sa.String(length=255), nullable=False),
    sa.Column('event_type', sa.String(length=100), nullable=False),
    sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
    sa.Column('stripe_charge_id', sa.String(length=255), nullable=True),
    sa.Column('cin7_sale_id', sa.String(length=64), nullable=True),
    sa.Column('cin7_reference', sa.String(length=255), nullable=True),
    sa.Column('amount', sa.Integer(), nullable=True),
    sa.Column('currency', sa.String(length=3), nullable=True),
    sa.Column('processed', sa.Boolean(), nullable=False),
    sa.Column('raw_event', json_type, nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_webhook_events_event_id'), 'webhook_events', ['event_id'], unique=True)
    op.create_index(op.f('ix_webhook_events_cin7_sale_id'), 'webhook_events', ['cin7_sale_id'], unique=False)
    op.create_index(op.f('ix_webhook_events_processed'), 'webhook_events', ['processed'], unique=False)

    op.create_table('payment_postings',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('cin7_sale_id', sa.String(length=64), nullable=False),
    sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=False),
    sa.Column('stripe_charge_id', sa.String(length=255), nullable=True),
    sa.Column('amount', sa.Integer(), nullable=False),
    sa.Column('currency', sa.String(length=3), nullable=False),
    sa.Column('posted_to_cin7', sa.Boolean(), nullable=False),
    sa.Column('cin7_response', json_type, nullable=True),
    sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('cin7_sale_id', 'stripe_payment_intent_id', name='uq_payment_postings_sale_intent')
    )
    op.create_index(op.f('ix_payment_postings_cin7_sale_id'), 'payment_postings', ['cin7_sale_id'], unique=False)
    op.create_index(op.f('ix_payment_postings_posted_to_cin7'), 'payment_postings', ['posted_to_cin7'], unique=False)

    op.create_table('idempotency_keys',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('key', sa.String(length=255), nullable=False),
    sa.Column('operation', sa.String(length=100), nullable=False),
    sa.Column('response_data', json_type, nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_idempotency_keys_key'), 'idempotency_keys', ['key'], unique=True)
    op.create_index(op.f('ix_idempotency_keys_expires_at'), 'idempotency_keys', ['expires_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_idempotency_keys_expires_at'), table_name='idempotency_keys')
    op.drop_index(op.f('ix_idempotency_keys_key'), table_name='idempotency_keys')
    op.drop_table('idempotency_keys')
    op.drop_index(op.f('ix_payment_postings_posted_to_cin7'), table_name='payment_postings')
    op.drop_index(op.f('ix_payment_postings_cin7_sale_id'), table_name='payment_postings')
    op.drop_table('payment_postings')
    op.drop_index(op.f('ix_webhook_events_processed'), table_name='webhook_events')
    op.drop_index(op.f('ix_webhook_events_cin7_sale_id'), table_name='webhook_events')
    op.drop_index(op.f('ix_webhook_events_event_id'), table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index(op.f('ix_sale_payment_links_stripe_payment_link_id'), table_name='sale_payment_links')
    op.drop_index(op.f('ix_sale_payment_links_cin7_sale_id'), table_name='sale_payment_links')
    op.drop_table('sale_payment_links')
