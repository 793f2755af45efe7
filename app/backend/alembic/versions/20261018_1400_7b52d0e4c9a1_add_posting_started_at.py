"""add posting_started_at

Revision ID: 7b52d0e4c9a1
Revises: 3f1c9a7b2e10
Create Date: 2026-10-18 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '7b52d0e4c9a1'
down_revision: Union[str, None] = '3f1c9a7b2e10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('payment_postings', sa.Column('posting_started_at', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column('payment_postings', 'posting_started_at')
