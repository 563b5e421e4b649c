"""add revoked event type

Revision ID: 002
Revises: 001
Create Date: 2026-10-20 10:15:00.000000

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, Sequence[str], None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # non-native enums are plain VARCHAR columns, only Postgres keeps a type to extend
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("ALTER TYPE eventtype ADD VALUE IF NOT EXISTS 'revoked'")


def downgrade() -> None:
    """Downgrade schema."""
    # Postgres cannot drop an enum value; fold the rows back into the old catch-all type
    op.execute("UPDATE waitlist_events SET event_type = 'position_updated' WHERE event_type = 'revoked'")
