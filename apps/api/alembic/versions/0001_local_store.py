"""Local durable cache table

Revision ID: 0001_local_store
Revises:
Create Date: 2026-10-17

One JSON value per storage key: saved wizard sessions, questionnaire
assignments, cached questionnaire definitions and the credential summary.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_local_store'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the local_store_entries table."""
    op.create_table(
        'local_store_entries',
        sa.Column('key', sa.String(length=100), primary_key=True),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table('local_store_entries')
