"""Add completion date to projects.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Stamped the first time a project is marked completed."""
    op.add_column(
        'projects',
        sa.Column('completion_date', sa.DateTime, nullable=True)
    )


def downgrade() -> None:
    op.drop_column('projects', 'completion_date')
