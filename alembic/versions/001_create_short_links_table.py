"""Create short_links table.

Revision ID: 001
Revises:
Create Date: 2024-01-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the short_links table."""
    op.create_table(
        "short_links",
        sa.Column(
            "code",
            sa.String(32),
            nullable=False,
            comment="Short code for the URL (e.g., 'Ab12Cd9')",
        ),
        sa.Column(
            "long_url",
            sa.Text(),
            nullable=False,
            comment="The original URL to redirect to",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("code", name=op.f("pk_short_links")),
    )


def downgrade() -> None:
    """Drop the short_links table."""
    op.drop_table("short_links")
