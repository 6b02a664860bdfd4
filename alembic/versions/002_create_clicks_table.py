"""Create clicks table.

Revision ID: 002
Revises: 001
Create Date: 2024-01-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the clicks table."""
    op.create_table(
        "clicks",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column(
            "event_id",
            sa.Uuid(),
            nullable=False,
            comment="Idempotency key carried by the click event",
        ),
        sa.Column(
            "code",
            sa.String(32),
            nullable=False,
            comment="Short code that was accessed (references short_links.code)",
        ),
        sa.Column(
            "clicked_at",
            sa.DateTime(timezone=True),
            nullable=False,
            comment="Timestamp when the click occurred",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
            comment="When this record was created",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_clicks")),
        sa.UniqueConstraint("event_id", name=op.f("uq_clicks_event_id")),
    )

    # Create indexes
    op.create_index(op.f("ix_clicks_code"), "clicks", ["code"])
    op.create_index(op.f("ix_clicks_clicked_at"), "clicks", ["clicked_at"])
    op.create_index("ix_clicks_code_clicked_at", "clicks", ["code", "clicked_at"])


def downgrade() -> None:
    """Drop the clicks table."""
    op.drop_index("ix_clicks_code_clicked_at", table_name="clicks")
    op.drop_index(op.f("ix_clicks_clicked_at"), table_name="clicks")
    op.drop_index(op.f("ix_clicks_code"), table_name="clicks")
    op.drop_table("clicks")
