"""Click SQLAlchemy model for storing raw click events."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from linkhop_analytics.core.database import Base
from linkhop_shared.schemas import utcnow


class ClickRecord(Base):
    """Click model for storing raw click/redirect events.

    Each row represents a single click on a shortened URL. Rows are
    append-only; ``event_id`` is unique so a redelivered event is stored once.
    """

    __tablename__ = "clicks"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    event_id: Mapped[UUID] = mapped_column(
        Uuid,
        nullable=False,
        unique=True,
        comment="Idempotency key carried by the click event",
    )
    code: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
        comment="Short code that was accessed (references short_links.code)",
    )
    clicked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="Timestamp when the click occurred",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="When this record was created",
    )

    # Composite index for time-windowed counts per code
    __table_args__ = (
        Index("ix_clicks_code_clicked_at", "code", "clicked_at"),
    )

    def __repr__(self) -> str:
        return f"<ClickRecord {self.id} code={self.code} at={self.clicked_at}>"
