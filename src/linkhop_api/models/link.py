"""ShortLink SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from linkhop_api.core.database import Base
from linkhop_shared.schemas import utcnow


class ShortLink(Base):
    """Mapping from a short code to the long URL it redirects to.

    Rows are immutable once written: the code is the primary key and the
    long URL is never updated in place.
    """

    __tablename__ = "short_links"

    code: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="Short code for the URL (e.g., 'Ab12Cd9')",
    )
    long_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="The original URL to redirect to",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ShortLink {self.code} -> {self.long_url[:50]}>"
