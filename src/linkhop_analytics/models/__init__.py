"""SQLAlchemy models.

All models should be imported here for Alembic to detect them.
"""

from linkhop_analytics.core.database import Base
from linkhop_analytics.models.click import ClickRecord

__all__ = ["Base", "ClickRecord"]
