"""SQLAlchemy models.

All models should be imported here for Alembic to detect them.
"""

from linkhop_api.core.database import Base
from linkhop_api.models.link import ShortLink

__all__ = ["Base", "ShortLink"]
