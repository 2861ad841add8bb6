"""Database utilities and models."""

from apex.db.base import Base
from apex.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
