"""Core service layer modules."""

from .tags import TagService

__all__ = ["TagService"]
