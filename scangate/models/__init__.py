"""SQLAlchemy ORM models."""

from scangate.models.base import Base
from scangate.models.release import Release
from scangate.models.scan_error import ScanError
from scangate.models.scan_profile import ScanProfile, ScanStatus

__all__ = ["Base", "Release", "ScanError", "ScanProfile", "ScanStatus"]
