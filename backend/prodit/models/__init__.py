"""
Database models.

Only the credential table lives here; users and sessions belong to the
authentication layer.
"""

from prodit.models.base import TimestampMixin
from prodit.models.xero_connection import XeroConnection

__all__ = [
    "TimestampMixin",
    "XeroConnection",
]
