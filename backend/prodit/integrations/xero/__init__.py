"""
Xero integration.

- oauth: token exchange, refresh and tenant resolution
- pipeline: authenticated accounting API calls with refresh-and-retry-once
"""

from prodit.integrations.xero.oauth import TenantInfo, TokenLifecycleManager
from prodit.integrations.xero.pipeline import RefreshLocks, RequestPipeline

__all__ = [
    "TenantInfo",
    "TokenLifecycleManager",
    "RefreshLocks",
    "RequestPipeline",
]
