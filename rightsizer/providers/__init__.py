"""
Rightsizer Providers -- vCenter inventory/grouping and vROps monitoring.
"""

from .base import HttpProvider
from .vcenter import VCenterProvider
from .vrops import VROpsProvider, parse_stats
from .factory import ProviderFactory, safe_status

__all__ = [
    "HttpProvider",
    "VCenterProvider",
    "VROpsProvider",
    "parse_stats",
    "ProviderFactory",
    "safe_status",
]
