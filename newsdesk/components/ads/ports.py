"""
Ad lifecycle component port definitions.
"""

from __future__ import annotations

from newsdesk.core.ports.store import AdStorePort
from newsdesk.core.ports.time import TimePort

__all__ = ["AdStorePort", "TimePort"]
