"""
Collections mirrored by this deployment.

Point SYNC_COLLECTIONS at another ``module:attribute`` to sync a different
set; every entry is a SyncConfig (or a mapping of its fields).
"""

from .prices import PRICES

COLLECTIONS = [PRICES]

__all__ = ["COLLECTIONS", "PRICES"]
