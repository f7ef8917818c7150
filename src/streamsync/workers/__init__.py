"""
Job workers.

Importing this package registers every worker with the job registry.
"""

from .cleanup import CleanupOrphanedDataWorker
from .epg import SyncEpgWorker
from .series_details import SyncSeriesDetailsWorker
from .sync_all import SyncAllProvidersWorker
from .sync_provider import SyncProviderWorker
from .system_provider import SyncSystemProviderWorker

__all__ = [
    "CleanupOrphanedDataWorker",
    "SyncEpgWorker",
    "SyncSeriesDetailsWorker",
    "SyncAllProvidersWorker",
    "SyncProviderWorker",
    "SyncSystemProviderWorker",
]
