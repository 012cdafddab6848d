"""Services package."""

from portal_sync.services.checkpoint_store import CheckpointStore
from portal_sync.services.field_transformer import FieldTransformer, TransformationResult
from portal_sync.services.outcome_ledger import OutcomeLedger
from portal_sync.services.paginated_fetcher import PaginatedFetcher, QueryConfig, FetchResult
from portal_sync.services.sync_service import SyncOrchestrator, SyncRunResult, SyncState

__all__ = [
    "CheckpointStore",
    "FieldTransformer",
    "TransformationResult",
    "OutcomeLedger",
    "PaginatedFetcher",
    "QueryConfig",
    "FetchResult",
    "SyncOrchestrator",
    "SyncRunResult",
    "SyncState",
]
