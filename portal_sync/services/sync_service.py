"""Sync service for orchestrating incremental CRM to portal syncs."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from portal_sync.exceptions import CheckpointError, ConfigurationError
from portal_sync.models.checkpoint import CheckpointStatus, SyncCheckpoint
from portal_sync.pipelines import PipelineConfig, get_pipeline
from portal_sync.services.checkpoint_store import CheckpointStore
from portal_sync.services.field_transformer import FieldTransformer
from portal_sync.services.outcome_ledger import WARNING, LedgerEntry, OutcomeLedger
from portal_sync.services.paginated_fetcher import FetchResult, PaginatedFetcher, QueryConfig
from portal_sync.services.portal_client import PushResult
from portal_sync.timeutils import isoformat_z, utc_now

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    FILTER_BUILT = "filter_built"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    PUSHING = "pushing"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class SyncRunResult:
    """Summary of one sync attempt."""
    task_name: str
    module_name: str
    state: SyncState
    started_at: datetime
    records_fetched: int = 0
    records_pushed: int = 0
    invalid_records: int = 0
    fallback_records: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)
    last_sync_date_used: Optional[datetime] = None
    truncated: bool = False
    push_results: List[PushResult] = field(default_factory=list)
    error_message: Optional[str] = None


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class SyncOrchestrator:
    """Runs the per-entity sync pipeline.

    idle -> filter_built -> fetching -> transforming -> pushing -> committed,
    or failed from any stage. The checkpoint only advances on success.
    """

    def __init__(
        self,
        store: CheckpointStore,
        transformer: FieldTransformer,
        source_client,
        portal_client,
        ledger: Optional[OutcomeLedger] = None,
        fetcher: Optional[PaginatedFetcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize orchestrator.

        Args:
            store: Checkpoint store.
            transformer: Field transformer.
            source_client: SugarCRM client (already entered).
            portal_client: Portal client (already entered).
            ledger: Optional outcome ledger; no rows are written without one.
            fetcher: Paginated fetcher (defaults to one over source_client).
            clock: Returns the run start time.
        """
        self.store = store
        self.transformer = transformer
        self.source_client = source_client
        self.portal_client = portal_client
        self.ledger = ledger
        self.fetcher = fetcher or PaginatedFetcher(source_client)
        self.clock = clock
        self._running: Set[str] = set()

    def is_running(self, module_name: str) -> bool:
        return module_name in self._running

    async def run(self, pipeline: PipelineConfig) -> SyncRunResult:
        """Run one sync for a pipeline.

        Args:
            pipeline: Pipeline to run.

        Returns:
            SyncRunResult in state ``committed``.

        Raises:
            RuntimeError: If a sync for the same module is already in progress.
            SyncError: Configuration, authentication or transport failures,
                re-raised after the checkpoint has been marked failed.
        """
        if pipeline.module_name in self._running:
            logger.warning(f"Sync already in progress for {pipeline.module_name}")
            raise RuntimeError(f"A sync for {pipeline.module_name} is already in progress")

        self._running.add(pipeline.module_name)
        try:
            return await self._run(pipeline)
        finally:
            self._running.discard(pipeline.module_name)

    async def _run(self, pipeline: PipelineConfig) -> SyncRunResult:
        result = SyncRunResult(
            task_name=pipeline.task_name,
            module_name=pipeline.module_name,
            state=SyncState.IDLE,
            started_at=self.clock(),
        )
        logger.info(f"Starting {pipeline.task_name} ({pipeline.source_module} -> {pipeline.module_name})")
        self._record_operation(pipeline.module_name, "start")

        try:
            # Step 1: checkpoint and change filter
            mapping = self.transformer.get_mapping(pipeline.mapping_type)
            checkpoint = self._load_checkpoint(pipeline)
            result.last_sync_date_used = checkpoint.last_sync_at
            filters = self._build_filters(pipeline, checkpoint)
            result.state = SyncState.FILTER_BUILT

            # Step 2: fetch
            result.state = SyncState.FETCHING
            query = QueryConfig(
                module=pipeline.source_module,
                filters=filters,
                fields=mapping.source_fields(),
                page_size=pipeline.page_size,
                order_by=pipeline.order_by,
                order_direction=pipeline.order_direction,
            )
            fetched = await self.fetcher.fetch_all(query, on_page=self._log_page)
            result.records_fetched = fetched.total_fetched
            result.truncated = fetched.truncated

            if not fetched.records:
                logger.info(f"No new or modified {pipeline.source_module} records, {pipeline.module_name} is up to date")
                return self._commit(pipeline, result)

            # Step 3: transform
            result.state = SyncState.TRANSFORMING
            batch = self._transform_batch(pipeline, fetched, result)

            # Step 4: push
            result.state = SyncState.PUSHING
            if batch:
                push_results = await self.portal_client.push(pipeline.endpoint, batch)
            else:
                logger.info(f"All {result.records_fetched} records were skipped, nothing to push")
                push_results = []
            result.records_pushed = len(batch)
            result.push_results = push_results
            result.status_counts = dict(Counter(r.internal_status or "Unknown" for r in push_results))
            if self.ledger is not None and push_results:
                self.ledger.record_push_results(pipeline.module_name, push_results)

            return self._commit(pipeline, result)

        except Exception as e:
            result.state = SyncState.FAILED
            result.error_message = str(e)
            logger.error(f"{pipeline.task_name} failed: {e}")
            self._mark_failed(pipeline, e)
            self._record_operation(pipeline.module_name, "failed", error=str(e))
            raise

    def _load_checkpoint(self, pipeline: PipelineConfig) -> SyncCheckpoint:
        """Get the pipeline's checkpoint, creating a pending one if allowed.

        Raises:
            ConfigurationError: If the checkpoint is missing and required.
        """
        checkpoint = self.store.get(pipeline.module_name)
        if checkpoint is not None:
            if checkpoint.last_sync_at:
                logger.info(f"Last sync date for module '{pipeline.module_name}': {isoformat_z(checkpoint.last_sync_at)}")
            else:
                logger.info(f"No previous sync found for module '{pipeline.module_name}' - will fetch all records")
            return checkpoint

        if pipeline.require_checkpoint:
            raise ConfigurationError(
                f"No sync record found for {pipeline.module_name} module. Please create one first."
            )

        logger.warning(f"No sync record for module '{pipeline.module_name}', creating one")
        return self.store.create(
            module_name=pipeline.module_name,
            integration_name=pipeline.task_name,
            direction=pipeline.direction,
            endpoint=pipeline.endpoint,
        )

    @staticmethod
    def _build_filters(pipeline: PipelineConfig, checkpoint: SyncCheckpoint) -> List[Dict[str, Any]]:
        filters: List[Dict[str, Any]] = []
        if checkpoint.last_sync_at:
            filters.append({pipeline.modified_field: {"$gte": isoformat_z(checkpoint.last_sync_at)}})
        filters.extend(dict(f) for f in pipeline.static_filters)
        return filters

    @staticmethod
    def _log_page(records: List[Dict[str, Any]], page) -> None:
        logger.debug(f"Fetched page: {len(records)} records (total count: {page.total_count})")

    def _transform_batch(
        self,
        pipeline: PipelineConfig,
        fetched: FetchResult,
        result: SyncRunResult,
    ) -> List[Dict[str, Any]]:
        """Transform every fetched record into the pipeline's output shape.

        One bad record never aborts the batch: an unexpected exception yields a
        fallback record, and invalid records are kept unless ``skip_invalid``.
        """
        batch = []
        for record in fetched.records:
            try:
                transformation = self.transformer.transform(record, pipeline.mapping_type)
            except Exception as e:
                logger.warning(f"Error processing record {record.get('id')}: {e}")
                result.fallback_records += 1
                batch.append(self._fallback_record(pipeline, record))
                continue

            if not transformation.is_valid:
                result.invalid_records += 1
                self._record_invalid(pipeline, record, transformation.validation_errors)
                if pipeline.skip_invalid:
                    continue

            batch.append(self._project(pipeline, transformation.data))

        logger.info(
            f"Processed {len(fetched.records)} records: {len(batch)} ready, "
            f"{result.invalid_records} invalid, {result.fallback_records} fallback"
        )
        return batch

    @staticmethod
    def _project(pipeline: PipelineConfig, data: Dict[str, Any]) -> Dict[str, Any]:
        projected = {}
        for name in pipeline.output_fields:
            value = data.get(name)
            projected[name] = None if _is_empty(value) else value
        return projected

    @staticmethod
    def _fallback_record(pipeline: PipelineConfig, record: Dict[str, Any]) -> Dict[str, Any]:
        fallback = {name: None for name in pipeline.output_fields}
        for output_field, source_field in pipeline.fallback_fields.items():
            value = record.get(source_field)
            fallback[output_field] = None if _is_empty(value) else value
        return fallback

    def _record_invalid(self, pipeline: PipelineConfig, record: Dict[str, Any], errors: List[str]) -> None:
        logger.warning(f"Record {record.get('id')} failed validation: {'; '.join(errors)}")
        if self.ledger is None:
            return
        self.ledger.record(
            LedgerEntry(
                log_type=WARNING,
                module_name=pipeline.module_name,
                source_id=record.get("id"),
                internal_status="Skipped" if pipeline.skip_invalid else "Invalid",
                message=f"Validation failed: {'; '.join(errors)}",
            )
        )

    def _commit(self, pipeline: PipelineConfig, result: SyncRunResult) -> SyncRunResult:
        """Advance the checkpoint to the run start time."""
        response_mismatch = bool(result.records_pushed) and len(result.push_results) != result.records_pushed
        if response_mismatch:
            logger.warning(
                f"Portal returned {len(result.push_results)} results for {result.records_pushed} pushed records"
            )

        metadata = {
            "records_fetched": result.records_fetched,
            "records_pushed": result.records_pushed,
            "invalid_records": result.invalid_records,
            "fallback_records": result.fallback_records,
            "status_counts": result.status_counts,
            "source_module": pipeline.source_module,
            "last_sync_date_used": (
                isoformat_z(result.last_sync_date_used) if result.last_sync_date_used else None
            ),
            "truncated": result.truncated,
            "response_mismatch": response_mismatch,
        }
        try:
            self.store.update(
                pipeline.module_name,
                {"status": CheckpointStatus.SUCCESS, "last_sync_at": result.started_at, "metadata": metadata},
            )
        except CheckpointError as e:
            logger.error(f"Failed to update sync record for {pipeline.module_name}: {e}")

        result.state = SyncState.COMMITTED
        errors = result.invalid_records + result.fallback_records
        self._record_operation(
            pipeline.module_name,
            "complete",
            records_processed=result.records_fetched,
            skipped=result.records_fetched - result.records_pushed,
            errors=errors,
        )
        logger.info(
            f"{pipeline.task_name} completed: {result.records_fetched} fetched, "
            f"{result.records_pushed} pushed, statuses {result.status_counts}"
        )
        return result

    def _mark_failed(self, pipeline: PipelineConfig, error: Exception) -> None:
        try:
            self.store.update(
                pipeline.module_name,
                {
                    "status": CheckpointStatus.FAILED,
                    "metadata": {
                        "error_message": str(error),
                        "failed_at": isoformat_z(utc_now()),
                        "source_module": pipeline.source_module,
                    },
                },
            )
            logger.info(f"Sync record for {pipeline.module_name} updated with failure status")
        except CheckpointError as e:
            logger.error(f"Failed to update sync record for {pipeline.module_name}: {e}")

    def _record_operation(self, module_name: str, operation: str, **kwargs) -> None:
        if self.ledger is not None:
            self.ledger.record_sync_operation(module_name, operation, **kwargs)


async def run_task(
    task_name: str,
    store: Optional[CheckpointStore] = None,
    transformer: Optional[FieldTransformer] = None,
    ledger: Optional[OutcomeLedger] = None,
) -> SyncRunResult:
    """Run a registered task against the configured SugarCRM and portal.

    Args:
        task_name: Registered task name, e.g. ``SugarCRMAccountToPortalMember``.
        store: Checkpoint store (defaults to the configured backend).
        transformer: Field transformer (defaults to the configured mappings file).
        ledger: Outcome ledger (defaults to the configured database).

    Raises:
        UnknownPipelineError: If the task is not registered.
    """
    from portal_sync.config import settings
    from portal_sync.database.database import init_db
    from portal_sync.services.checkpoint_store import build_checkpoint_store
    from portal_sync.services.portal_client import PortalClient
    from portal_sync.services.source_client import SugarCRMClient

    pipeline = get_pipeline(task_name)
    if ledger is None:
        init_db()
        ledger = OutcomeLedger()
    store = store or build_checkpoint_store(settings)
    transformer = transformer or FieldTransformer()

    async with SugarCRMClient() as source_client, PortalClient() as portal_client:
        orchestrator = SyncOrchestrator(store, transformer, source_client, portal_client, ledger=ledger)
        return await orchestrator.run(pipeline)
