import enum
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from callsync.core.config import settings
from callsync.services.adapters import FetchStatus, ProviderAdapter
from callsync.services.errors import ConcurrentSyncSkipped, DuplicateError, PermanentRecordError
from callsync.services.store import SqlCallStore

logger = logging.getLogger(__name__)

Publish = Callable[[dict], Awaitable[None]]


class SyncState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class SyncOutcome(str, enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncResult:
    provider: str
    status: SyncOutcome = SyncOutcome.SUCCESS
    stage: Optional[str] = None
    pages: int = 0
    created: int = 0
    skipped: int = 0
    failed_records: int = 0
    warning: Optional[str] = None
    message: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status is not SyncOutcome.FAILED

    def fail(self, stage: str, message: str) -> None:
        self.status = SyncOutcome.FAILED
        self.stage = stage
        self.message = message

    def as_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class SyncOrchestrator:
    """Drives one provider adapter into the store.

    Only one run per instance can be active. A trigger that arrives while a
    run is in progress is dropped, not queued.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        store: SqlCallStore,
        max_pages: Optional[int] = None,
        publish: Optional[Publish] = None,
    ) -> None:
        self.adapter = adapter
        self.store = store
        self.max_pages = max_pages or settings.sync_max_pages
        self.publish = publish
        self._state = SyncState.IDLE
        self._state_lock = threading.Lock()

    @property
    def provider(self) -> str:
        return self.adapter.name

    @property
    def state(self) -> SyncState:
        return self._state

    def _enter_running(self) -> None:
        with self._state_lock:
            if self._state is SyncState.RUNNING:
                raise ConcurrentSyncSkipped(f"{self.provider} sync already in progress")
            self._state = SyncState.RUNNING

    def _leave_running(self) -> None:
        with self._state_lock:
            self._state = SyncState.IDLE

    async def _publish(self, event: dict) -> None:
        if not self.publish:
            return
        try:
            await self.publish(event)
        except Exception:
            logger.exception("Failed to publish %s event", event.get("type"))

    async def run_on_demand(self) -> SyncResult:
        """Run a sync now and report how it went, including the failing stage."""
        try:
            self._enter_running()
        except ConcurrentSyncSkipped as exc:
            logger.info("%s. Skipping.", exc)
            result = SyncResult(provider=self.provider, status=SyncOutcome.SKIPPED, message=str(exc))
            result.finished_at = datetime.now(timezone.utc)
            return result
        try:
            return await self._run()
        finally:
            self._leave_running()

    async def run_periodic(self) -> None:
        """Timer entry point; never raises."""
        try:
            result = await self.run_on_demand()
        except Exception:
            logger.exception("%s periodic sync crashed", self.provider)
            return
        if not result.ok:
            logger.error("%s periodic sync failed at %s: %s", self.provider, result.stage, result.message)

    async def _run(self) -> SyncResult:
        result = SyncResult(provider=self.provider)
        logger.info("Starting %s sync...", self.provider)
        try:
            await self._page_loop(result)
        except Exception as exc:
            logger.exception("%s sync failed", self.provider)
            result.fail("sync", f"{type(exc).__name__}: {exc}")
        result.finished_at = datetime.now(timezone.utc)

        if result.ok:
            logger.info(
                "%s sync completed: %s page(s), %s new, %s already stored, %s failed",
                self.provider,
                result.pages,
                result.created,
                result.skipped,
                result.failed_records,
            )
            await self._publish(
                {
                    "type": "sync_complete",
                    "payload": {
                        "provider": self.provider,
                        "new_count": result.created,
                        "error_count": result.failed_records,
                    },
                }
            )
        else:
            await self._publish(
                {
                    "type": "sync_error",
                    "payload": {"provider": self.provider, "stage": result.stage, "message": result.message},
                }
            )
        return result

    async def _page_loop(self, result: SyncResult) -> None:
        token: Optional[str] = None
        while result.pages < self.max_pages:
            page = await self.adapter.fetch_page(token)
            result.pages += 1
            if page.warning:
                result.warning = page.warning
            if page.status is FetchStatus.FATAL:
                result.fail("fetch_page", page.error or "provider error")
                logger.error("%s page fetch failed, aborting run: %s", self.provider, page.error)
                return
            if page.status is FetchStatus.RECOVERABLE:
                logger.warning("%s page fetch failed, treating as empty: %s", self.provider, page.error)
                result.warning = page.error
                return
            if not page.items:
                return
            for raw in page.items:
                await self._process_item(raw, result)
            if page.done or not page.next_token:
                return
            token = page.next_token
        logger.warning("%s sync stopped at the %s page ceiling", self.provider, self.max_pages)

    async def _process_item(self, raw: dict, result: SyncResult) -> None:
        external_id: Optional[str] = None
        try:
            external_id = self.adapter.external_id(raw)
            if self.store.exists(self.adapter.source, external_id):
                result.skipped += 1
                return
            details = await self.adapter.fetch_details(external_id)
            record = self.adapter.normalize(raw, details)
            self.store.create(record)
        except DuplicateError:
            logger.debug("%s %s stored concurrently, skipping", self.provider, external_id)
            result.skipped += 1
            return
        except PermanentRecordError as exc:
            result.failed_records += 1
            logger.warning("Skipping malformed %s item %s: %s", self.provider, external_id, exc)
            await self._item_error(external_id, exc)
            return
        except Exception as exc:
            result.failed_records += 1
            logger.exception("Failed to sync %s item %s", self.provider, external_id)
            await self._item_error(external_id, exc)
            return
        result.created += 1
        logger.info("Saved new %s call: %s", self.provider, external_id)
        await self._publish({"type": "new_call", "payload": {"source": record.source.value, "id": external_id}})

    async def _item_error(self, external_id: Optional[str], exc: Exception) -> None:
        await self._publish(
            {
                "type": "sync_item_error",
                "payload": {
                    "provider": self.provider,
                    "id": external_id,
                    "message": f"{type(exc).__name__}: {exc}",
                },
            }
        )


def build_orchestrators(
    adapters: Dict[str, ProviderAdapter],
    store: SqlCallStore,
    publish: Optional[Publish] = None,
) -> Dict[str, SyncOrchestrator]:
    return {name: SyncOrchestrator(adapter, store, publish=publish) for name, adapter in adapters.items()}
