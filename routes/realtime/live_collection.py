"""
In-memory mirror of one remote collection.

The list of records is only ever replaced, never mutated in place: every
fetch, change event and optimistic update builds a new tuple and swaps the
reference, so any reader holding ``records`` keeps a consistent snapshot.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
import inspect
import logging

from fastapi.concurrency import run_in_threadpool

from routes.realtime.change_feed import ChangeEvent, ChangeType, ChannelStatus
from routes.realtime.incident_log import IncidentLog, IncidentLevel
from routes.realtime.mutation_gateway import MutationResult

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Fetcher = Callable[[], List[Record]]
RemoteMutation = Callable[[], Union[MutationResult, Awaitable[MutationResult]]]


class MutationState(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    REVERTING = "reverting"


class LiveCollection:

    def __init__(
        self,
        table: str,
        fetcher: Fetcher,
        incidents: Optional[IncidentLog] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        max_records: Optional[int] = None,
    ):
        self.table = table
        self._fetcher = fetcher
        self.incidents = incidents if incidents is not None else IncidentLog()
        self._clock = clock
        self.max_records = max_records
        self._records: Tuple[Record, ...] = ()
        self._mutations: Dict[str, MutationState] = {}
        self._listeners: List[Callable[["LiveCollection"], Any]] = []
        self._on_insert: List[Callable[[Record], Any]] = []
        self._on_update: List[Callable[[Record], Any]] = []
        self._on_delete: List[Callable[[Record], Any]] = []
        self._on_status_change: List[Callable[[ChannelStatus], Any]] = []
        self.status = ChannelStatus.DISCONNECTED
        self.last_update: Optional[datetime] = None
        self.loaded = False

    @property
    def records(self) -> Tuple[Record, ...]:
        return self._records

    @property
    def connected(self) -> bool:
        return self.status == ChannelStatus.CONNECTED

    def get(self, record_id: str) -> Optional[Record]:
        for record in self._records:
            if record.get("id") == record_id:
                return record
        return None

    def _swap(self, records):
        self._records = tuple(records)
        self.last_update = self._clock()
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Listener on {self.table} failed: {str(e)}")

    def add_listener(self, listener: Callable[["LiveCollection"], Any]):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[["LiveCollection"], Any]):
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Initial load and recovery path

    async def fetch_all(self) -> bool:
        """Replace local state with a fresh read; on failure the current list is kept"""
        try:
            records = await run_in_threadpool(self._fetcher)
        except Exception as e:
            logger.error(f"Error fetching {self.table}: {str(e)}")
            self.incidents.add(f"Could not refresh {self.table}", IncidentLevel.ERROR)
            return False

        self._swap(dict(record) for record in records)
        self.loaded = True
        return True

    # Change-notification stream

    def subscribe(
        self,
        on_insert: Optional[Callable[[Record], Any]] = None,
        on_update: Optional[Callable[[Record], Any]] = None,
        on_delete: Optional[Callable[[Record], Any]] = None,
        on_status_change: Optional[Callable[[ChannelStatus], Any]] = None,
    ):
        for callbacks, callback in (
            (self._on_insert, on_insert),
            (self._on_update, on_update),
            (self._on_delete, on_delete),
            (self._on_status_change, on_status_change),
        ):
            if callback is not None:
                callbacks.append(callback)

    def set_status(self, status: ChannelStatus):
        if status == self.status:
            return
        self.status = status
        logger.info(f"Channel {self.table} is {status.value}")
        for callback in self._on_status_change:
            callback(status)

    def apply_event(self, event: ChangeEvent) -> bool:
        """Reconcile one change event; returns False when it was a no-op"""
        if event.event_type == ChangeType.INSERT:
            applied = self.insert(event.new)
            callbacks, payload = self._on_insert, event.new
        elif event.event_type == ChangeType.UPDATE:
            applied = self.replace(event.new)
            callbacks, payload = self._on_update, event.new
        else:
            applied = self.remove((event.old or {}).get("id"))
            callbacks, payload = self._on_delete, event.old

        if applied:
            for callback in callbacks:
                callback(payload)
        return applied

    def insert(self, record: Optional[Record]) -> bool:
        if not record or record.get("id") is None:
            logger.warning(f"Insert on {self.table} without an id, ignored")
            return False
        if self.get(record["id"]) is not None:
            return self.replace(record)
        records = (dict(record),) + self._records
        if self.max_records is not None and len(records) > self.max_records:
            # the mirror only holds the newest records, like the initial fetch
            for dropped in records[self.max_records:]:
                self._mutations.pop(dropped.get("id"), None)
            records = records[:self.max_records]
        self._swap(records)
        return True

    def replace(self, record: Optional[Record]) -> bool:
        record_id = (record or {}).get("id")
        current = self.get(record_id) if record_id is not None else None
        if current is None:
            logger.info(f"Update for unknown {self.table} record {record_id}, ignored")
            return False
        if _is_stale(record, current):
            logger.info(
                f"Discarding out-of-order update for {self.table} record {record_id} "
                f"(version {record.get('version')} < {current.get('version')})"
            )
            return False
        self._swap(dict(record) if item.get("id") == record_id else item for item in self._records)
        return True

    def remove(self, record_id: Optional[str]) -> bool:
        if record_id is None or self.get(record_id) is None:
            logger.info(f"Delete for unknown {self.table} record {record_id}, ignored")
            return False
        self._swap(item for item in self._records if item.get("id") != record_id)
        self._mutations.pop(record_id, None)
        return True

    # Optimistic updates

    def mutation_state(self, record_id: str) -> Optional[MutationState]:
        return self._mutations.get(record_id)

    def patch_local(self, record_ids, changes: Dict[str, Any]):
        """Apply the same field changes to several records in a single swap"""
        ids = set(record_ids)
        for record_id in ids:
            self._mutations[record_id] = MutationState.PENDING
        self._swap(
            {**item, **changes} if item.get("id") in ids else item
            for item in self._records
        )

    async def settle(self, record_ids, results: List[MutationResult]) -> List[MutationResult]:
        """Confirm successful mutations; any failure reverts the whole list with a re-fetch"""
        failed = [result for result in results if not result.success]
        if failed:
            for record_id in record_ids:
                self._mutations[record_id] = MutationState.REVERTING
            await self.fetch_all()
            for record_id in record_ids:
                self._mutations.pop(record_id, None)
        else:
            for record_id in record_ids:
                self._mutations[record_id] = MutationState.CONFIRMED
        return failed

    async def apply_optimistic(
        self,
        record_id: str,
        changes: Dict[str, Any],
        mutation: RemoteMutation,
        failure_message: Optional[str] = None,
    ) -> MutationResult:
        """
        Show ``changes`` locally before ``mutation`` completes.

        The local change is visible as soon as this coroutine starts. If the
        remote side reports failure, the list is re-fetched to drop the
        optimistic change and an error incident is recorded.
        """
        if self.get(record_id) is None:
            return MutationResult(success=False, error=f"Record {record_id} not found in {self.table}")

        self.patch_local([record_id], changes)
        try:
            result = mutation()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Remote mutation on {self.table} record {record_id} raised: {str(e)}")
            result = MutationResult(success=False, error=str(e))

        if await self.settle([record_id], [result]):
            self.incidents.add(
                failure_message or f"Update failed for {self.table} #{record_id[:8]}",
                IncidentLevel.ERROR,
            )
        return result


def _is_stale(incoming: Record, current: Record) -> bool:
    incoming_version = incoming.get("version")
    current_version = current.get("version")
    if not isinstance(incoming_version, int) or not isinstance(current_version, int):
        return False
    return incoming_version < current_version
