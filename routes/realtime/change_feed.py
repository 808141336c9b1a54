import asyncio
from enum import Enum
from typing import Any, Dict, Optional
import logging

from pydantic import BaseModel
from pymongo.errors import PyMongoError

from routes.realtime.mutation_gateway import clean_document

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

class ChannelStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"

class ChangeEvent(BaseModel):
    event_type: ChangeType
    table: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None


def change_event_from_mongo(change: Dict, table: str) -> Optional[ChangeEvent]:
    """
    Translate a MongoDB change-stream document into a ChangeEvent.

    Records are keyed by their own ``id`` field; on delete Mongo only sends
    ``_id``, so the stream must be opened with pre-images or the old record
    is reduced to whatever ``documentKey`` carries.
    """
    operation = change.get("operationType")
    if operation == "insert":
        return ChangeEvent(event_type=ChangeType.INSERT, table=table, new=clean_document(change.get("fullDocument")))
    if operation in ("update", "replace"):
        full_document = change.get("fullDocument")
        if full_document is None:
            logger.warning(f"Update on {table} arrived without a full document, skipping")
            return None
        return ChangeEvent(event_type=ChangeType.UPDATE, table=table, new=clean_document(full_document))
    if operation == "delete":
        old = change.get("fullDocumentBeforeChange") or change.get("documentKey") or {}
        return ChangeEvent(event_type=ChangeType.DELETE, table=table, old=clean_document(old))

    logger.info(f"Ignoring change stream operation {operation} on {table}")
    return None


class MongoChangeFeed:
    """
    One change stream per collection, pushed into a LiveCollection.

    Reconnection is left to the driver; once the stream dies the live
    collection is reported disconnected and stays so until restarted.
    """

    def __init__(self, collection, live_collection):
        self.collection = collection
        self.live_collection = live_collection
        self.table = live_collection.table
        self._task: Optional[asyncio.Task] = None

    async def run(self):
        pipeline = [{"$match": {"operationType": {"$in": ["insert", "update", "replace", "delete"]}}}]
        try:
            async with self.collection.watch(
                pipeline,
                full_document="updateLookup",
                full_document_before_change="whenAvailable",
            ) as stream:
                self.live_collection.set_status(ChannelStatus.CONNECTED)
                logger.info(f"Change stream opened on {self.table}")
                async for change in stream:
                    event = change_event_from_mongo(change, self.table)
                    if event is not None:
                        self.live_collection.apply_event(event)
        except asyncio.CancelledError:
            raise
        except PyMongoError as e:
            logger.error(f"Change stream on {self.table} failed: {str(e)}")
        finally:
            self.live_collection.set_status(ChannelStatus.DISCONNECTED)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
