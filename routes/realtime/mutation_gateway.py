from pymongo.database import Database
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging
import uuid

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class MutationResult(BaseModel):
    success: bool
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


def clean_document(document: Optional[Dict]) -> Optional[Dict]:
    """Drop Mongo's _id, records are addressed by their string id"""
    if document is None:
        return None
    document = dict(document)
    document.pop("_id", None)
    return document


class MutationGateway:
    """
    create / update / delete against a collection.

    Never raises: database errors come back as MutationResult(success=False)
    so callers decide whether to alert or log an incident.
    """

    def __init__(self, db: Database):
        self.db = db

    def create(self, table: str, fields: Dict) -> MutationResult:
        document = dict(fields)
        document.setdefault("id", uuid.uuid4().hex)
        document.setdefault("created_at", datetime.now(timezone.utc))
        try:
            self.db[table].insert_one(document)
            return MutationResult(success=True, data=clean_document(document))
        except PyMongoError as e:
            logger.error(f"Error creating record in {table}: {str(e)}")
            return MutationResult(success=False, error=str(e))

    def update(self, table: str, record_id: str, fields: Dict) -> MutationResult:
        changes = dict(fields)
        changes["updated_at"] = datetime.now(timezone.utc)
        try:
            updated = self.db[table].find_one_and_update(
                {"id": record_id},
                {"$set": changes, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER,
            )
            if updated is None:
                return MutationResult(success=False, error=f"Record {record_id} not found in {table}")
            return MutationResult(success=True, data=clean_document(updated))
        except PyMongoError as e:
            logger.error(f"Error updating {table} record {record_id}: {str(e)}")
            return MutationResult(success=False, error=str(e))

    def delete(self, table: str, record_id: str) -> MutationResult:
        try:
            result = self.db[table].delete_one({"id": record_id})
            if result.deleted_count == 0:
                return MutationResult(success=False, error=f"Record {record_id} not found in {table}")
            return MutationResult(success=True)
        except PyMongoError as e:
            logger.error(f"Error deleting {table} record {record_id}: {str(e)}")
            return MutationResult(success=False, error=str(e))
