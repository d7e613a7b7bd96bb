"""Record store for prediction documents.

Handlers only rely on ``put`` / ``get_all``; ``describe`` backs the ``/test``
diagnostics endpoint.
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.errors import PyMongoError

import config
from errors import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)


class RecordStore:
    """Interface shared by every store backend."""

    def put(self, record_id: str, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    def get_all(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {"backend": type(self).__name__}


class InMemoryRecordStore(RecordStore):
    def __init__(self):
        self._records: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    def put(self, record_id, record):
        self._records[record_id] = dict(record)

    def get_all(self):
        return [dict(r) for r in self._records.values()]

    def describe(self):
        return {"backend": "memory", "connection_status": "Connected", "records": len(self._records)}


class MongoRecordStore(RecordStore):
    def __init__(self, collection):
        self.collection = collection

    @classmethod
    def from_url(cls, url: str, database: str, collection: str) -> "MongoRecordStore":
        client = MongoClient(url)
        return cls(client[database][collection])

    def put(self, record_id, record):
        doc = dict(record, _id=record_id)
        try:
            self.collection.replace_one({"_id": record_id}, doc, upsert=True)
        except PyMongoError as e:
            logger.exception("Failed to write prediction %s", record_id)
            raise StoreWriteError() from e

    def get_all(self):
        try:
            return list(self.collection.find({}, {"_id": 0}))
        except PyMongoError as e:
            logger.exception("Failed to read predictions")
            raise StoreReadError() from e

    def describe(self):
        response = {
            "backend": "mongodb",
            "database_name": self.collection.database.name,
            "collection": self.collection.name,
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            response["collections"] = self.collection.database.list_collection_names()[:10]
            response["connection_status"] = "Connected"
        except PyMongoError as e:
            response["error"] = str(e)[:80]
        return response


def create_store(url: Optional[str] = None) -> RecordStore:
    url = url or config.DATABASE_URL
    if not url:
        logger.warning("DATABASE_URL not set, predictions are kept in memory only")
        return InMemoryRecordStore()
    logger.info("Using MongoDB store %s.%s", config.DATABASE_NAME, config.COLLECTION_NAME)
    return MongoRecordStore.from_url(url, config.DATABASE_NAME, config.COLLECTION_NAME)
