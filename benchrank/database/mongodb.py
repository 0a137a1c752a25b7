"""
MongoDB ranking store.

Provides database connectivity, index management, the read-horizon input
queries and the epoch output, current-view and run-lock operations.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

import certifi
import pymongo
from pymongo import MongoClient, ReturnDocument, UpdateOne
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ServerSelectionTimeoutError

from benchrank.core.constants import RUN_LOCK_NAME
from benchrank.core.epoch import ComputationEpoch, EpochStatus, RankingKind, RunLockInfo
from benchrank.core.signals import EntityGraph
from benchrank.database.base import RankingStore, row_to_document, within_horizon
from benchrank.utils.timestamps import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

# Input collections (read-only)
MATCHES_COLLECTION = "model_matches"
SIGNALS_COLLECTION = "review_signals"
PROMPTS_COLLECTION = "prompts"
PROMPT_SETS_COLLECTION = "prompt_sets"
RESPONSES_COLLECTION = "responses"
MODELS_COLLECTION = "models"

# Output and control collections
EPOCHS_COLLECTION = "ranking_epochs"
OUTPUTS_COLLECTION = "ranking_outputs"
CURRENT_VIEWS_COLLECTION = "ranking_current_views"
RUN_LOCK_COLLECTION = "ranking_run_lock"
COUNTERS_COLLECTION = "ranking_counters"

CURRENT_VIEWS_DOC_ID = "current"
EPOCH_COUNTER_ID = "epoch_id"

_NO_ID = {"_id": 0}


def _horizon_filter(field: str, as_of: datetime) -> Dict[str, Any]:
    """
    Records at or before the horizon, plus records whose timestamp is
    missing or not a date so that validation sees and rejects them.
    """
    return {"$or": [
        {field: {"$lte": as_of}},
        {field: {"$exists": False}},
        {field: {"$not": {"$type": "date"}}},
    ]}


class MongoRankingStore(RankingStore):
    """
    MongoDB-backed ranking store.

    The current-view pointers live in a single document, so a publish of
    every ranking kind is one single-document update. The run lock is a
    single document whose `_id` uniqueness is the mutex.
    """

    def __init__(
        self,
        connection_string: str,
        db_name: str = "benchrank",
        auto_connect: bool = True
    ):
        """
        Initialize MongoDB connection.

        Args:
            connection_string: MongoDB connection URI
            db_name: Database name
            auto_connect: Whether to connect immediately
        """
        self.connection_string = connection_string
        self.db_name = db_name
        self.client: Optional[MongoClient] = None
        self.db: Optional[Database] = None
        self.connected = False

        if auto_connect:
            self.connect()

    def connect(self) -> bool:
        """
        Establish connection to MongoDB.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            connect_kwargs = {
                "serverSelectionTimeoutMS": 5000,
                "maxPoolSize": 10,
                "tz_aware": True,
            }

            # TLS CA bundle only for remote clusters
            is_local = any(host in self.connection_string for host in
                           ['localhost', '127.0.0.1', '0.0.0.0'])
            if not is_local:
                connect_kwargs["tlsCAFile"] = certifi.where()

            self.client = MongoClient(self.connection_string, **connect_kwargs)
            self.client.admin.command('ping')
            self.db = self.client[self.db_name]
            self._create_indexes()

            self.connected = True
            logger.info(f"Connected to MongoDB: {self.db_name}")
            return True

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"MongoDB connection failed: {e}")
            self.connected = False
            return False

    def disconnect(self):
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.connected = False
            logger.info("Disconnected from MongoDB")

    def _create_indexes(self):
        """Create database indexes."""
        if self.db is None:
            return

        self.db[MATCHES_COLLECTION].create_index(
            [("occurred_at", pymongo.ASCENDING), ("match_id", pymongo.ASCENDING)]
        )
        self.db[MATCHES_COLLECTION].create_index(
            [("match_id", pymongo.ASCENDING)], unique=True
        )
        self.db[SIGNALS_COLLECTION].create_index(
            [("occurred_at", pymongo.ASCENDING)]
        )
        self.db[RESPONSES_COLLECTION].create_index(
            [("prompt_id", pymongo.ASCENDING), ("model_slug", pymongo.ASCENDING)]
        )
        self.db[EPOCHS_COLLECTION].create_index(
            [("status", pymongo.ASCENDING), ("epoch_id", pymongo.DESCENDING)]
        )
        self.db[OUTPUTS_COLLECTION].create_index(
            [("epoch_id", pymongo.ASCENDING), ("kind", pymongo.ASCENDING),
             ("subject_id", pymongo.ASCENDING)],
            unique=True
        )
        self.db[OUTPUTS_COLLECTION].create_index(
            [("epoch_id", pymongo.ASCENDING), ("kind", pymongo.ASCENDING),
             ("score", pymongo.DESCENDING)]
        )
        logger.debug("MongoDB indexes ensured")

    def _require_db(self) -> Database:
        if not self.connected or self.db is None:
            logger.error("Not connected to database")
            raise ConnectionError("Not connected to database")
        return self.db

    # =========================================================================
    # Inputs
    # =========================================================================

    def list_eligible_matches(self, as_of: datetime) -> List[Dict[str, Any]]:
        db = self._require_db()
        cursor = db[MATCHES_COLLECTION].find(
            _horizon_filter("occurred_at", as_of), _NO_ID
        ).sort([("occurred_at", pymongo.ASCENDING), ("match_id", pymongo.ASCENDING)])
        # string timestamps pass the query; apply the horizon to them here
        return [doc for doc in cursor if within_horizon(doc.get("occurred_at"), as_of)]

    def list_model_slugs(self) -> Optional[Set[str]]:
        db = self._require_db()
        slugs = {str(s) for s in db[MODELS_COLLECTION].distinct("model_slug") if s}
        return slugs or None

    def list_eligible_signals(self, as_of: datetime) -> List[Dict[str, Any]]:
        db = self._require_db()
        cursor = db[SIGNALS_COLLECTION].find(_horizon_filter("occurred_at", as_of), _NO_ID)
        return [doc for doc in cursor if within_horizon(doc.get("occurred_at"), as_of)]

    def get_entity_graph(self, as_of: datetime) -> EntityGraph:
        db = self._require_db()

        def fetch(collection: str, fields: List[str]) -> List[Dict[str, Any]]:
            projection = {"_id": 0, "created_at": 1, **{f: 1 for f in fields}}
            cursor = db[collection].find(_horizon_filter("created_at", as_of), projection)
            return [doc for doc in cursor if within_horizon(doc.get("created_at"), as_of)]

        return EntityGraph.from_documents(
            fetch(PROMPTS_COLLECTION, ["prompt_id", "author_id"]),
            fetch(PROMPT_SETS_COLLECTION, ["prompt_set_id", "owner_id", "collaborators", "prompt_ids"]),
            fetch(RESPONSES_COLLECTION, ["response_id", "prompt_id"]),
        )

    def list_scored_responses(self, as_of: datetime) -> List[Dict[str, Any]]:
        db = self._require_db()
        cursor = db[RESPONSES_COLLECTION].find(
            {"score": {"$exists": True}, **_horizon_filter("created_at", as_of)}, _NO_ID
        )
        return [doc for doc in cursor if within_horizon(doc.get("created_at"), as_of)]

    # =========================================================================
    # Epochs
    # =========================================================================

    def _next_epoch_id(self) -> int:
        db = self._require_db()
        doc = db[COUNTERS_COLLECTION].find_one_and_update(
            {"_id": EPOCH_COUNTER_ID},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return int(doc["value"])

    def create_epoch(
        self,
        started_at: datetime,
        read_horizon: datetime,
        parameters: Dict[str, Any]
    ) -> ComputationEpoch:
        epoch = ComputationEpoch(
            epoch_id=self._next_epoch_id(),
            started_at=started_at,
            read_horizon=read_horizon,
            parameters=dict(parameters),
        )
        self._require_db()[EPOCHS_COLLECTION].insert_one(
            {"_id": epoch.epoch_id, **epoch.to_dict()}
        )
        logger.info(f"Created epoch {epoch.epoch_id}")
        return epoch

    def save_epoch(self, epoch: ComputationEpoch) -> None:
        self._require_db()[EPOCHS_COLLECTION].replace_one(
            {"_id": epoch.epoch_id},
            {"_id": epoch.epoch_id, **epoch.to_dict()},
            upsert=True
        )

    def complete_epoch(self, epoch: ComputationEpoch) -> bool:
        result = self._require_db()[EPOCHS_COLLECTION].replace_one(
            {"_id": epoch.epoch_id, "status": EpochStatus.RUNNING.value},
            {"_id": epoch.epoch_id, **epoch.to_dict()}
        )
        return result.matched_count == 1

    def get_epoch(self, epoch_id: int) -> Optional[ComputationEpoch]:
        doc = self._require_db()[EPOCHS_COLLECTION].find_one({"_id": int(epoch_id)}, _NO_ID)
        return ComputationEpoch.from_dict(doc) if doc else None

    def list_epochs(
        self,
        limit: Optional[int] = None,
        status: Optional[EpochStatus] = None
    ) -> List[ComputationEpoch]:
        query: Dict[str, Any] = {}
        if status is not None:
            query["status"] = EpochStatus(status).value
        cursor = self._require_db()[EPOCHS_COLLECTION].find(query, _NO_ID).sort(
            "epoch_id", pymongo.DESCENDING
        )
        if limit:
            cursor = cursor.limit(limit)
        return [ComputationEpoch.from_dict(doc) for doc in cursor]

    # =========================================================================
    # Outputs
    # =========================================================================

    def persist_epoch_outputs(self, epoch_id: int, kind: RankingKind, rows: Iterable[Any]) -> int:
        documents = [row_to_document(row, kind) for row in rows]
        operations = []
        for doc in documents:
            if doc["epoch_id"] != epoch_id:
                raise ValueError(
                    f"Row for {doc['subject_id']!r} is tagged with epoch "
                    f"{doc['epoch_id']}, expected {epoch_id}"
                )
            key = {"epoch_id": epoch_id, "kind": doc["kind"], "subject_id": doc["subject_id"]}
            operations.append(UpdateOne(key, {"$set": doc}, upsert=True))

        if operations:
            self._require_db()[OUTPUTS_COLLECTION].bulk_write(operations, ordered=False)
        logger.debug(f"Persisted {len(documents)} {RankingKind(kind).value} rows for epoch {epoch_id}")
        return len(documents)

    def count_epoch_outputs(self, epoch_id: int, kind: RankingKind) -> int:
        return self._require_db()[OUTPUTS_COLLECTION].count_documents(
            {"epoch_id": epoch_id, "kind": RankingKind(kind).value}
        )

    def get_epoch_outputs(self, epoch_id: int, kind: RankingKind) -> List[Dict[str, Any]]:
        cursor = self._require_db()[OUTPUTS_COLLECTION].find(
            {"epoch_id": epoch_id, "kind": RankingKind(kind).value}, _NO_ID
        ).sort("subject_id", pymongo.ASCENDING)
        return list(cursor)

    def query_epoch_outputs(
        self,
        epoch_id: int,
        kind: RankingKind,
        min_sample: int = 0,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        db = self._require_db()
        query = {
            "epoch_id": epoch_id,
            "kind": RankingKind(kind).value,
            "sample_size": {"$gte": min_sample},
        }
        total = db[OUTPUTS_COLLECTION].count_documents(query)
        # null scores sort lowest, so they come last in descending order
        cursor = db[OUTPUTS_COLLECTION].find(query, _NO_ID).sort(
            [("score", pymongo.DESCENDING), ("subject_id", pymongo.ASCENDING)]
        ).skip(offset).limit(limit)
        return list(cursor), total

    def delete_epoch_outputs(self, epoch_id: int) -> int:
        result = self._require_db()[OUTPUTS_COLLECTION].delete_many({"epoch_id": epoch_id})
        return result.deleted_count

    # =========================================================================
    # Current views
    # =========================================================================

    def get_current_views(self) -> Dict[RankingKind, int]:
        doc = self._require_db()[CURRENT_VIEWS_COLLECTION].find_one({"_id": CURRENT_VIEWS_DOC_ID})
        if not doc:
            return {}
        views = {}
        for kind, epoch_id in (doc.get("pointers") or {}).items():
            if epoch_id is not None:
                views[RankingKind(kind)] = int(epoch_id)
        return views

    def publish_current_views(self, pointers: Mapping[RankingKind, int]) -> None:
        update = {f"pointers.{RankingKind(k).value}": int(v) for k, v in pointers.items()}
        update["updated_at"] = utc_now()
        self._require_db()[CURRENT_VIEWS_COLLECTION].update_one(
            {"_id": CURRENT_VIEWS_DOC_ID},
            {"$set": update},
            upsert=True
        )

    # =========================================================================
    # Run lock
    # =========================================================================

    def acquire_run_lock(self, holder: str, now: datetime) -> bool:
        try:
            self._require_db()[RUN_LOCK_COLLECTION].insert_one(
                {"_id": RUN_LOCK_NAME, "holder": holder, "acquired_at": now}
            )
            return True
        except DuplicateKeyError:
            return False

    def get_run_lock(self) -> Optional[RunLockInfo]:
        doc = self._require_db()[RUN_LOCK_COLLECTION].find_one({"_id": RUN_LOCK_NAME})
        if not doc:
            return None
        return RunLockInfo(holder=doc["holder"], acquired_at=parse_timestamp(doc["acquired_at"]))

    def release_run_lock(self, holder: str) -> bool:
        result = self._require_db()[RUN_LOCK_COLLECTION].delete_one(
            {"_id": RUN_LOCK_NAME, "holder": holder}
        )
        return result.deleted_count == 1

    def clear_run_lock(self, acquired_before: Optional[datetime] = None) -> Optional[RunLockInfo]:
        query: Dict[str, Any] = {"_id": RUN_LOCK_NAME}
        if acquired_before is not None:
            query["acquired_at"] = {"$lt": acquired_before}
        doc = self._require_db()[RUN_LOCK_COLLECTION].find_one_and_delete(query)
        if not doc:
            return None
        return RunLockInfo(holder=doc["holder"], acquired_at=parse_timestamp(doc["acquired_at"]))


# =============================================================================
# Global Store Instance
# =============================================================================

_store_instance: Optional[MongoRankingStore] = None


def get_mongo_store() -> Optional[MongoRankingStore]:
    """Get the global MongoDB store instance."""
    return _store_instance


def initialize_mongo_store(
    connection_string: str,
    db_name: str = "benchrank"
) -> MongoRankingStore:
    """
    Initialize the global MongoDB store instance.

    Args:
        connection_string: MongoDB connection URI
        db_name: Database name

    Returns:
        MongoRankingStore instance
    """
    global _store_instance
    _store_instance = MongoRankingStore(connection_string, db_name)
    return _store_instance
