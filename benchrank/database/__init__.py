"""
Storage backends for BenchRank.

`RankingStore` is the contract; `InMemoryRankingStore` backs tests and
local runs, `MongoRankingStore` backs deployments.
"""

from benchrank.database.base import RankingStore, ranking_sort_key, row_to_document
from benchrank.database.memory import InMemoryRankingStore
from benchrank.database.mongodb import (
    MongoRankingStore,
    get_mongo_store,
    initialize_mongo_store,
)
from benchrank.database.schemas import (
    EPOCH_SCHEMA,
    MATCH_SCHEMA,
    OUTPUT_SCHEMA,
    SIGNAL_SCHEMA,
)

__all__ = [
    "RankingStore",
    "InMemoryRankingStore",
    "MongoRankingStore",
    "get_mongo_store",
    "initialize_mongo_store",
    "ranking_sort_key",
    "row_to_document",
    "EPOCH_SCHEMA",
    "MATCH_SCHEMA",
    "OUTPUT_SCHEMA",
    "SIGNAL_SCHEMA",
]
