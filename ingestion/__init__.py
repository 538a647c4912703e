"""
ingestion - Sequential block ingestion.
"""

from ingestion.block_reader import BlockReader, ReaderStats
from ingestion.checkpoint import CheckpointStore, FileCheckpointStore, MemoryCheckpointStore
from ingestion.events import EventBus, Subscription

__all__ = [
    "BlockReader",
    "CheckpointStore",
    "EventBus",
    "FileCheckpointStore",
    "MemoryCheckpointStore",
    "ReaderStats",
    "Subscription",
]
