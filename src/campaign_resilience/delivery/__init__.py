"""Conversion event delivery: dispatcher, ingestion client and repository."""

from .ports import ConversionEventRepository, IngestionClient
from .dispatcher import ConversionEventDispatcher
from .ingestion_client import GuardedIngestionClient, HttpIngestionClient, hash_user_data
from .repository import PostgresEventRepository

__all__ = [
    "ConversionEventRepository",
    "IngestionClient",
    "ConversionEventDispatcher",
    "HttpIngestionClient",
    "GuardedIngestionClient",
    "hash_user_data",
    "PostgresEventRepository",
]
