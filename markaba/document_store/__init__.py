"""Storage backends for cached domain documents."""

from .base import DocumentStore
from .factory import build_document_store
from .file import JsonFileDocumentStore
from .memory import InMemoryDocumentStore
from .redis import RedisDocumentStore

__all__ = [
    "build_document_store",
    "DocumentStore",
    "JsonFileDocumentStore",
    "InMemoryDocumentStore",
    "RedisDocumentStore",
]
