from .collection_store import CollectionStore
from .locks import LockManager

__all__ = ["CollectionStore", "LockManager"]
