"""Object store adapters."""

from cluster_controller.store.base import ObjectStore, WatchEvent, WatchEventType
from cluster_controller.store.memory import InMemoryObjectStore

__all__ = ["InMemoryObjectStore", "ObjectStore", "WatchEvent", "WatchEventType"]
