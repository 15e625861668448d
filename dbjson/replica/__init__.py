"""
Replica module for dbjson - path-addressed persistent trees.

This module provides:
- Replica: Protocol every backend implements
- JsonFileReplica: Whole-document JSON file with atomic autosave
- InMemoryReplica: In-memory backend for tests
- ReadOnlyReplica: Wrapper used for the remote mirror
- create_replica: Factory building a backend from configuration

Invariants:
    - get() returns MISSING for absent paths and never raises for them
    - Mutations are durable before they return
"""

from .base import (
    MISSING,
    DocumentReplica,
    Replica,
    ReplicaCorruptError,
    ReplicaError,
    ReplicaPathError,
    ReplicaReadOnlyError,
    create_replica,
)
from .json_file import JsonFileReplica
from .memory import InMemoryReplica
from .readonly import ReadOnlyReplica

__all__ = [
    "MISSING",
    "DocumentReplica",
    "Replica",
    "ReplicaError",
    "ReplicaReadOnlyError",
    "ReplicaPathError",
    "ReplicaCorruptError",
    "create_replica",
    "JsonFileReplica",
    "InMemoryReplica",
    "ReadOnlyReplica",
]
