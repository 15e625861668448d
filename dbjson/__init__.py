"""
dbjson - versioned attribute store over two JSON replicas.

This package implements a schema-less, path-addressed record store that:
- Keeps an append-only history of every attribute change
- Stamps each change with the acting user and a strictly increasing timestamp
- Reconciles a writable local replica with a read-only remote mirror at read time

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌─────────────────┐
    │    Host     │────▶│ RequestDispatcher│────▶│  VersionedStore │
    │ (bus/stdio) │     │   (api/)         │     │   (store/)      │
    └─────────────┘     └──────────────────┘     └────────┬────────┘
                                                          │
                                     ┌────────────────────┴──────┐
                                     │ writes            reads   │
                                     ▼                    ▼      ▼
                                ┌─────────┐          ┌─────────────┐
                                │  local  │          │   remote    │
                                │ replica │          │ (read-only) │
                                └─────────┘          └─────────────┘

Invariants:
    - Attribute entries are append-only; only whole subtrees are ever removed
    - Writes touch the local replica only; remote is mutated by an external sync
    - Merged reads are deterministic given the two replicas' contents
    - Every replica mutation is durably flushed before the call returns

How to change safely:
    - Keep the on-disk document layout ({"database": {...}}) stable
    - New operations go through VersionedStore first, then the dispatcher
    - Never reorder history by append order; sort by timestamp
"""

from ._version import __version__

__all__ = ["__version__"]
