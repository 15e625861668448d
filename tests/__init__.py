"""
dbjson Test Suite.

This package contains:
- unit/: Unit tests (in-memory replicas, temp directories)
- integration/: Dispatcher, stdio host loop and CLI over real files
"""
