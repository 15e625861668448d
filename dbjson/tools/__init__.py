"""
CLI tools for dbjson administration.

This module provides command-line tools for:
- inspect: Read-only merged views over the replica documents

Invariants:
    - Tools work offline (no running host required)
    - Tools never write a replica document
"""

from .inspect_cli import InspectCLI

__all__ = ["InspectCLI"]
