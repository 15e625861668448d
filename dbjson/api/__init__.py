"""
API module for dbjson - the host request/response facade.

This module provides:
- RequestDispatcher: (operationName, args) -> structured result
- models: pydantic argument models for each operation
"""

from .dispatcher import RequestDispatcher

__all__ = ["RequestDispatcher"]
