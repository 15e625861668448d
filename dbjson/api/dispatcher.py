"""
Request/response facade for dbjson.

Hosts (a message bus node, the stdio loop in dbjson.main, tests) call
the store through a single entry point:

    dispatcher.handle("getItem", {"type": "songs", "name": "Petrichor"})
    -> {"status": True, "result": {...}}

Invariants:
    - Domain errors come back as {"status": False, "errorMessage", "errorCode"}
    - Persistence failures are not converted; they propagate to the host
    - Calls are serialized; one runs to completion before the next starts

How to change safely:
    - Add operations with register(); keep existing names and arg shapes
    - Every operation validates its args through a model in api.models
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from ..errors import DbJsonError, InvalidRequestError
from ..store import VersionedStore
from . import models

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class RequestDispatcher:
    """Routes (operationName, args) calls to a VersionedStore.

    Attributes:
        store: The store every built-in operation acts on

    Example:
        >>> dispatcher = RequestDispatcher(store)
        >>> dispatcher.handle("setIdentity", {"username": "mitch"})
        {'status': True}
        >>> dispatcher.handle("nextId", {"type": "songs"})
        {'status': True, 'result': 0}
    """

    def __init__(self, store: VersionedStore) -> None:
        self.store = store
        self._handlers: Dict[str, Tuple[Type[BaseModel], Handler]] = {}
        self._lock = threading.Lock()
        self._register_builtin()

    def register(self, operation: str, args_model: Type[BaseModel], handler: Handler) -> None:
        """Register an operation.

        Args:
            operation: Operation name hosts call
            args_model: Pydantic model validating the args object
            handler: Called with the validated model; its return value
                becomes "result" (None omits it)
        """
        if operation in self._handlers:
            raise ValueError(f"Operation '{operation}' is already registered")
        self._handlers[operation] = (args_model, handler)

    @property
    def operations(self) -> List[str]:
        return sorted(self._handlers)

    def handle(self, operation: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one operation and return its structured result."""
        try:
            args_model, handler = self._lookup(operation)
            parsed = self._parse(args_model, args)
            with self._lock:
                result = handler(parsed)
        except DbJsonError as e:
            logger.warning(f"{operation} failed: [{e.code}] {e.message}")
            return e.to_dict()
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            raise

        response: Dict[str, Any] = {"status": True}
        if result is not None:
            response["result"] = result
        return response

    def _lookup(self, operation: str) -> Tuple[Type[BaseModel], Handler]:
        try:
            return self._handlers[operation]
        except KeyError:
            raise InvalidRequestError(f"Unknown operation '{operation}'") from None

    def _parse(self, args_model: Type[BaseModel], args: Optional[Dict[str, Any]]) -> BaseModel:
        if args is not None and not isinstance(args, dict):
            raise InvalidRequestError("args must be an object")
        try:
            return args_model.model_validate(args or {})
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
                for err in e.errors()
            ]
            raise InvalidRequestError("Invalid arguments: " + "; ".join(errors), errors) from None

    # ── Built-in operations ───────────────────────────────────

    def _register_builtin(self) -> None:
        self.register("setIdentity", models.SetIdentityArgs, self._set_identity)
        self.register("getIndex", models.GetIndexArgs, lambda a: self.store.get_index(a.target()))
        self.register("getItem", models.GetItemArgs, lambda a: self.store.get_item(a.target()))
        self.register("addAttribute", models.AddAttributeArgs, self._add_attribute)
        self.register("createItem", models.CreateItemArgs, self._create_item)
        self.register("delete", models.DeleteArgs, self._delete)
        self.register("duplicate", models.DuplicateArgs, self._duplicate)
        self.register("nextId", models.NextIdArgs, lambda a: self.store.next_id(a.type))
        self.register("newRecord", models.NewRecordArgs, self._new_record)
        self.register("updateRecord", models.UpdateRecordArgs, self._update_record)
        self.register("getRecord", models.GetRecordArgs, self._get_record)
        self.register("getTable", models.GetTableArgs, self._get_table)

    def _set_identity(self, args: models.SetIdentityArgs) -> None:
        self.store.set_identity(args.username, args.settings)

    def _add_attribute(self, args: models.AddAttributeArgs) -> None:
        self.store.add_attribute(args.target(), args.value)

    def _create_item(self, args: models.CreateItemArgs) -> None:
        self.store.create_item(args.target(), args.value, if_new=args.if_new)

    def _delete(self, args: models.DeleteArgs) -> None:
        self.store.delete(args.target(), must_exist=args.must_exist)

    def _duplicate(self, args: models.DuplicateArgs) -> None:
        self.store.duplicate(args.target(), args.destination)

    def _new_record(self, args: models.NewRecordArgs) -> int:
        return self.store.new_record(args.username, args.type, args.value)

    def _update_record(self, args: models.UpdateRecordArgs) -> bool:
        return self.store.update_record(args.username, args.id, args.type, args.value)

    def _get_record(self, args: models.GetRecordArgs) -> Dict[str, Any]:
        return self.store.get_record(args.type, args.id, args.columns, args.num_entries)

    def _get_table(self, args: models.GetTableArgs) -> List[Dict[str, Any]]:
        return self.store.get_table(args.type, args.columns, args.num_entries)
