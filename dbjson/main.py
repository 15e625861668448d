"""
dbjson - Main entry point.

Builds the store from environment configuration and serves requests as
JSON lines on stdin/stdout, standing in for the host message bus:

    {"op": "setIdentity", "args": {"username": "mitch"}, "id": 1}
    {"op": "getItem", "args": {"path": "songs.Petrichor"}, "id": 2}

Each request produces exactly one response line, echoing "id" when given.

Usage:
    python -m dbjson.main

Configuration is entirely via environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import IO, Any, Dict

import json_log_formatter

from .api import RequestDispatcher
from .config import ServerConfig
from .replica import create_replica
from .store import VersionedStore

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Logs go to stderr so stdout stays reserved for responses.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def open_store(config: ServerConfig) -> VersionedStore:
    """Create both replicas and the store on top of them."""
    local = create_replica(config.storage, "local")
    remote = create_replica(config.storage, "remote")
    store = VersionedStore(
        local,
        remote,
        username=config.identity.username,
        root_key=config.storage.root_key,
    )
    logger.info(f"Store ready (local={local.name}, remote={remote.name})")
    return store


def create_dispatcher(config: ServerConfig) -> RequestDispatcher:
    return RequestDispatcher(open_store(config))


def handle_line(dispatcher: RequestDispatcher, line: str) -> Dict[str, Any]:
    """Decode one request line and dispatch it."""
    try:
        request = json.loads(line)
    except json.JSONDecodeError as e:
        return {"status": False, "errorMessage": f"Invalid JSON: {e.msg}", "errorCode": "INVALID_ARGUMENT"}
    if not isinstance(request, dict) or not isinstance(request.get("op"), str):
        return {"status": False, "errorMessage": "Request must be an object with an 'op'", "errorCode": "INVALID_ARGUMENT"}

    response = dispatcher.handle(request["op"], request.get("args"))
    if "id" in request:
        response = {"id": request["id"], **response}
    return response


def serve(dispatcher: RequestDispatcher, stdin: IO[str], stdout: IO[str]) -> int:
    """Serve JSON-line requests until EOF.

    Returns:
        Number of requests handled
    """
    handled = 0
    for line in stdin:
        if not line.strip():
            continue
        response = handle_line(dispatcher, line)
        stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
        stdout.flush()
        handled += 1
    logger.info(f"Input closed after {handled} requests")
    return handled


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config)
    config.log_config()

    dispatcher = create_dispatcher(config)
    serve(dispatcher, sys.stdin, sys.stdout)


if __name__ == "__main__":
    main()
