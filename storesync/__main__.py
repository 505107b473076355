"""CLI entry point for storesync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .cache import LocalCache
from .config import Config, load_config
from .errors import SerializationError, StoreError
from .remote import RemoteStoreAdapter
from .sync import SyncManager, SyncState


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _open_cache(config: Config) -> LocalCache:
    cache = LocalCache(config.sync.cache_path, config.sync.cache_key)
    cache.connect()
    return cache


async def cmd_serve(args: argparse.Namespace) -> int:
    """Run the settings update handler."""
    import uvicorn

    from .server import create_app

    config = load_config(args.config)
    host = args.host or config.server.host
    port = args.port or config.server.port

    missing = config.contents.missing()
    if missing:
        print(
            f"Warning: content host not configured ({', '.join(missing)}); "
            "updates will be rejected",
            file=sys.stderr,
        )

    print("Starting storesync handler")
    print(f"Repository: {config.contents.owner}/{config.contents.repo}@{config.contents.branch}")
    print(f"URL: http://{host}:{port}")

    app = create_app(config)

    verbose = getattr(args, "verbose", False)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
    )
    await server.serve()
    return 0


async def cmd_pull(args: argparse.Namespace) -> int:
    """Load the document through the sync manager and print it."""
    config = load_config(args.config)
    cache = _open_cache(config)
    manager = SyncManager.from_config(config.sync, cache=cache)

    try:
        document = await manager.load()
    finally:
        await manager.close()
        cache.close()

    status = manager.status
    print(json.dumps(document, indent=2, ensure_ascii=False))
    if status.state == SyncState.DEGRADED:
        print(f"Warning: served local copy ({status.last_error})", file=sys.stderr)
        return 2
    return 0


async def cmd_push(args: argparse.Namespace) -> int:
    """Save a JSON file as the new document."""
    config = load_config(args.config)

    try:
        document = json.loads(Path(args.file).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read {args.file}: {e}", file=sys.stderr)
        return 1
    if not isinstance(document, dict):
        print(f"{args.file} must contain a JSON object", file=sys.stderr)
        return 1

    cache = _open_cache(config)
    manager = SyncManager.from_config(config.sync, cache=cache)
    try:
        # Establish the base version so the write is guarded
        await manager.load()
        result = await manager.save(document)
    finally:
        await manager.close()
        cache.close()

    if not result.ok:
        kind = f" [{result.error_kind}]" if result.error_kind else ""
        print(f"Save failed{kind}: {result.error}", file=sys.stderr)
        print("The document was kept in the local cache.", file=sys.stderr)
        return 1

    if result.local_only:
        print("Saved locally (local mode, nothing sent)")
    else:
        print(f"Saved: version={result.version} commit={result.commit}")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Report configuration, remote reachability and cache state."""
    config = load_config(args.config)
    contents = config.contents

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "contents": {
            "repository": f"{contents.owner}/{contents.repo}",
            "branch": contents.branch,
            "path": contents.path,
            "configured": contents.is_complete,
            "missing": contents.missing(),
        },
        "sync": {
            "site_url": config.sync.site_url,
            "local_mode": config.sync.local_mode,
        },
    }

    # Remote reachability, only when credentials are present
    remote_status = {"reachable": False, "version": None, "error": None}
    if contents.is_complete:
        adapter = RemoteStoreAdapter(contents)
        try:
            document = await adapter.read()
            remote_status["reachable"] = True
            remote_status["version"] = document.version
        except StoreError as e:
            remote_status["error"] = f"{e.kind}: {e.message}"
            remote_status["reachable"] = e.kind == "not_found"
        finally:
            await adapter.close()
    status_data["remote"] = remote_status

    cache = _open_cache(config)
    try:
        cache_status = {"path": str(cache.db_path), "present": False, "updated_at": None}
        try:
            cache_status["present"] = cache.get() is not None
        except SerializationError as e:
            cache_status["error"] = str(e)
        updated = cache.updated_at()
        cache_status["updated_at"] = updated.isoformat() if updated else None
    finally:
        cache.close()
    status_data["cache"] = cache_status

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("storesync Status Check")
    print("======================")
    print()
    print(f"Content host ({status_data['contents']['repository']}@{contents.branch}):")
    if contents.is_complete:
        print("  Configuration: Complete")
    else:
        print(f"  Configuration: Missing {', '.join(contents.missing())}")
    if remote_status["reachable"]:
        print(f"  Document version: {remote_status['version'] or 'not created yet'}")
    elif remote_status["error"]:
        print(f"  Status: Unreachable ({remote_status['error']})")
    print()
    print("Sync:")
    print(f"  Site URL: {config.sync.site_url or 'not set'}")
    print(f"  Local mode: {'Yes' if config.sync.local_mode else 'No'}")
    print()
    print(f"Cache ({cache_status['path']}):")
    print(f"  Present: {'Yes' if cache_status['present'] else 'No'}")
    if cache_status["updated_at"]:
        print(f"  Updated: {cache_status['updated_at']}")
    return 0


def cmd_cache_show(args: argparse.Namespace) -> int:
    """Print the cached document."""
    config = load_config(args.config)
    cache = _open_cache(config)
    try:
        document = cache.get()
    except SerializationError as e:
        print(f"Cache is unreadable: {e}", file=sys.stderr)
        return 1
    finally:
        cache.close()

    if document is None:
        print("Cache is empty")
        return 1
    print(json.dumps(document, indent=2, ensure_ascii=False))
    return 0


def cmd_cache_clear(args: argparse.Namespace) -> int:
    """Remove the cached document."""
    config = load_config(args.config)
    cache = _open_cache(config)
    try:
        cache.clear()
    finally:
        cache.close()
    print("Cache cleared")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="storesync",
        description="Versioned synchronization of storefront settings",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: none, environment only)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the settings update handler")
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: from config, 8787)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config, 127.0.0.1)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # Pull command
    pull_parser = subparsers.add_parser("pull", help="Load and print the current document")
    pull_parser.set_defaults(func=cmd_pull)

    # Push command
    push_parser = subparsers.add_parser("push", help="Save a JSON file as the document")
    push_parser.add_argument("file", help="JSON file holding the new document")
    push_parser.set_defaults(func=cmd_push)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check configuration and connectivity")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # Cache commands
    cache_parser = subparsers.add_parser("cache", help="Inspect the local cache")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", help="Cache commands")

    cache_show = cache_subparsers.add_parser("show", help="Print the cached document")
    cache_show.set_defaults(func=cmd_cache_show)

    cache_clear = cache_subparsers.add_parser("clear", help="Remove the cached document")
    cache_clear.set_defaults(func=cmd_cache_clear)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "cache" and not args.cache_command:
        cache_parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
