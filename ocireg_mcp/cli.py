"""CLI argument parsing and main entry point."""

import argparse
import asyncio
import logging
import socket
import sys
from typing import List, Optional

import uvicorn

from ocireg_mcp.config.settings import ServerSettings, resolve_port
from ocireg_mcp.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_PORT,
    MIN_PORT,
    PORT_ENV_VAR,
    SERVER_NAME,
    SERVER_VERSION,
)
from ocireg_mcp.display.logging_config import setup_logging
from ocireg_mcp.server.credentials import register_environment_secrets

module_logger = logging.getLogger(__name__)

uvicorn_svr_inst: Optional[uvicorn.Server] = None


def _port_available(host: str, port: int) -> bool:
    """Check that *host*:*port* can be bound before starting Uvicorn."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as e_bind:
        module_logger.error("Cannot bind %s:%s: %s", host, port, e_bind)
        return False
    finally:
        sock.close()
    return True


async def main_async(settings: ServerSettings, log_fpath: Optional[str] = None) -> int:
    """Start the Uvicorn server and run it until shutdown.

    Returns the process exit code: ``0`` after a normal or forced graceful
    shutdown, ``1`` if the server could not start.
    """
    global uvicorn_svr_inst

    module_logger.info(
        "---- %s v%s starting (log level: %s) ----",
        SERVER_NAME,
        SERVER_VERSION,
        settings.log_level.upper(),
    )

    # Import app here to avoid circular imports at module level
    from ocireg_mcp.server.app import app

    app_s = app.state
    app_s.host = settings.host
    app_s.port = settings.port
    app_s.actual_log_file = log_fpath
    module_logger.debug("Configuration parameters stored in app.state.")

    if not _port_available(settings.host, settings.port):
        module_logger.error("Server failed to start: port %s is unavailable.", settings.port)
        return 1

    uvicorn_cfg = uvicorn.Config(
        app="ocireg_mcp.server.app:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level="debug" if settings.log_level.upper() == "DEBUG" else "warning",
        timeout_graceful_shutdown=settings.shutdown_grace_period,
    )
    uvicorn_svr_inst = uvicorn.Server(uvicorn_cfg)

    module_logger.info(
        "Starting %s v%s on %s:%s", SERVER_NAME, SERVER_VERSION, settings.host, settings.port
    )
    try:
        await uvicorn_svr_inst.serve()
    except Exception as e_serve:
        module_logger.exception("Unexpected error while running Uvicorn server: %s", e_serve)
        raise
    finally:
        module_logger.info("%s has shut down or is shutting down.", SERVER_NAME)

    if not uvicorn_svr_inst.started:
        module_logger.error("Server failed to start.")
        return 1
    module_logger.info("Server shutdown complete, exiting...")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description=f"Start {SERVER_NAME} v{SERVER_VERSION}, an MCP server for OCI registries",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=DEFAULT_HOST,
        help=f"Host address (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=(
            f"Port to listen on, between {MIN_PORT} and {MAX_PORT} "
            f"(default: ${PORT_ENV_VAR} or {DEFAULT_PORT})"
        ),
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Set logging level (default: info)",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Also write a timestamped log file into this directory",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Program entry point: parse arguments and start the async main."""
    args = build_parser().parse_args(argv)

    log_fpath, cfg_log_lvl = setup_logging(args.log_level, args.log_dir)
    register_environment_secrets()
    settings = ServerSettings(
        host=args.host,
        port=resolve_port(args.port),
        log_level=cfg_log_lvl.lower(),
        log_dir=args.log_dir,
    )

    exit_code = 0
    try:
        exit_code = asyncio.run(main_async(settings, log_fpath))
    except KeyboardInterrupt:
        module_logger.info("%s main program interrupted by KeyboardInterrupt.", SERVER_NAME)
    except SystemExit as e_sys_exit:
        if e_sys_exit.code not in (None, 0):
            module_logger.error(
                "%s main program exited with SystemExit (code: %s).",
                SERVER_NAME,
                e_sys_exit.code,
            )
        raise
    except Exception as e_fatal:
        module_logger.exception(
            "%s main program encountered an uncaught fatal error: %s",
            SERVER_NAME,
            e_fatal,
        )
        exit_code = 1
    finally:
        module_logger.info("%s application finished.", SERVER_NAME)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
