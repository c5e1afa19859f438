from __future__ import annotations

import asyncio
import logging
import os
import sys

import uvicorn

# Install uvloop for better async performance (Linux/macOS only)
if sys.platform != "win32":
    try:
        import uvloop

        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except ImportError:
        pass  # uvloop not available, continue with default event loop

from .domain.errors import ConfigurationError
from .env import get_settings


def _setup_prometheus_multiproc_dir() -> None:
    """Start each run with an empty Prometheus multiprocess directory."""
    prom_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
    if not prom_dir:
        return

    os.makedirs(prom_dir, exist_ok=True)
    for filename in os.listdir(prom_dir):
        file_path = os.path.join(prom_dir, filename)
        if os.path.isfile(file_path):
            os.remove(file_path)


def main() -> None:
    """Main entry point for the settlement API."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting {settings.app_name} v{settings.app_version}")
    print(f"Database: {settings.database_url}")
    print(f"Solana: {settings.solana_network} via {settings.solana_rpc_url}")
    print(f"MPC callbacks: {settings.callback_url}")
    print(f"API will be available at: http://{settings.api_host}:{settings.api_port}")

    _setup_prometheus_multiproc_dir()

    # Webhook retries and the reconciliation sweep live in-process, so a single
    # worker owns them.
    uvicorn.run(
        "cloakpay.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
