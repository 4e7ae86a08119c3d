"""
RabbitMQ admin console cache service entry point.

Runs the observability API (health, cache statistics and cache commands)
under uvicorn.

Usage:
    python -m rabbitmq_admin.main --port 3001
    python -m rabbitmq_admin.main --config config/console.yaml --json-logs
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Load environment from .env.local
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / ".env.local"
if env_file.exists():
    load_dotenv(env_file)

import structlog

from rabbitmq_admin.config import ConsoleSettings, load_settings
from rabbitmq_admin.observability import init_observability, shutdown_observability

logger = structlog.get_logger(__name__)


async def run_api_mode(settings: ConsoleSettings, host: str, port: int) -> None:
    """Run the observability API server."""
    import uvicorn

    from rabbitmq_admin.api.main import app, app_state
    from rabbitmq_admin.console import ResourceConsole

    app_state.console = ResourceConsole(settings)

    logger.info("Starting API server", host=host, port=port, gateway=settings.api_url)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="RabbitMQ admin console cache service",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Bind address (default: settings api.host)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="API server port (default: settings api.port, 3001)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to console YAML config (default: RMQ_ADMIN_CONFIG or config/console.yaml)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Render logs as JSON",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: RMQ_ADMIN_LOG_LEVEL or INFO)",
    )

    args = parser.parse_args()

    # Logging before anything else logs
    init_observability(level=args.log_level, json_logs=args.json_logs or None)

    try:
        settings = load_settings(args.config)
    except ValueError as e:
        logger.error("Invalid configuration", error=str(e))
        sys.exit(2)

    host = args.host or settings.api_host
    port = args.port or settings.api_port

    try:
        asyncio.run(run_api_mode(settings, host, port))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)
    finally:
        shutdown_observability()


if __name__ == "__main__":
    main()
