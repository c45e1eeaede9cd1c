import argparse
import asyncio
import logging

from . import server
from .utils import process_config

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)


def main():
    """Main entry point for the package."""
    parser = argparse.ArgumentParser(description="GoodWorks AgensGraph MCP Server")
    parser.add_argument(
        "--db-url",
        default=None,
        help="AgensGraph connection URL (postgresql://host:port)",
    )
    parser.add_argument("--username", default=None, help="AgensGraph username")
    parser.add_argument("--password", default=None, help="AgensGraph password")
    parser.add_argument("--database", default=None, help="AgensGraph database name")
    parser.add_argument("--graphname", default=None, help="AgensGraph graph name")
    parser.add_argument(
        "--query-timeout",
        type=float,
        default=None,
        help="Per-statement timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--google-maps-api-key",
        default=None,
        help="Google Geocoding API key; reverse geocoding is off without it",
    )
    parser.add_argument("--namespace", default=None, help="Tool namespace prefix")
    parser.add_argument(
        "--transport", default=None, help="Transport type (stdio, sse, http)"
    )
    parser.add_argument(
        "--server-host", default=None, help="HTTP host (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--server-port", type=int, default=None, help="HTTP port (default: 8000)"
    )
    parser.add_argument(
        "--server-path", default=None, help="HTTP path (default: /mcp/)"
    )
    parser.add_argument(
        "--allow-origins",
        default=None,
        help="Comma-separated list of allowed CORS origins",
    )
    parser.add_argument(
        "--allowed-hosts",
        default=None,
        help="Comma-separated list of allowed hosts for DNS rebinding protection",
    )

    args = parser.parse_args()

    config = process_config(args)
    asyncio.run(server.main(**config))


__all__ = ["main", "server"]
