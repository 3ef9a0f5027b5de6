"""
FastMCP server exposing the health-check analytics tools.

Run with ``es-analytics`` (stdio, the default) or
``es-analytics --transport http --port 8000``.
"""

import argparse
import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastmcp import FastMCP

from .services.search_gateway import SearchGateway, create_search_gateway
from .tools import register_healthcheck_tools
from .utils.logging import configure_logging, get_logger

SERVER_NAME = "ES-Analytics"

logger = get_logger(__name__)


@asynccontextmanager
async def gateway_lifespan(server: FastMCP) -> AsyncIterator[SearchGateway]:
    """
    Start the process-wide SearchGateway with the server and close it on shutdown.

    Version detection and template bootstrap run here once; tools reach the
    gateway through the request context.
    """
    async with create_search_gateway() as gateway:
        logger.info("Search gateway started", extra={"startup": gateway.startup.model_dump(mode="json")})
        yield gateway


def create_server() -> FastMCP:
    """Build a FastMCP server with every analytics tool registered."""
    mcp = FastMCP(SERVER_NAME, lifespan=gateway_lifespan)
    register_healthcheck_tools(mcp)
    return mcp


async def run_http_server(host: str = "localhost", port: int = 8000) -> None:
    mcp = create_server()
    logger.info("Serving MCP over HTTP", extra={"host": host, "port": port})
    try:
        await mcp.run_http_async(host=host, port=port)
    except Exception:
        logger.exception("HTTP transport stopped with an error")
        raise


def run_stdio_server() -> None:
    mcp = create_server()
    logger.info("Serving MCP over stdio")
    try:
        mcp.run()
    except Exception:
        logger.exception("stdio transport stopped with an error")
        raise


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="es-analytics", description="Health-check analytics MCP server")
    parser.add_argument("--transport", choices=["stdio", "http"], default="stdio",
                        help="MCP transport (default: stdio)")
    parser.add_argument("--host", default="localhost", help="HTTP bind address (default: localhost)")
    parser.add_argument("--port", type=int, default=8000, help="HTTP port (default: 8000)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    return parser.parse_args()


def main(host: str | None = None, port: int | None = None) -> None:
    """Console entry point; ``host`` and ``port`` override the command line."""
    load_dotenv()
    args = _parse_args()
    configure_logging(verbose=args.verbose)

    logger.info("Starting ES Analytics server", extra={"transport": args.transport})
    if args.transport == "http":
        asyncio.run(run_http_server(host or args.host, port or args.port))
    else:
        run_stdio_server()


if __name__ == "__main__":
    main()
