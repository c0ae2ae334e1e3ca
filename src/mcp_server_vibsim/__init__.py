"""MCP Server for rotating-machinery vibration simulation.

Run as a CLI:
    mcp-server-vibsim
"""

from __future__ import annotations

__version__ = "0.1.0"


def main() -> None:
    """CLI entry point for the vibration simulator MCP server."""
    import argparse
    import logging
    import sys

    from mcp_server_vibsim.config import load_settings

    settings = load_settings()

    parser = argparse.ArgumentParser(
        prog="mcp-server-vibsim",
        description="MCP server for rotating-machinery vibration simulation",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default="stdio",
        help="MCP transport (default: stdio)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help=f"Logging level (default: {settings.log_level}, env VIBSIM_LOG_LEVEL)",
    )
    args = parser.parse_args()

    # stdout carries the stdio transport
    logging.basicConfig(
        level=args.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from mcp_server_vibsim.server import serve

    serve(transport=args.transport)


if __name__ == "__main__":
    main()
