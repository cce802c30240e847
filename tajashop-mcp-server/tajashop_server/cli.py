"""Command-line interface for the Taja.Shop cart server."""

import argparse
import asyncio
import sys


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Taja.Shop MCP Server - Manage a Taja.Shop cart and sync it with your account"
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="Server mode: stdio (for MCP clients) or http (REST API)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="HTTP server host (only for http mode, default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="HTTP server port (only for http mode, default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable hot reloading (HTTP mode only, watches for file changes)",
    )

    args = parser.parse_args()

    try:
        if args.mode == "http":
            from .http_server import run_http_server

            print(f"Starting Taja.Shop HTTP Server on {args.host}:{args.port}", file=sys.stderr)
            run_http_server(host=args.host, port=args.port, reload=args.reload)
        else:
            from .server import main as server_main

            asyncio.run(server_main())
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    main()
