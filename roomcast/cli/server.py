"""CLI for running the roomcast WebSocket server."""

import argparse
import asyncio
import logging
import signal
import sys

from pydantic import ValidationError

from roomcast import __version__
from roomcast.config import Settings, SlowConsumerPolicy
from roomcast.logger import logger
from roomcast.ws.server import RoomWebSocketServer


def build_settings(args: argparse.Namespace) -> Settings:
    """Overlay command line options on environment-derived settings."""
    overrides = {
        "host": args.host,
        "port": args.port,
        "auth_token": args.auth_token,
        "outbound_queue_size": args.queue_size,
        "slow_consumer_policy": args.slow_consumer_policy,
        "heartbeat_interval": args.heartbeat_interval,
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


async def run_server(args: argparse.Namespace) -> int:
    """Run WebSocket server"""
    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"❌ Invalid configuration: {e}")
        return 1

    server = RoomWebSocketServer(settings)

    # Set up asyncio signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    shutdown_requested = False

    def handle_shutdown():
        nonlocal shutdown_requested
        if not shutdown_requested:
            shutdown_requested = True
            print("\n🛑 Shutting down server...")
            loop.create_task(server.shutdown())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_shutdown)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    auth_note = "token required" if settings.auth_token else "open access"
    print(f"🚀 Starting roomcast on ws://{settings.host}:{settings.port} ({auth_note})")

    try:
        await server.start_server()
        print("🛑 Server stopped")
        return 0
    except Exception as e:
        print(f"❌ Server error: {e}")
        return 1


def create_server_parser(subparsers):
    """Create server subcommand parser"""
    server_parser = subparsers.add_parser(
        "server",
        help="Start the room broadcast server",
        description="Run a WebSocket server with named rooms and message relay",
    )

    server_parser.add_argument("--host", default=None, help="Server host address (default: localhost)")
    server_parser.add_argument("--port", type=int, default=None, help="Server port (default: 8080)")
    server_parser.add_argument(
        "--auth-token",
        default=None,
        help="Shared token clients must present as ?token= or a Bearer header",
    )
    server_parser.add_argument(
        "--queue-size", type=int, default=None, help="Outbound queue size per connection (default: 100)"
    )
    server_parser.add_argument(
        "--slow-consumer-policy",
        choices=[p.value for p in SlowConsumerPolicy],
        default=None,
        help="What to do when a client's outbound queue is full (default: drop_oldest)",
    )
    server_parser.add_argument(
        "--heartbeat-interval",
        type=float,
        default=None,
        help="Seconds between heartbeat events, 0 disables (default: 30)",
    )
    server_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return server_parser


def main(argv: list[str] | None = None) -> int:
    """CLI main entry point"""
    parser = argparse.ArgumentParser(
        prog="roomcast",
        description="roomcast WebSocket room broadcast server",
        epilog="""
Examples:
  roomcast server                                  # Start server on localhost:8080
  roomcast server --host 0.0.0.0 --port 9000       # Listen on all addresses
  roomcast server --auth-token s3cret              # Require a token at connect
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--version", action="version", version=f"roomcast {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands", metavar="COMMAND")
    create_server_parser(subparsers)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if getattr(args, "debug", False):
        logger.setLevel(logging.DEBUG)

    if args.command == "server":
        try:
            return asyncio.run(run_server(args))
        except KeyboardInterrupt:
            print("\n🛑 Operation interrupted")
            return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
