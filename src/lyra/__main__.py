"""CLI entry point for lyra."""

from __future__ import annotations

import argparse
import asyncio
import sys

from lyra.app import LyraApp
from lyra.config import AppConfig, load_config
from lyra.log import setup_logging


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="lyra",
        description="LYRA chat relay and conversation client",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the relay service")
    _add_config_args(serve_parser)
    serve_parser.add_argument("--host", default=None, help="Override server.host")
    serve_parser.add_argument("--port", type=int, default=None, help="Override server.port")

    # chat command
    chat_parser = subparsers.add_parser("chat", help="Open an interactive chat session")
    _add_config_args(chat_parser)
    chat_parser.add_argument("-u", "--user", required=True, help="Authenticated user id")

    # history command
    history_parser = subparsers.add_parser("history", help="Print stored chat history")
    _add_config_args(history_parser)
    history_parser.add_argument("-u", "--user", required=True, help="Authenticated user id")

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "serve":
        _serve(args.config, args.env, args.host, args.port)
    elif args.command == "chat":
        _chat(args.config, args.env, args.user)
    elif args.command == "history":
        _history(args.config, args.env, args.user)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Webhook: {config.relay.webhook_url}")
    print(f"  Webhook secret: {'set' if config.relay.auth_token else 'NOT SET'}")
    print(f"  Relay listens on: {config.server.host}:{config.server.port}")
    print(f"  Client relay URL: {config.client.relay_url}")
    print(f"  Storage: {config.storage.db_path}")
    if not config.relay.auth_token:
        print("  Warning: relay will answer every message with a configuration error")


def _serve(config_path: str, env_path: str, host: str | None, port: int | None) -> None:
    """Run the relay service under uvicorn."""
    import uvicorn

    from lyra.relay.server import create_app

    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, config.log_format)

    app = create_app(config.relay)
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.log_level.lower(),
    )


def _chat(config_path: str, env_path: str, user_id: str) -> None:
    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, config.log_format)
    try:
        asyncio.run(LyraApp(config, user_id).run_console())
    except KeyboardInterrupt:
        pass


def _history(config_path: str, env_path: str, user_id: str) -> None:
    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, config.log_format)

    async def _print_history() -> None:
        app = LyraApp(config, user_id)
        await app.start()
        try:
            exchanges = await app.history.list_for_owner(user_id, caller=user_id)
        finally:
            await app.stop()
        if not exchanges:
            print("No messages yet.")
        for exchange in exchanges:
            print(f"[{exchange.created_at.isoformat()}] You: {exchange.prompt}")
            print(f"    LYRA: {exchange.reply or ''}")

    asyncio.run(_print_history())


if __name__ == "__main__":
    main()
