"""Command-line chat client.

Examples:
    chat-sync signup --email alice@example.com --password secret
    chat-sync send --to bob@example.com "hello"
    chat-sync listen --to bob@example.com
    chat-sync users --duration 5

Chat output goes to stdout; status and logs go to stderr.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable

import yaml

from . import __version__
from .bootstrap import ChatClient, open_client
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import LoggingConfig, build_config
from .core.async_utils import EventChannel, run_sync
from .errors import ChatSyncError, NotAuthenticatedError
from .logger import setup_logging
from .sync.models import AuthInfo

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def _credentials(client: ChatClient, args: argparse.Namespace) -> tuple[str, str]:
    email = args.email or client.config.email
    password = args.password or client.config.password
    if not email or not password:
        raise ValueError(
            "Email and password required. Pass --email/--password or set "
            "CHAT_SYNC_EMAIL/CHAT_SYNC_PASSWORD."
        )
    return email, password


def _logging_settings() -> LoggingConfig:
    """Read the YAML ``logging`` section; defaults if the files are unusable.

    Broken config files are reported later, once logging is set up.
    """
    try:
        return build_config(load_hierarchical_config()).logging
    except (ValueError, yaml.YAMLError, OSError):
        return LoggingConfig()


def _ensure_signed_in(client: ChatClient, activate: bool = True) -> AuthInfo:
    """Resume the stored login, falling back to configured credentials."""
    info = client.auth.resume(activate=activate)
    if info is not None:
        return info
    if client.config.email and client.config.password:
        return client.auth.sign_in(
            client.config.email, client.config.password, activate=activate
        )
    raise NotAuthenticatedError(
        "Not signed in. Run 'chat-sync login' or set CHAT_SYNC_EMAIL and "
        "CHAT_SYNC_PASSWORD."
    )


def _format_message(sender: str, text: str, is_echo: bool) -> str:
    who = f"{sender} (you)" if is_echo else sender
    return f"[{who}] {text}"


async def _drain(
    channel: EventChannel, duration: float | None, emit: Callable[[str], None]
) -> int:
    """Print channel items until *duration* elapses (forever if None)."""
    loop = asyncio.get_running_loop()
    deadline = None if duration is None else loop.time() + duration
    count = 0
    while True:
        timeout = None if deadline is None else deadline - loop.time()
        if timeout is not None and timeout <= 0:
            break
        try:
            line = await asyncio.wait_for(channel.get(), timeout)
        except (asyncio.TimeoutError, EOFError):
            break
        emit(line)
        count += 1
    return count


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_signup(client: ChatClient, args: argparse.Namespace) -> int:
    email, password = _credentials(client, args)
    info = client.auth.sign_up(email, password, activate=False)
    _stderr_print(f"Signed up and signed in as {info.email}")
    return 0


def cmd_login(client: ChatClient, args: argparse.Namespace) -> int:
    email, password = _credentials(client, args)
    info = client.auth.sign_in(email, password, activate=False)
    _stderr_print(f"Signed in as {info.email}")
    return 0


def cmd_logout(client: ChatClient, args: argparse.Namespace) -> int:
    client.auth.sign_out()
    _stderr_print("Signed out")
    return 0


def cmd_whoami(client: ChatClient, args: argparse.Namespace) -> int:
    info = client.auth.resume(activate=False)
    if info is None:
        _stderr_print("Not signed in")
        return 1
    print(info.email)
    return 0


def cmd_send(client: ChatClient, args: argparse.Namespace) -> int:
    info = _ensure_signed_in(client, activate=False)
    session = client.session
    session.set_current_peer(args.to)
    # user last: one subscription, for the final pair
    session.set_current_user(info.email)
    key = session.send_message(args.text)
    _stderr_print(f"Sent to {session.current_path} ({key})")
    return 0


def cmd_add_user(client: ChatClient, args: argparse.Namespace) -> int:
    _ensure_signed_in(client, activate=False)
    client.session.directory.add_user(args.identifier)
    _stderr_print(f"Added user {args.identifier}")
    return 0


async def _listen(client: ChatClient, args: argparse.Namespace) -> int:
    info = await run_sync(_ensure_signed_in, client, False)
    channel: EventChannel[str] = EventChannel()
    session = client.session
    session.on_message(
        lambda sender, text, is_echo: channel.put(
            _format_message(sender, text, is_echo)
        )
    )
    session.set_current_peer(args.to)
    await run_sync(session.set_current_user, info.email)
    room = args.to or "general room"
    _stderr_print(f"Listening to {room} as {info.email} (Ctrl-C to stop)")
    await _drain(channel, args.duration, print)
    return 0


async def _users(client: ChatClient, args: argparse.Namespace) -> int:
    await run_sync(_ensure_signed_in, client, False)
    channel: EventChannel[str] = EventChannel()
    await run_sync(client.session.on_user_added, channel.put)
    await _drain(channel, args.duration, print)
    return 0


def cmd_listen(client: ChatClient, args: argparse.Namespace) -> int:
    return asyncio.run(_listen(client, args))


def cmd_users(client: ChatClient, args: argparse.Namespace) -> int:
    return asyncio.run(_users(client, args))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chat-sync",
        description="Realtime chat client for the general room and private rooms.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables:
  CHAT_SYNC_URL         Realtime database URL
  CHAT_SYNC_API_KEY     API key for password sign-in
  CHAT_SYNC_EMAIL       Account email
  CHAT_SYNC_PASSWORD    Account password
  LOG_LEVEL             Logging level (default: INFO)
  LOG_FILE              Log file for --log-mode daemon
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--url", help="Realtime database URL")
    parser.add_argument("--api-key", help="API key for password sign-in")
    parser.add_argument("--email", help="Account email")
    parser.add_argument("--password", help="Account password")
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-mode",
        choices=("cli", "daemon"),
        default="cli",
        help="cli: logs to stderr; daemon: logs to a file only (default: cli)",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log output format (default: text)",
    )

    # also accepted after signup/login; SUPPRESS keeps the global value
    account = argparse.ArgumentParser(add_help=False)
    account.add_argument("--email", default=argparse.SUPPRESS, help="Account email")
    account.add_argument(
        "--password", default=argparse.SUPPRESS, help="Account password"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-config", help="Create a starter config file")
    sub.add_parser(
        "signup", parents=[account], help="Create an account and sign in"
    ).set_defaults(func=cmd_signup)
    sub.add_parser(
        "login", parents=[account], help="Sign in and remember the session"
    ).set_defaults(func=cmd_login)
    sub.add_parser("logout", help="Forget the stored session").set_defaults(
        func=cmd_logout
    )
    sub.add_parser("whoami", help="Print the signed-in account").set_defaults(
        func=cmd_whoami
    )

    send = sub.add_parser("send", help="Send a message")
    send.add_argument("text", help="Message text")
    send.add_argument("--to", help="Peer identifier (default: general room)")
    send.set_defaults(func=cmd_send)

    listen = sub.add_parser("listen", help="Print messages as they arrive")
    listen.add_argument("--to", help="Peer identifier (default: general room)")
    listen.add_argument(
        "--duration", type=float, help="Stop after this many seconds"
    )
    listen.set_defaults(func=cmd_listen)

    users = sub.add_parser("users", help="Print known users as they arrive")
    users.add_argument(
        "--duration", type=float, help="Stop after this many seconds"
    )
    users.set_defaults(func=cmd_users)

    add_user = sub.add_parser("add-user", help="Register a user identifier")
    add_user.add_argument("identifier", help="User identifier")
    add_user.set_defaults(func=cmd_add_user)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_settings = _logging_settings()
    setup_logging(
        mode=args.log_mode,
        debug=args.debug,
        log_file=args.log_file or log_settings.file,
        debug_format=args.log_format,
        level=log_settings.level,
    )

    if args.command == "init-config":
        path = ensure_config()
        _stderr_print(f"Config file: {path}")
        return 0

    overrides = {
        "url": args.url,
        "api_key": args.api_key,
        "email": args.email,
        "password": args.password,
        "debug": args.debug,
    }

    try:
        with open_client(overrides) as client:
            return args.func(client, args)
    except KeyboardInterrupt:
        _stderr_print("Interrupted")
        return 0
    except (ChatSyncError, ValueError, RuntimeError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _stderr_print(f"ERROR: {e}")
        return 1


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
