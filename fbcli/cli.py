"""
Command-line entry point: fbcli search|listing|list|read|send|logout.
"""
import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from . import core
from .config import Config
from .errors import Result
from .export import (
    save_listings,
    to_json,
    to_markdown_conversations,
    to_markdown_listings,
    to_markdown_messages,
)
from .models import SearchOptions
from .utils import init_logger

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
FORMATS = ["json", "markdown"]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="fbcli", description="CLI tool for Facebook Marketplace and Messenger")

    # Logging
    ap.add_argument("--log-level", choices=LOG_LEVELS, default=None,
                    help="Global log level for both console and file (overrides --log-console/--log-file).")
    ap.add_argument("--log-console", choices=LOG_LEVELS, default=os.getenv("LOG_CONSOLE", "INFO"),
                    help="Console log level (default from env LOG_CONSOLE or INFO).")
    ap.add_argument("--log-file", choices=LOG_LEVELS, default=os.getenv("LOG_FILE", "DEBUG"),
                    help="File log level (default from env LOG_FILE or DEBUG).")
    ap.add_argument("--log-file-path", default=os.getenv("LOG_FILE_PATH", "fbcli.log"),
                    help="Path to log file (default from env LOG_FILE_PATH or fbcli.log).")
    ap.add_argument("--no-file-log", action="store_true",
                    help="Disable file logging (only console output).")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--headed", action="store_true", help="Show the browser window")

    rendered = argparse.ArgumentParser(add_help=False, parents=[common])
    rendered.add_argument("--format", choices=FORMATS, default="json", help="Output format")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", parents=[rendered], help="Search Facebook Marketplace listings")
    p.add_argument("-q", "--query", required=True, help="Search query")
    p.add_argument("-l", "--location", default=None, help="Location, e.g. 'Nantes, PDL'")
    p.add_argument("-r", "--radius", type=int, default=None, help="Search radius")
    p.add_argument("--min-price", type=int, default=None, help="Minimum price")
    p.add_argument("--max-price", type=int, default=None, help="Maximum price")
    p.add_argument("--category", default=None, help="Category label copied onto results")
    p.add_argument("--limit", type=int, default=20, help="Maximum results")
    p.add_argument("--out", default=None, help="Also save results to CSV/XLSX")

    p = sub.add_parser("listing", parents=[rendered], help="Get details of a specific listing")
    p.add_argument("--id", required=True, dest="listing_id", help="Listing ID")

    p = sub.add_parser("list", parents=[rendered], help="List Marketplace conversations")
    p.add_argument("--limit", type=int, default=20, help="Maximum conversations")

    p = sub.add_parser("read", parents=[rendered], help="Read messages of a conversation")
    p.add_argument("--conversation-id", required=True, help="Conversation ID")
    p.add_argument("--limit", type=int, default=50, help="Maximum messages")

    p = sub.add_parser("send", parents=[common], help="Send a message")
    p.add_argument("--user-id", required=True, help="Recipient user or thread ID")
    p.add_argument("--message", required=True, help="Message text")

    sub.add_parser("logout", parents=[common], help="Log out and keep the cleared session")

    return ap


def make_handler(args: argparse.Namespace) -> core.Handler:
    if args.command == "search":
        return core.search(SearchOptions(
            query=args.query,
            location=args.location,
            radius=args.radius,
            min_price=args.min_price,
            max_price=args.max_price,
            category=args.category,
            limit=args.limit,
        ))
    if args.command == "listing":
        return core.listing(args.listing_id)
    if args.command == "list":
        return core.list_conversations(args.limit)
    if args.command == "read":
        return core.read_conversation(args.conversation_id, args.limit)
    if args.command == "send":
        return core.send_message(args.user_id, args.message)
    return core.logout()


def render(command: str, value, fmt: str = "json") -> str:
    markdown = fmt == "markdown"
    if command == "search":
        return to_markdown_listings(value) if markdown else to_json({"listings": value})
    if command == "listing":
        return to_markdown_listings([value]) if markdown else to_json(value)
    if command == "list":
        return to_markdown_conversations(value) if markdown else to_json({"conversations": value})
    if command == "read":
        return to_markdown_messages(value) if markdown else to_json({"messages": value})
    return to_json(value)


def execute(args: argparse.Namespace, config: Config) -> Result:
    services = core.Services(config)
    return asyncio.run(core.run_command(services, make_handler(args), headed=args.headed))


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "search" and not args.query.strip():
        parser.error("--query must not be empty")

    eff_console = args.log_level or args.log_console
    eff_file = args.log_level or args.log_file
    init_logger(
        console_level=eff_console,
        file_level=eff_file,
        log_file=None if args.no_file_log else args.log_file_path
    )
    logger.debug(
        f"Logger initialized: console={eff_console}, "
        f"file={'DISABLED' if args.no_file_log else eff_file}, "
        f"path={'N/A' if args.no_file_log else args.log_file_path}"
    )

    result = execute(args, Config.from_env())
    if not result.ok:
        print(f"Error: {result.detail}", file=sys.stderr)
        return 1

    print(render(args.command, result.value, getattr(args, "format", "json")))

    if args.command == "search" and args.out:
        save_listings(result.value, args.out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
