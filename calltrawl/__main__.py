"""CLI entry point for calltrawl."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from calltrawl.client import ClientError, PromiseClient
from calltrawl.config import Config, ConfigError
from calltrawl.forest import ROLE_FILTERS, STATE_FILTERS, Forest, SortMode
from calltrawl.promise import parse_interval
from calltrawl.theme import Theme, detect_ascii

log = logging.getLogger("calltrawl")

COMMANDS = {"roots", "tree", "list", "show", "browse"}


def setup_logging(verbose: bool = False) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    # Shared global options, inherited by every subcommand
    global_opts = argparse.ArgumentParser(add_help=False)
    global_opts.add_argument("--server", "-s", metavar="URL",
                             help="Promise server URL (env RESONATE_SERVER, default http://localhost:8001)")
    global_opts.add_argument("--token", metavar="JWT", help="Bearer token (env RESONATE_TOKEN)")
    global_opts.add_argument("--username", metavar="USER", help="Basic auth user (env RESONATE_USERNAME)")
    global_opts.add_argument("--password", metavar="PASS", help="Basic auth password (env RESONATE_PASSWORD)")
    global_opts.add_argument("--timeout", type=float, metavar="SECS", help="HTTP timeout (default 10)")
    global_opts.add_argument("--format", "-f", choices=["human", "json"], default=None,
                             help="Output format (default: auto-detect)")
    global_opts.add_argument("--ascii", action="store_true",
                             help="Force ASCII output (no Unicode box drawing)")
    global_opts.add_argument("--color", action="store_true",
                             help="Force color output (for piping to less -R)")
    global_opts.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")

    parser = argparse.ArgumentParser(
        prog="calltrawl",
        description="Durable promise call-graph explorer",
        parents=[global_opts],
    )
    parser.add_argument("--version", action="version", version="calltrawl 0.1.0")

    sub = parser.add_subparsers(dest="command")

    # roots
    p_roots = sub.add_parser("roots", parents=[global_opts], help="List top-level call graphs")
    p_roots.add_argument("--state", choices=[s for s in STATE_FILTERS if s], help="Filter by state")
    p_roots.add_argument("--role", "--type", dest="role", choices=[r for r in ROLE_FILTERS if r],
                         help="Show every promise with this role instead of roots")
    p_roots.add_argument("--sort", choices=[m.value for m in SortMode],
                         default=SortMode.CREATED_DESC.value, help="Sort order")
    p_roots.add_argument("--limit", type=int, metavar="N", help="Page size")
    p_roots.add_argument("--cursor", metavar="C", help="Continue from a previous page")
    p_roots.add_argument("--expand", action="store_true", help="Load the tree under every root")

    # tree
    p_tree = sub.add_parser("tree", parents=[global_opts], help="Render one call graph")
    p_tree.add_argument("root", help="Root promise ID")
    p_tree.add_argument("--collapse-depth", type=int, metavar="N",
                        help="Collapse nodes at depth N and below")

    # list
    p_list = sub.add_parser("list", parents=[global_opts], help="Search promises")
    p_list.add_argument("pattern", nargs="?", default="*", help="ID pattern (default *)")
    p_list.add_argument("--state", choices=[s for s in STATE_FILTERS if s], help="Filter by state")
    p_list.add_argument("--roots", action="store_true", help="Only root promises")
    p_list.add_argument("--limit", type=int, metavar="N", help="Page size")
    p_list.add_argument("--cursor", metavar="C", help="Continue from a previous page")

    # show
    p_show = sub.add_parser("show", parents=[global_opts], help="Show one promise")
    p_show.add_argument("id", help="Promise ID")

    # browse
    p_browse = sub.add_parser("browse", parents=[global_opts], help="Interactive explorer")
    p_browse.add_argument("--root", metavar="ID", help="Open on this call graph")
    p_browse.add_argument("--refresh", metavar="INTERVAL",
                          help="Auto-refresh interval, e.g. 5s or 500ms (0 disables, default 5s)")

    return parser


def _get_format(args) -> str:
    """Determine output format from args + TTY detection."""
    if args.format:
        return args.format
    if not sys.stdout.isatty():
        return "json"
    return "human"


def _load_config(args) -> Config:
    refresh = getattr(args, "refresh", None)
    return Config.from_env().merged(
        server=args.server,
        token=args.token,
        username=args.username,
        password=args.password,
        timeout=args.timeout,
        refresh=parse_interval(refresh) if refresh else None,
        limit=getattr(args, "limit", None),
    ).validate()


async def _run(args, config: Config, console: Console, theme: Theme, fmt: str) -> None:
    async with PromiseClient.from_config(config) as client:
        if args.command == "roots":
            from calltrawl.commands.roots import cmd_roots, forest_dict
            forest = Forest(limit=config.limit, state_filter=args.state or "",
                            role_filter=args.role or "", sort_mode=SortMode(args.sort))
            await cmd_roots(client, forest, cursor=args.cursor, expand=args.expand)
            if fmt == "json":
                from calltrawl.formatters.json import format_json
                format_json(forest_dict(forest))
            else:
                from calltrawl.formatters.human import format_roots
                format_roots(console, forest, theme)
            return

        if args.command == "tree":
            from calltrawl.commands.tree import cmd_tree, tree_dict
            root = await cmd_tree(client, args.root, collapse_depth=args.collapse_depth)
            if fmt == "json":
                from calltrawl.formatters.json import format_json
                format_json(tree_dict(root))
            else:
                from calltrawl.formatters.human import format_tree
                format_tree(console, root, theme)
            return

        if args.command == "list":
            from calltrawl.commands.list import cmd_list, list_dict, list_role
            promises, cursor = await cmd_list(
                client, pattern=args.pattern, state=args.state or "",
                limit=config.limit, cursor=args.cursor or "", roots_only=args.roots,
            )
            if fmt == "json":
                from calltrawl.formatters.json import format_json
                format_json(list_dict(promises, cursor))
            else:
                from calltrawl.formatters.human import format_list
                format_list(console, promises, cursor, theme, role_of=list_role)
            return

        if args.command == "show":
            from calltrawl.commands.show import cmd_show, promise_dict
            promise = await cmd_show(client, args.id)
            if fmt == "json":
                from calltrawl.formatters.json import format_json
                format_json(promise_dict(promise))
            else:
                from calltrawl.formatters.human import format_show
                format_show(console, promise, theme)
            return

        if args.command == "browse":
            from calltrawl.browse import Browser
            browser = Browser(client, theme, console=console,
                              forest=Forest(limit=config.limit), refresh=config.refresh)
            await browser.run(root_id=args.root or "")
            return


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()

    # Handle bare `calltrawl <root-id>` (no subcommand) as `tree <root-id>`
    argv = sys.argv[1:] if argv is None else list(argv)
    if argv and argv[0] not in COMMANDS and not argv[0].startswith("-"):
        argv = ["tree"] + argv

    args = parser.parse_args(argv)
    if not args.command:
        args = parser.parse_args(["roots"] + argv)

    setup_logging(args.verbose)
    console = Console(force_terminal=True) if args.color else Console()
    theme = Theme.default(ascii=args.ascii or detect_ascii())
    fmt = _get_format(args)

    try:
        config = _load_config(args)
        log.debug("using %s", config.server)
        asyncio.run(_run(args, config, console, theme, fmt))
    except (ClientError, ConfigError, ValueError) as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/]")
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
