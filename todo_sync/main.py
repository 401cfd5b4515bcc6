#!/usr/bin/env python3
"""
todo-sync - reconcile markdown checklist lines with a remote to-do service.
"""

import argparse
import logging
import sys

from todo_sync.core.config import SettingsStore, get_default_config_path
from todo_sync.core.paths import get_path_manager
from todo_sync.sync.reconciler import Mode
from todo_sync.commands import (
    AddMissingCommand,
    BlockCommand,
    CleanupCommand,
    CommandContext,
    OpenCommand,
    ResetCacheCommand,
    SelectionCommand,
    SummaryCommand,
    SyncCommand,
    parse_line_range,
)


def _line_range(value: str):
    try:
        return parse_line_range(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _line_number(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid line number: {value}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError("line numbers are zero-based and non-negative")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todo-sync",
        description="Sync checklist lines in markdown documents with a remote to-do service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  todo-sync --vault ~/notes --gateway mypkg.graph:make_gateway sync
  todo-sync --vault ~/notes --gateway mypkg.graph:make_gateway push Inbox.md 3-7
  todo-sync --vault ~/notes --gateway mypkg.graph:make_gateway add-missing Inbox.md
  todo-sync --vault ~/notes --gateway mypkg.graph:make_gateway summary Daily.md
  todo-sync --vault ~/notes cleanup
  todo-sync reset-cache
        """
    )

    parser.add_argument(
        '--config',
        help=f'Path to settings file (default: {get_default_config_path()})',
        default=None
    )
    parser.add_argument('--vault', help='Folder of markdown documents')
    parser.add_argument(
        '--gateway',
        help='Remote gateway as module:factory (a TodoGateway subclass or a factory taking the settings)'
    )
    parser.add_argument(
        '--cache',
        help='Path to the delta cache file (default: next to the settings)',
        default=None
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('sync', help='Reconcile every tracked task in the vault')

    for name, help_text in (
        ('reconcile', 'Reconcile lines, newest side wins'),
        ('push', 'Push lines to the remote service'),
        ('pull', 'Pull lines from the remote service'),
    ):
        selection_parser = subparsers.add_parser(name, help=help_text)
        selection_parser.add_argument('file', help='Document path relative to the vault')
        selection_parser.add_argument('lines', type=_line_range, help='Zero-based line or range, e.g. 4 or 4-9')

    for name, help_text in (
        ('push-block', 'Push a task with its body and checklist'),
        ('pull-block', 'Pull a task with its body and checklist'),
    ):
        block_parser = subparsers.add_parser(name, help=help_text)
        block_parser.add_argument('file', help='Document path relative to the vault')
        block_parser.add_argument('line', type=_line_number, help='Zero-based line of the task')

    missing_parser = subparsers.add_parser('add-missing', help='Add remote-only tasks to a document')
    missing_parser.add_argument('file', help='Document path relative to the vault')
    missing_parser.add_argument('--line', type=_line_number, help='Insert before this line (default: append)')

    summary_parser = subparsers.add_parser('summary', help="List open remote tasks and today's completed ones")
    summary_parser.add_argument('file', nargs='?', help='Insert into this document instead of printing')
    summary_parser.add_argument('--line', type=_line_number, help='Insert before this line (default: append)')

    subparsers.add_parser('cleanup', help='Forget anchors no document uses')
    subparsers.add_parser('reset-cache', help='Delete the delta cache')

    open_parser = subparsers.add_parser('open', help='Print the remote link for a tracked line')
    open_parser.add_argument('file', help='Document path relative to the vault')
    open_parser.add_argument('line', type=_line_number, help='Zero-based line of the task')

    return parser


def main(argv=None):
    """Main entry point for todo-sync."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    if not args.command:
        parser.print_help()
        return 1

    store = SettingsStore.open(args.config)
    if args.verbose:
        print(f"Using config: {store.path}")

    cache_path = args.cache or str(get_path_manager().delta_cache_path)
    context = CommandContext(store, args.vault, cache_path, gateway_spec=args.gateway)

    try:
        if args.command == 'sync':
            success = SyncCommand(context, verbose=args.verbose).run()

        elif args.command in ('reconcile', 'push', 'pull'):
            mode = {'reconcile': Mode.SYNC, 'push': Mode.PUSH, 'pull': Mode.PULL}[args.command]
            success = SelectionCommand(context, verbose=args.verbose).run(args.file, args.lines, mode)

        elif args.command in ('push-block', 'pull-block'):
            cmd = BlockCommand(context, verbose=args.verbose)
            success = cmd.run(args.file, args.line, push=args.command == 'push-block')

        elif args.command == 'add-missing':
            success = AddMissingCommand(context, verbose=args.verbose).run(args.file, args.line)

        elif args.command == 'summary':
            success = SummaryCommand(context, verbose=args.verbose).run(args.file, args.line)

        elif args.command == 'cleanup':
            success = CleanupCommand(context, verbose=args.verbose).run()

        elif args.command == 'reset-cache':
            success = ResetCacheCommand(context, verbose=args.verbose).run()

        elif args.command == 'open':
            success = OpenCommand(context, verbose=args.verbose).run(args.file, args.line)

        else:
            print(f"Unknown command '{args.command}'.")
            return 1

        return 0 if success else 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 130


if __name__ == '__main__':
    sys.exit(main())
