"""
foliotree.cli - Command-line interface.

Main entry point for the foliotree CLI tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from foliotree import __version__
from foliotree.commands import health, serve_cmd, sitemap_cmd, tree_cmd


def create_parser() -> argparse.ArgumentParser:
    """Build the foliotree argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="foliotree",
        description="Portfolio content tree service and tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  foliotree serve                       # Run the REST API
  foliotree tree                        # Print the published tree
  foliotree tree --include-unpublished  # Include drafts
  foliotree sitemap -o sitemap.xml      # Write the sitemap
  foliotree doctor                      # Check tree integrity

Configuration:
  .foliotree.toml in the current directory or any parent, overridden by
  FOLIOTREE_<SECTION>_<KEY> environment variables
  (e.g. FOLIOTREE_SERVER_PORT=9000).

For detailed command help: foliotree <command> --help
        """,
    )

    # Global options
    parser.add_argument(
        "--version",
        action="version",
        version=f"foliotree {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
        metavar="PATH",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-error output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the content tree REST API",
    )
    serve_parser.add_argument(
        "--host",
        help="Bind address (default: server.host)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        help="Port (default: server.port)",
    )

    # tree command
    tree_parser = subparsers.add_parser(
        "tree",
        help="Print the content tree with full paths",
    )
    tree_parser.add_argument(
        "--json",
        action="store_true",
        help="Output the listing as JSON",
    )
    tree_parser.add_argument(
        "--include-unpublished",
        action="store_true",
        help="Include unpublished nodes",
    )
    tree_parser.add_argument(
        "--max-depth",
        type=int,
        help="Maximum depth to list (default: tree.max_depth)",
        metavar="N",
    )
    tree_parser.add_argument(
        "--root",
        help="List only the subtree under this node id",
        metavar="ID",
    )

    # sitemap command
    sitemap_parser = subparsers.add_parser(
        "sitemap",
        help="Generate the public sitemap",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  foliotree sitemap                     # XML to stdout
  foliotree sitemap --format json       # Entries as JSON
  foliotree sitemap -o public/sitemap.xml --site-url https://example.com
""",
    )
    sitemap_parser.add_argument(
        "--format",
        choices=["xml", "json"],
        default="xml",
        help="Output format (default: xml)",
    )
    sitemap_parser.add_argument(
        "--site-url",
        help="Absolute site base URL (default: site.url)",
        metavar="URL",
    )
    sitemap_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Write to this file instead of stdout",
        metavar="PATH",
    )
    sitemap_parser.add_argument(
        "--include-unpublished",
        action="store_true",
        help="Include unpublished nodes (previews only)",
    )

    # doctor command
    doctor_parser = subparsers.add_parser(
        "doctor",
        help="Check configuration, store access and tree integrity",
    )
    doctor_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output the report as JSON",
    )

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    """Set the root log level from flags, falling back to ``logging.level``."""
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        from foliotree.config import get_config

        name = str(get_config(args.config).get("logging", {}).get("level", "WARNING"))
        level = getattr(logging, name.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()

    # Enable shell tab-completion if argcomplete is installed
    # Install with: pip install foliotree[completion]
    try:
        import argcomplete

        argcomplete.autocomplete(parser)
    except ImportError:
        pass

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "version":
            return version_command(args)
        if args.command != "doctor":
            # doctor reports config problems itself
            _configure_logging(args)

        if args.command == "serve":
            return serve_cmd.run(args)
        elif args.command == "tree":
            return tree_cmd.run(args)
        elif args.command == "sitemap":
            return sitemap_cmd.run(args)
        elif args.command == "doctor":
            return health.run(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        if args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


def version_command(args: argparse.Namespace) -> int:
    """Print the installed foliotree version."""
    print(f"foliotree {__version__}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
