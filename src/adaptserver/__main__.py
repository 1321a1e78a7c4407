"""
=============================================================================
ADAPTSERVER CLI ENTRY POINT
=============================================================================

    # Upload server: store uploads in ./uploads, run ./adapt.sh on each
    python -m adaptserver transfer ./uploads ./adapt.sh

    # Custom port, block forever waiting for client data
    python -m adaptserver transfer --port-num 6000 --read-timeout -1 ./uploads ./adapt.sh

    # 16-bit audio stream without a header, saved as temp.zip
    python -m adaptserver transfer --samples --headerless ./uploads ./adapt.sh

    # Model listing server
    python -m adaptserver list /data/models

    # Everything from the environment
    ADAPT_DEST_DIR=./uploads ADAPT_TRIGGER=./adapt.sh python -m adaptserver transfer

Options left out on the command line fall back to the ADAPT_* environment
variables (see ServerConfig.from_env), then to the built-in defaults.

Exit codes:

    0   normal shutdown (SIGINT / SIGTERM between sessions)
    1   usage or argument error
    130 interrupted during a session (SIGINT / SIGTERM, or a second signal)
    -1  fatal startup error (socket, bind, listen)

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import Framing, ServerConfig, ServerVariant, timeout_from_seconds
from .core import ServerStartupError
from .protocol.frames import ChunkUnit, DEFAULT_CHUNK_SIZE
from .server import AdaptationServer


logger = logging.getLogger(__name__)

EXIT_USAGE = 1
EXIT_INTERRUPTED = 130
EXIT_FATAL = -1


class ArgumentParser(argparse.ArgumentParser):
    """argparse parser that reports usage errors with exit status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _add_common_arguments(parser: argparse.ArgumentParser, default_port: int):
    parser.add_argument(
        "--port-num",
        type=int,
        help=f"Port number the server will listen on (env: ADAPT_PORT, default: {default_port})",
    )

    parser.add_argument(
        "--read-timeout",
        type=int,
        help="Seconds to wait for data to appear on the stream; -1 blocks "
             "(env: ADAPT_READ_TIMEOUT, default: 3)",
    )

    parser.add_argument(
        "--host",
        help="Address to bind to (env: ADAPT_HOST, default: all interfaces)",
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (env: ADAPT_LOG_LEVEL, default: INFO)",
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Per-session log format (env: ADAPT_LOG_FORMAT, default: text)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="adaptserver",
        description="Receive uploads over TCP and hand them to an adaptation job",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", "-v", action="version", version=f"adaptserver {__version__}")

    commands = parser.add_subparsers(dest="command", metavar="{transfer,list}")
    commands.required = True

    # ─────────────────────────────────────────────────────────────────────
    # TRANSFER
    # ─────────────────────────────────────────────────────────────────────

    transfer = commands.add_parser(
        "transfer",
        help="Receive a file and run the trigger command on it",
        description="Reads a file from a network socket and performs adaptation on it",
    )
    _add_common_arguments(transfer, ServerVariant.TRANSFER.default_port)
    transfer.add_argument(
        "--chunk-size",
        type=int,
        help=f"Payload chunk size in units (default: {DEFAULT_CHUNK_SIZE})",
    )
    transfer.add_argument(
        "--samples",
        action="store_true",
        help="Count chunks in 16-bit samples instead of bytes",
    )
    transfer.add_argument(
        "--headerless",
        action="store_true",
        help="No header frame; the payload is saved under --file-name",
    )
    transfer.add_argument(
        "--file-name",
        help="Destination file name for --headerless (default: temp.zip)",
    )
    transfer.add_argument(
        "--trigger-timeout",
        type=float,
        help="Kill the trigger command after this many seconds (default: wait)",
    )
    transfer.add_argument(
        "dest_dir",
        nargs="?",
        help="Directory uploaded files are written to (env: ADAPT_DEST_DIR)",
    )
    transfer.add_argument(
        "trigger_command",
        nargs="?",
        help="Executable run with the uploaded file's path (env: ADAPT_TRIGGER)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LIST
    # ─────────────────────────────────────────────────────────────────────

    listing = commands.add_parser(
        "list",
        help="Answer 'list' with the model directory's entries",
        description="Get the existing acoustic models for recognition",
    )
    _add_common_arguments(listing, ServerVariant.LISTING.default_port)
    listing.add_argument(
        "model_dir",
        nargs="?",
        help="Directory holding the models (env: ADAPT_MODEL_DIR)",
    )

    return parser


def _given(**values) -> dict:
    """Keep only the options that were actually passed."""
    return {name: value for name, value in values.items() if value is not None}


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Translate parsed CLI arguments into a ServerConfig.

    The environment (ServerConfig.from_env) provides the base; every option
    given on the command line overrides it.

    Raises:
        ValueError: If an ADAPT_* variable cannot be parsed.
    """
    changes = _given(
        host=args.host,
        port=args.port_num,
        log_level=args.log_level,
        log_format=args.log_format,
    )
    if args.read_timeout is not None:
        changes["read_timeout"] = timeout_from_seconds(args.read_timeout)

    if args.command == "list":
        changes.update(_given(model_dir=args.model_dir))
        return ServerConfig.from_env(ServerVariant.LISTING).with_overrides(**changes)

    changes.update(_given(
        dest_dir=args.dest_dir,
        trigger_command=args.trigger_command,
        chunk_size=args.chunk_size,
        headerless_file_name=args.file_name,
        trigger_timeout=args.trigger_timeout,
    ))
    if args.headerless:
        changes["framing"] = Framing.HEADERLESS
    if args.samples:
        changes["unit"] = ChunkUnit.SAMPLE

    return ServerConfig.from_env(ServerVariant.TRANSFER).with_overrides(**changes)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        server = AdaptationServer(config_from_args(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        server.run()
    except ServerStartupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED

    return 0


def transfer_main() -> int:
    """Console script for the upload server."""
    return main(["transfer", *sys.argv[1:]])


def listing_main() -> int:
    """Console script for the model-listing server."""
    return main(["list", *sys.argv[1:]])


if __name__ == "__main__":
    sys.exit(main())
