"""
Entry point for the zim_backup component.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .application.exceptions import ZimBackupError
from .infrastructure.containers import Container

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "[%(asctime)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str, timestamps: bool = True):
    """Applies basic logging configuration."""
    logging.basicConfig(
        level=level.upper(),
        format=TIMESTAMP_FORMAT if timestamps else "%(message)s",
        datefmt=DATE_FORMAT,
    )


async def run_application(args: argparse.Namespace) -> int:
    """Wires and runs the application using the DI container."""

    container = Container()
    container.cli_args.from_dict(vars(args))

    try:
        settings = container.config()
    except ZimBackupError as e:
        setup_logging(level="INFO")
        logger.error(f"ERROR: {e}")
        return e.exit_code

    setup_logging(level=settings.log_level, timestamps=settings.log_timestamps)
    backup_service = container.backup_service()

    try:
        await backup_service.run()
    except ZimBackupError as e:
        logger.error(f"ERROR: {type(e).__name__}: {e}")
        return e.exit_code
    finally:
        await container.http_client().aclose()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zim-backup",
        description=(
            "Download and verify the latest ZIM snapshot, keep N versions "
            "and maintain a stable 'current' symlink."
        ),
    )

    parser.add_argument(
        "--dest-dir",
        help="Directory holding the snapshots (overrides DEST_DIR).",
    )

    parser.add_argument(
        "--edition",
        help="Archive variant, e.g. wikipedia_en_all_maxi (overrides EDITION).",
    )

    parser.add_argument(
        "--keep-versions",
        type=int,
        help="How many dated snapshots to keep (overrides KEEP_VERSIONS).",
    )

    parser.add_argument(
        "--dry-run",
        action="store_const",
        const=True,
        help="Log filesystem and network mutations without performing them.",
    )

    parser.add_argument(
        "--no-torrent",
        dest="grab_torrent",
        action="store_const",
        const=False,
        help="Skip the optional .torrent download.",
    )

    parser.add_argument(
        "--force-check",
        action="store_const",
        const=True,
        help="Re-verify an already published snapshot against its checksum.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    cli_args = build_parser().parse_args(argv)
    return asyncio.run(run_application(cli_args))


if __name__ == "__main__":
    sys.exit(main())
