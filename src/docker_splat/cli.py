"""Command-line interface for docker-splat."""

import argparse
import asyncio
import logging
import sys

from . import __version__
from .core.types import SplatConfig
from .exceptions import SplatError, UsageError
from .source import ArchiveImageSource
from .splat import Splatter

logger = logging.getLogger("docker_splat")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="splat",
        description="take container images and put them on your filesystem",
        usage="%(prog)s [options] IMAGE [DESTINATION]",
    )
    parser.add_argument("args", nargs="*", metavar="ARG", help=argparse.SUPPRESS)
    parser.add_argument(
        "--archive",
        action="store_true",
        help="Treat IMAGE as the path of a docker save archive",
    )
    parser.add_argument("--docker-host", help="Docker daemon address (default: $DOCKER_HOST)")
    parser.add_argument("--api-version", help="Docker API version (default: negotiated)")
    parser.add_argument("--timeout", type=int, help="Docker request timeout in seconds")
    parser.add_argument(
        "--allow-missing-manifest",
        action="store_true",
        help="Treat an image archive without manifest.json as having no layers",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    g = parser.add_argument_group("Logging options")
    g.add_argument("--debug", "-v", action="store_const", const=logging.DEBUG, dest="loglevel")
    g.add_argument("--quiet", "-q", action="store_const", const=logging.WARNING, dest="loglevel")
    parser.set_defaults(loglevel=logging.INFO)
    return parser


def parse_positionals(args: list[str]) -> tuple[str, str]:
    """Split positional arguments into image reference and destination.

    Raises:
        UsageError: If there are no arguments or more than two
    """
    if not args:
        raise UsageError("No args specified, see --help for usage")
    if len(args) > 2:
        raise UsageError("Too many args, see --help for usage")
    reference = args[0]
    destination = args[1] if len(args) == 2 else "."
    return reference, destination


def configure_logging(level: int) -> None:
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Run the splat command.

    Returns:
        Process exit status: 0 on success, 1 on failure, 2 on usage errors
    """
    parser = build_parser()
    options = parser.parse_args(argv)

    try:
        reference, destination = parse_positionals(options.args)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return 2

    try:
        config = SplatConfig.from_env(
            docker_host=options.docker_host,
            api_version=options.api_version,
            timeout=options.timeout,
            verbosity=options.loglevel,
            require_manifest=not options.allow_missing_manifest,
            image_source=ArchiveImageSource() if options.archive else None,
        )
    except ValueError as e:
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.verbosity)

    try:
        asyncio.run(Splatter(config).run(reference, destination))
    except SplatError as e:
        logger.error("%s", e)
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
