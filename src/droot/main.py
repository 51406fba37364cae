"""Command line entry point for droot."""

from __future__ import annotations

import argparse
import signal
import sys
from typing import List, Optional

import structlog
from pydantic import ValidationError

from droot import __version__
from droot.core.config import Settings
from droot.core.exceptions import ConfigurationError, StageError
from droot.deploy.models import PullRequest
from droot.deploy.pipeline import PullPipeline
from droot.utils.logging import bind_pull_context, setup_logging
from droot.utils.pull_metrics import MetricsReporter
from droot.utils.reporting import CompositeReporter, LoggingReporter, PullReporter

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_STAGE_FAILED = 1
EXIT_CONFIGURATION = 2

PULL_USAGE = "droot pull --dest DESTINATION_DIRECTORY --src S3_ENDPOINT [--mode MODE]"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="droot", description="Deploy extracted filesystem images pulled from S3")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    pull = sub.add_parser("pull", help="Pull an extracted docker image from s3", usage=PULL_USAGE)
    pull.add_argument("--dest", "-d", help="Local filesystem path (ex. /var/containers/app)")
    pull.add_argument("--src", "-s", help="Amazon S3 endpoint (ex. s3://drootexample/app.tar.gz)")
    pull.add_argument(
        "--mode", "-m",
        help="Mode of deployment. 'rsync' or 'symlink' (aliases: mirror-sync, atomic-swap). default is 'rsync'",
    )
    pull.add_argument(
        "--same-owner",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Try extracting files with the same ownership as exists in the archive (default for superuser)",
    )
    pull.add_argument("--metrics-file", help="Write pull metrics to this Prometheus textfile")
    pull.add_argument("--log-level", help="Log level (default: INFO)")
    pull.add_argument("--log-format", choices=["json", "console"], help="Log renderer (default: console)")
    pull.set_defaults(handler=cmd_pull, subparser=pull)
    return parser


def _error(message: str) -> None:
    print(f"droot: {message}", file=sys.stderr)


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    if args.metrics_file:
        overrides["metrics_textfile"] = args.metrics_file
    return Settings(**overrides)


def cmd_pull(args: argparse.Namespace, pull_parser: argparse.ArgumentParser) -> int:
    try:
        settings = _load_settings(args)
    except ValidationError as e:
        _error(f"invalid configuration: {e}")
        return EXIT_CONFIGURATION

    setup_logging(settings.log_level, settings.log_format)

    try:
        request = PullRequest.from_options(args.dest, args.src, args.mode, args.same_owner)
    except ConfigurationError as e:
        if not args.dest or not args.src:
            pull_parser.print_help(sys.stderr)
        _error(str(e))
        return EXIT_CONFIGURATION

    bind_pull_context(str(request.destination), request.source, request.strategy.value)

    reporters: List[PullReporter] = [LoggingReporter()]
    if settings.metrics_textfile:
        reporters.append(MetricsReporter(settings.metrics_textfile))
    pipeline = PullPipeline.from_settings(settings, reporter=CompositeReporter(reporters))

    try:
        pipeline.run(request)
    except ConfigurationError as e:
        _error(str(e))
        return EXIT_CONFIGURATION
    except StageError as e:
        _error(f"{e.stage} failed: {e}")
        return EXIT_STAGE_FAILED
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = getattr(args, "handler", None)
    if handler is not None:
        return handler(args, args.subparser)

    parser.print_help(sys.stderr)
    return EXIT_CONFIGURATION


def run() -> None:
    """Run the CLI, making sure scratch storage is cleaned up on SIGTERM."""

    def handle_sigterm(signum, frame):
        logger.warning("Received SIGTERM, aborting pull")
        # SystemExit unwinds through the pipeline's cleanup
        sys.exit(128 + signum)

    signal.signal(signal.SIGTERM, handle_sigterm)
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        _error("interrupted")
        sys.exit(130)


if __name__ == "__main__":
    run()
