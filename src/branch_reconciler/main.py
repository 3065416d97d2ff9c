import argparse
import asyncio
import os
import sys
import logging
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import ValidationError

from branch_reconciler.application.batch_service import BatchReconciliationService
from branch_reconciler.domain.exceptions import FatalSetupError
from branch_reconciler.domain.models import RunConfig
from branch_reconciler.infrastructure.git_transport import GitTransport
from branch_reconciler.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REPOSITORY_ERRORS = 1
EXIT_FATAL = 2


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="branch-reconciler",
        description="Move every repository of a ros2.repos file onto one default branch name.",
    )
    parser.add_argument("--new-branch", required=True, help="Default branch every repository should end up with")
    parser.add_argument("--repos-branch", required=True, help="Branch of ros2/ros2 to read ros2.repos from")
    parser.add_argument(
        "--rosdistro-directory", required=True, help="Directory of ros/rosdistro holding distribution.yaml"
    )
    parser.add_argument(
        "--exclude",
        dest="repos_to_exclude",
        nargs="*",
        required=True,
        metavar="ORG/NAME",
        help="Repositories to leave untouched (pass the flag alone for none)",
    )
    parser.add_argument("--cache-dir", default=".cache", help="Working directory for downloads and clones")
    parser.add_argument(
        "--dry-run",
        dest="is_dry_run",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Only describe remote changes (default: on)",
    )
    parser.add_argument(
        "--force-refresh", dest="is_force_refresh", action="store_true", help="Clear the cache directory first"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def parse_config(argv: Optional[List[str]] = None) -> Tuple[RunConfig, bool]:
    args = build_parser().parse_args(argv)
    config = RunConfig(
        new_branch=args.new_branch,
        repos_branch=args.repos_branch,
        rosdistro_directory=args.rosdistro_directory,
        repos_to_exclude=args.repos_to_exclude,
        cache_dir=args.cache_dir,
        is_dry_run=args.is_dry_run,
        is_force_refresh=args.is_force_refresh,
    )
    return config, args.verbose


async def main(argv: Optional[List[str]] = None) -> int:
    try:
        config, verbose = parse_config(argv)
    except ValidationError as e:
        configure_logging()
        logger.error(f"Invalid arguments: {e}")
        return EXIT_FATAL
    configure_logging(verbose)

    # Load environment variables from .env file
    load_dotenv()
    github_token = os.getenv("GITHUB_TOKEN")

    if not github_token:
        if not config.is_dry_run:
            logger.error("GITHUB_TOKEN is not set in the environment.")
            return EXIT_FATAL
        logger.warning("GITHUB_TOKEN is not set; querying GitHub unauthenticated.")

    batch_service = BatchReconciliationService(
        config=config,
        github_client=GitHubRestClient(token=github_token),
        git_transport=GitTransport(),
    )

    try:
        summary = await batch_service.run()
    except FatalSetupError as e:
        logger.error(f"Aborting before any repository was processed: {e}")
        return EXIT_FATAL

    return EXIT_REPOSITORY_ERRORS if summary.has_errors else EXIT_OK


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Remote state is left as processed so far.")
        sys.exit(130)


if __name__ == "__main__":
    run()
