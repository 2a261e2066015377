"""Main entry point for the workflow archiver CLI."""

import asyncio
import sys
import uuid
from pathlib import Path
from typing import Optional

import click

from utils.logging import configure_logging
from workflow_archiver import __version__
from workflow_archiver.config import load_config
from workflow_archiver.exceptions import ArchiverError, ConfigurationError
from workflow_archiver.result import ExitCode


@click.command()
@click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="List the workflows that would be archived without making changes",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum workflows to archive this run (overrides archive.batch_limit)",
)
@click.option(
    "--retry-delay",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds between attempts on the same workflow (overrides archive.retry_delay)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"]),
    help="Log level",
)
@click.option(
    "--log-format",
    default="console",
    type=click.Choice(["console", "json"], case_sensitive=False),
    help="Log format: 'console' for human-readable output, 'json' for structured logs",
)
@click.version_option(__version__, prog_name="workflow-archiver")
def main(
    config: Path,
    dry_run: bool,
    limit: Optional[int],
    retry_delay: Optional[float],
    verbose: bool,
    log_level: str,
    log_format: str,
) -> None:
    """Move finished workflow steps from the workflow table to workflow_archive.

    Intended to run from cron. Exit status: 0 clean or nothing to archive,
    1 fatal error, 2 some workflows failed or were skipped, 3 halted after
    too many failures.
    """
    run_id = uuid.uuid4().hex[:12]
    effective_log_level = "DEBUG" if verbose else log_level
    logger = configure_logging(
        log_level=effective_log_level, log_format=log_format, run_id=run_id
    ).bind(component="main")

    try:
        archiver_config = load_config(config)
        if limit is not None:
            archiver_config.archive.batch_limit = limit
        if retry_delay is not None:
            archiver_config.archive.retry_delay = retry_delay
        if dry_run:
            logger.info("DRY RUN MODE - No changes will be made")

        # Import here so --help and --version stay fast
        from workflow_archiver.controller import BatchController

        controller = BatchController(archiver_config, dry_run=dry_run, logger=logger)
        result = asyncio.run(controller.run())
    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(ExitCode.FATAL)
    except ArchiverError as e:
        logger.error("Archival failed", error=str(e), context=e.context)
        sys.exit(ExitCode.FATAL)
    except Exception as e:
        logger.exception("Unexpected error", error=str(e))
        sys.exit(ExitCode.FATAL)

    sys.exit(result.exit_code)


if __name__ == "__main__":
    main()
