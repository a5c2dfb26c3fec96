import argparse
import asyncio
import os
import sys
import logging
from pathlib import Path
from typing import Optional, Sequence

import aiohttp
from dotenv import load_dotenv
from pydantic import ValidationError

from src.domain.config import PipelineConfig
from src.domain.exceptions import EnrichmentException
from src.infrastructure.artifacts import GitMaterializer, GoModuleFetcher, GoclocOracle
from src.infrastructure.database import PostgresRepository
from src.infrastructure.github_client import GitHubGraphQLClient
from src.infrastructure.raw_content_client import RawContentClient
from src.infrastructure.sourcegraph_client import SourceGraphClient
from src.application.dependency_resolver import DependencyGraphResolver
from src.application.metadata_fetcher import MetadataFetcher
from src.application.pipeline import EnrichmentPipeline
from src.application.size_calculator import SizeCalculator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

# Environment variable -> PipelineConfig field, for every optional override.
ENV_OVERRIDES = {
    "GITHUB_GRAPHQL_API_BASEURL": "github_graphql_url",
    "SOURCEGRAPH_GRAPHQL_API_BASEURL": "sourcegraph_graphql_url",
    "REPOSITORY_API_BASEURL": "raw_content_base_url",
    "DEFAULT_BRANCH": "default_branch",
    "DISCOVERY_COUNT": "discovery_count",
    "METADATA_MAX_IN_FLIGHT": "metadata_max_in_flight",
    "PRIMARY_WORKERS": "primary_workers",
    "DEPENDENCY_WORKERS": "dependency_workers",
    "INNER_MANIFEST_DEPTH": "inner_manifest_depth",
    "HTTP_TIMEOUT_SECONDS": "http_timeout_seconds",
    "MAX_RETRIES": "max_retries",
    "PROCESS_TIMEOUT_SECONDS": "process_timeout_seconds",
    "SCRATCH_DIR": "scratch_dir",
    "GIT_BINARY": "git_binary",
    "GO_BINARY": "go_binary",
    "GOCLOC_BINARY": "gocloc_binary",
}


def load_config() -> PipelineConfig:
    """Builds the run configuration from the environment (and a .env file, if present)."""
    load_dotenv()

    github_token = os.getenv("GITHUB_TOKEN")
    db_url = os.getenv("DATABASE_URL")

    if not github_token:
        logger.error("GITHUB_TOKEN is not set in the environment.")
        sys.exit(1)

    if not db_url:
        logger.error("DATABASE_URL is not set in the environment.")
        sys.exit(1)

    overrides = {field: os.environ[name] for name, field in ENV_OVERRIDES.items() if os.getenv(name)}
    try:
        return PipelineConfig(github_token=github_token, database_url=db_url, **overrides)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Enrich Go repositories with metadata and codebase sizes.")
    parser.add_argument("--count", type=int, default=None, help="How many repositories to request from discovery.")
    parser.add_argument("--scratch-dir", type=Path, default=None, help="Directory for temporary clones.")
    parser.add_argument(
        "--skip-waiting-for-primary-sizing", action="store_true",
        help="Do not wait for primary sizing once dependency sizing is done; unfinished primary sizing is cancelled at exit.",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[Sequence[str]] = None):
    args = parse_args(argv)
    config = load_config()
    if args.scratch_dir is not None:
        config = config.model_copy(update={"scratch_dir": args.scratch_dir})

    # Initialize the clients and the database repository
    db_repository = PostgresRepository(db_url=config.database_url)
    github_client = GitHubGraphQLClient(config)
    sourcegraph_client = SourceGraphClient(config)
    raw_client = RawContentClient(config)

    size_calculator = SizeCalculator(
        db_repository=db_repository,
        repository_materializer=GitMaterializer(config),
        module_materializer=GoModuleFetcher(config),
        oracle=GoclocOracle(config),
        config=config,
    )
    pipeline = EnrichmentPipeline(
        sourcegraph_client=sourcegraph_client,
        db_repository=db_repository,
        metadata_fetcher=MetadataFetcher(github_client, db_repository, config.metadata_max_in_flight),
        resolver=DependencyGraphResolver(raw_client, config),
        size_calculator=size_calculator,
        config=config,
    )

    try:
        await db_repository.create_schema()
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=config.http_timeout_seconds)) as session:
            report = await pipeline.run(
                session,
                count=args.count,
                wait_for_primary_sizing=not args.skip_waiting_for_primary_sizing,
            )
            await pipeline.cancel_primary_sizing()
        logger.info(f"Report: {report.model_dump_json()}")
    except (KeyboardInterrupt, asyncio.CancelledError):
        pipeline.request_stop()
        logger.info("Run interrupted by user. Exiting gracefully.")
    except EnrichmentException as e:
        logger.error(f"Run aborted: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)
    finally:
        await db_repository.dispose()

def cli():
    asyncio.run(main())

if __name__ == "__main__":
    cli()
