import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, List

import aiohttp

from src.domain.exceptions import DatabaseException, EnrichmentException, RateLimitExceededException
from src.domain.models import MetadataReport, RepositoryEntity
from src.infrastructure.acl import parse_repository_url
from src.infrastructure.database import PostgresRepository
from src.infrastructure.github_client import GitHubGraphQLClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_IN_FLIGHT = 20
DEFAULT_RATE_LIMIT_WAIT = 60


class MetadataFetcher:
    """
    Enriches repository records with GitHub metadata, at most `max_in_flight`
    queries at a time. A failed query is reported and never aborts the batch.
    """

    def __init__(
            self,
            github_client: GitHubGraphQLClient,
            db_repository: PostgresRepository,
            max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
    ):
        self.github_client = github_client
        self.db_repository = db_repository
        self.max_in_flight = max_in_flight

    async def enrich(self, session: aiohttp.ClientSession, records: Iterable[RepositoryEntity]) -> MetadataReport:
        """
        Queries and merges metadata for every record whose owner/name parses from its URL.

        Returns once every attempt has finished; no slot is held afterwards.
        """
        semaphore = asyncio.Semaphore(self.max_in_flight)
        report = MetadataReport()
        targets: List[RepositoryEntity] = []

        for record in records:
            if parse_repository_url(record.repository_url) is None:
                logger.warning(f"Skipping {record.repository_name}: cannot parse owner/name from '{record.repository_url}'.")
                report.skipped.append(record.repository_name)
            else:
                targets.append(record)

        logger.info(f"Enriching {len(targets)} repositories with metadata (max {self.max_in_flight} in flight).")

        results = await asyncio.gather(
            *[self._enrich_one(session, semaphore, record) for record in targets],
            return_exceptions=True,
        )

        for record, result in zip(targets, results):
            if isinstance(result, DatabaseException):
                # The store is gone; every later write would fail as well.
                raise result
            if isinstance(result, (EnrichmentException, aiohttp.ClientError, asyncio.TimeoutError)):
                logger.error(f"Metadata enrichment failed for {record.repository_name}: {result}")
                report.failed.append(record.repository_name)
            elif isinstance(result, BaseException):
                raise result
            else:
                report.enriched.append(record.repository_name)

        logger.info(
            f"Metadata enrichment finished: {len(report.enriched)} enriched, "
            f"{len(report.failed)} failed, {len(report.skipped)} skipped."
        )
        return report

    async def _enrich_one(
        self,
        session: aiohttp.ClientSession,
        semaphore: asyncio.Semaphore,
        record: RepositoryEntity,
    ) -> None:
        owner, name = parse_repository_url(record.repository_url)
        async with semaphore:
            try:
                metadata = await self.github_client.fetch_repository(session, owner, name)
            except RateLimitExceededException as e:
                # Holds the slot while waiting out the reset.
                wait_seconds = rate_limit_wait_seconds(e.reset_at)
                logger.warning(f"Rate limit exceeded. Waiting {wait_seconds:.0f}s until {e.reset_at} before retrying {owner}/{name}.")
                await asyncio.sleep(wait_seconds)
                metadata = await self.github_client.fetch_repository(session, owner, name)
            # Keyed by id: the primary key and the stored name are preserved.
            await self.db_repository.update(record.id, metadata.as_record_fields())


def rate_limit_wait_seconds(reset_at: str) -> float:
    """Seconds until `reset_at` (ISO-8601) plus a small margin; 60s when it cannot be read."""
    try:
        reset_time = datetime.fromisoformat(reset_at.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return DEFAULT_RATE_LIMIT_WAIT
    if reset_time.tzinfo is None:
        reset_time = reset_time.replace(tzinfo=timezone.utc)
    now = datetime.now(timezone.utc)
    return max((reset_time - now).total_seconds() + 5, 1)
