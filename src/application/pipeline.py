import asyncio
import logging
import uuid
from typing import List, Optional

import aiohttp

from src.application.deduplicator import find_duplicate_records
from src.application.dependency_resolver import DependencyGraphResolver
from src.application.metadata_fetcher import MetadataFetcher
from src.application.size_calculator import SizeCalculator
from src.domain.config import PipelineConfig
from src.domain.exceptions import EnrichmentException
from src.domain.models import PipelineReport, RepositoryEntity, SizeField, SizingReport
from src.infrastructure.acl import parse_repository_url
from src.infrastructure.database import PostgresRepository
from src.infrastructure.sourcegraph_client import SourceGraphClient

logger = logging.getLogger(__name__)


class EnrichmentPipeline:
    """
    Service responsible for one batch run: discovery, dedup, metadata enrichment,
    primary-repository sizing and per-repository dependency sizing.

    Primary sizing runs as a background task next to dependency sizing; both
    write different size columns, so they never race on the same field.
    Rerunning against a partially enriched store only redoes unset fields.
    """

    def __init__(
            self,
            sourcegraph_client: SourceGraphClient,
            db_repository: PostgresRepository,
            metadata_fetcher: MetadataFetcher,
            resolver: DependencyGraphResolver,
            size_calculator: SizeCalculator,
            config: PipelineConfig,
    ):
        self.sourcegraph_client = sourcegraph_client
        self.db_repository = db_repository
        self.metadata_fetcher = metadata_fetcher
        self.resolver = resolver
        self.size_calculator = size_calculator
        self.discovery_count = config.discovery_count
        self.primary_sizing_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def request_stop(self) -> None:
        """Halts new work; in-flight items drain and the run returns with what it has."""
        self._stop_event.set()
        self.size_calculator.request_stop()

    async def discover(self, session: aiohttp.ClientSession, count: int) -> int:
        """Inserts every discovered repository whose name is not stored yet."""
        try:
            names = await self.sourcegraph_client.search_repositories(session, count)
        except EnrichmentException as e:
            logger.error(f"Discovery failed, continuing with the stored repositories: {e}")
            return 0

        inserted = 0
        for location in names:
            parsed = parse_repository_url(location)
            if parsed is None:
                logger.warning(f"Ignoring discovered location '{location}': no owner/name.")
                continue
            name = f"{parsed[0]}/{parsed[1]}"
            if await self.db_repository.find_by_name(name) is not None:
                continue
            await self.db_repository.insert(RepositoryEntity(
                id=uuid.uuid4().hex,
                repository_name=name,
                repository_url=location,
            ))
            inserted += 1
        logger.info(f"Discovery stored {inserted} new repositories ({len(names)} returned).")
        return inserted

    async def remove_duplicates(self) -> int:
        """Deletes all but the first-listed record of every repository name."""
        duplicates = find_duplicate_records(await self.db_repository.find_all())
        for record in duplicates:
            await self.db_repository.delete(record)
        if duplicates:
            logger.info(f"Removed {len(duplicates)} duplicate repositories.")
        return len(duplicates)

    def start_primary_sizing(self, records: List[RepositoryEntity]) -> asyncio.Task:
        self.primary_sizing_task = asyncio.create_task(
            self.size_calculator.size_primary_repositories(records),
            name="primary-sizing",
        )
        return self.primary_sizing_task

    async def size_libraries(self, session: aiohttp.ClientSession, records: List[RepositoryEntity],
                             report: PipelineReport) -> None:
        """Resolves and sizes dependencies one repository at a time."""
        for record in records:
            if self._stop_event.is_set():
                logger.warning("Stop requested; skipping remaining dependency sizing.")
                break
            if record.is_sized(SizeField.LIBRARY):
                report.dependency_sizing.skipped.append(record.repository_name)
                continue

            try:
                manifest = await self.sourcegraph_client.fetch_manifest(session, record.repository_url)
            except EnrichmentException as e:
                logger.error(f"Could not fetch go.mod of {record.repository_name}: {e}")
                report.unresolved_repositories.append(record.repository_name)
                continue
            if manifest is None:
                logger.warning(f"{record.repository_name} has no go.mod on its default branch.")
                report.unresolved_repositories.append(record.repository_name)
                continue

            resolution = await self.resolver.resolve(
                session, record.repository_name, manifest.content, branch=manifest.branch,
            )
            sizing = await self.size_calculator.size_dependencies(record, resolution.dependencies)
            report.dependency_sizing = report.dependency_sizing.merge(sizing)

    async def run(self, session: aiohttp.ClientSession, count: Optional[int] = None,
                  wait_for_primary_sizing: bool = True) -> PipelineReport:
        """
        Runs one batch.

        Args:
            session (aiohttp.ClientSession): Session shared by every HTTP call of the run.
            count (Optional[int]): How many repositories to ask discovery for.
            wait_for_primary_sizing (bool): When False the primary sizing task is
                left running and exposed as `primary_sizing_task`.
        """
        report = PipelineReport()
        report.discovered = await self.discover(session, count or self.discovery_count)
        report.duplicates_removed = await self.remove_duplicates()

        records = await self.db_repository.find_all()
        report.metadata = await self.metadata_fetcher.enrich(session, records)

        records = await self.db_repository.find_all()
        primary_task = self.start_primary_sizing(records)

        try:
            await self.size_libraries(session, records, report)
        except BaseException:
            await self.cancel_primary_sizing()
            raise

        if wait_for_primary_sizing:
            report.primary_sizing = await primary_task
        else:
            logger.info("Primary sizing detached; await `primary_sizing_task` to join it.")

        logger.info(
            f"Run finished: {report.discovered} discovered, {report.duplicates_removed} duplicates removed, "
            f"{len(report.metadata.failed)} metadata failures, "
            f"{len(report.dependency_sizing.failed)} dependency sizing failures."
        )
        return report

    async def cancel_primary_sizing(self) -> None:
        """Cancels an unfinished primary sizing task and waits until it has stopped."""
        task = self.primary_sizing_task
        if task is None or task.done():
            return
        task.cancel()
        # Collects the cancellation without raising it into the caller.
        await asyncio.gather(task, return_exceptions=True)

    async def join_primary_sizing(self) -> SizingReport:
        if self.primary_sizing_task is None:
            return SizingReport()
        return await self.primary_sizing_task
