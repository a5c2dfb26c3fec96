import asyncio
import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from src.domain.config import PipelineConfig
from src.domain.exceptions import EnrichmentException
from src.domain.models import RepositoryEntity, SizeField, SizingReport, WorkItem
from src.infrastructure.database import PostgresRepository

logger = logging.getLogger(__name__)

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class Materializer(Protocol):
    async def materialize(self, artifact: str, destination: Path) -> Path: ...


class LineOracle(Protocol):
    async def count_lines(self, path: Path) -> int: ...


class SizeCalculator:
    """
    Bounded worker pools that materialize a codebase into the scratch directory,
    count its lines, record the count and remove the local copy again.

    Records whose target size field is already populated are skipped, so a
    rerun only works on what an earlier run left unset.
    """

    def __init__(
            self,
            db_repository: PostgresRepository,
            repository_materializer: Materializer,
            module_materializer: Materializer,
            oracle: LineOracle,
            config: PipelineConfig,
    ):
        self.db_repository = db_repository
        self.repository_materializer = repository_materializer
        self.module_materializer = module_materializer
        self.oracle = oracle
        self.scratch_dir = Path(config.scratch_dir)
        self.primary_workers = config.primary_workers
        self.dependency_workers = config.dependency_workers
        self._stop_event = asyncio.Event()

    def request_stop(self) -> None:
        """Stops handing out new work items; items already running finish normally."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def _prepare_scratch_dir(self) -> None:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    def _workdir_for(self, item: WorkItem) -> Path:
        safe_name = _UNSAFE_PATH_CHARS.sub("_", item.name).strip("_") or "artifact"
        return self.scratch_dir / f"{uuid.uuid4().hex[:12]}-{safe_name}"

    async def _measure(self, item: WorkItem, materializer: Materializer) -> int:
        """Materializes, counts and cleans up one item. Raises on any failure."""
        workdir = self._workdir_for(item)
        workdir.mkdir(parents=True)
        try:
            path = await materializer.materialize(item.artifact, workdir)
            lines = await self.oracle.count_lines(path)
            if lines < 0:
                raise EnrichmentException(f"Line oracle returned a negative count for {item.name}: {lines}")
            return lines
        finally:
            await self._remove(workdir)

    @staticmethod
    async def _remove(workdir: Path) -> None:
        try:
            await asyncio.to_thread(shutil.rmtree, workdir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to clean up {workdir}: {e}")

    async def _run_item(
        self,
        semaphore: asyncio.Semaphore,
        item: WorkItem,
        materializer: Materializer,
    ) -> Optional[int]:
        """Returns the line count, or None when the item failed or was never started."""
        async with semaphore:
            if self.stopping:
                return None
            try:
                return await self._measure(item, materializer)
            except (EnrichmentException, OSError) as e:
                logger.error(f"Sizing {item.name} failed, leaving it for a later run: {e}")
                return None

    async def _record(self, item: WorkItem, lines: int) -> None:
        await self.db_repository.update(item.record_id, {item.size_field.value: str(lines)})

    async def size_primary_repositories(self, records: Iterable[RepositoryEntity]) -> SizingReport:
        """
        Measures the own codebase of every record without an original size.

        Returns:
            SizingReport: names measured, skipped (already sized) and failed.
        """
        report = SizingReport()
        items: List[WorkItem] = []
        for record in records:
            if record.is_sized(SizeField.ORIGINAL):
                report.skipped.append(record.repository_name)
                continue
            items.append(WorkItem(
                artifact=record.repository_url,
                name=record.repository_name,
                record_id=record.id,
                size_field=SizeField.ORIGINAL,
            ))

        if not items:
            logger.info("No primary repositories left to size.")
            return report

        self._prepare_scratch_dir()
        semaphore = asyncio.Semaphore(self.primary_workers)
        logger.info(f"Sizing {len(items)} primary repositories with {self.primary_workers} workers.")

        async def work(item: WorkItem) -> None:
            lines = await self._run_item(semaphore, item, self.repository_materializer)
            if lines is None:
                report.failed.append(item.name)
                return
            await self._record(item, lines)
            report.measured.append(item.name)
            report.total_lines += lines
            logger.info(
                f"{item.name}: {lines} lines. "
                f"Remaining jobs: {len(items) - len(report.measured) - len(report.failed)}"
            )

        results = await asyncio.gather(*[work(item) for item in items], return_exceptions=True)
        self._reraise_fatal(results)
        return report

    async def size_dependencies(self, record: RepositoryEntity, dependencies: List[str]) -> SizingReport:
        """
        Measures every dependency of `record` and stores their sum as its library size.

        The sum is written only after all dependencies finished; failed ones add zero.
        Nothing is written when a stop request left some dependencies unstarted.
        """
        report = SizingReport()
        if record.is_sized(SizeField.LIBRARY):
            report.skipped.append(record.repository_name)
            return report

        items = [
            WorkItem(artifact=module, name=module, record_id=record.id, size_field=SizeField.LIBRARY)
            for module in dependencies
        ]
        if items:
            self._prepare_scratch_dir()
        semaphore = asyncio.Semaphore(self.dependency_workers)
        logger.info(f"Sizing {len(items)} dependencies of {record.repository_name} with {self.dependency_workers} workers.")

        results = await asyncio.gather(
            *[self._run_item(semaphore, item, self.module_materializer) for item in items],
            return_exceptions=True,
        )
        self._reraise_fatal(results)

        for item, lines in zip(items, results):
            if lines is None:
                report.failed.append(item.name)
            else:
                report.measured.append(item.name)
                report.total_lines += lines

        if self.stopping:
            logger.warning(f"Stop requested; library size of {record.repository_name} left unset.")
            return report

        await self.db_repository.update(record.id, {SizeField.LIBRARY.value: str(report.total_lines)})
        logger.info(
            f"{record.repository_name}: library codebase size {report.total_lines} lines "
            f"({len(report.measured)} measured, {len(report.failed)} failed)."
        )
        return report

    @staticmethod
    def _reraise_fatal(results: list) -> None:
        # Item failures are absorbed in _run_item; what reaches here is the store or a bug.
        for result in results:
            if isinstance(result, BaseException):
                raise result
