import asyncio
from pathlib import Path
from typing import Dict, List, Optional

from src.domain.exceptions import ProcessException
from src.domain.models import RepositoryEntity


class InMemoryRepository:
    """Stand-in for PostgresRepository keeping records in insertion order."""

    def __init__(self, records: Optional[List[RepositoryEntity]] = None) -> None:
        self.records: Dict[str, RepositoryEntity] = {r.id: r for r in records or []}
        self.updates: List[tuple] = []

    async def find_all(self) -> List[RepositoryEntity]:
        return list(self.records.values())

    async def find_by_id(self, record_id: str) -> Optional[RepositoryEntity]:
        return self.records.get(record_id)

    async def find_by_name(self, name: str) -> Optional[RepositoryEntity]:
        for record in self.records.values():
            if record.repository_name == name:
                return record
        return None

    async def insert(self, entity: RepositoryEntity) -> None:
        self.records.setdefault(entity.id, entity)

    async def update(self, record_id: str, fields: Dict[str, str]) -> None:
        self.updates.append((record_id, dict(fields)))
        self.records[record_id] = self.records[record_id].model_copy(update=fields)

    async def delete(self, entity: RepositoryEntity) -> None:
        self.records.pop(entity.id, None)


class FakeMaterializer:
    """Creates a directory per artifact; artifacts listed in `failing` raise."""

    def __init__(self, failing=(), delay: float = 0.0) -> None:
        self.failing = set(failing)
        self.delay = delay
        self.calls: List[str] = []
        self.destinations: List[Path] = []

    async def materialize(self, artifact: str, destination: Path) -> Path:
        self.calls.append(artifact)
        self.destinations.append(destination)
        await asyncio.sleep(self.delay)
        if artifact in self.failing:
            raise ProcessException(f"fetch {artifact}", 128, "not found")
        target = destination / "src"
        target.mkdir()
        (target / "marker.txt").write_text(artifact)
        return target


class FakeOracle:
    """Returns a fixed count per artifact and records the peak number of concurrent calls."""

    def __init__(self, counts: Optional[Dict[str, int]] = None, default: int = 1, delay: float = 0.0) -> None:
        self.counts = counts or {}
        self.default = default
        self.delay = delay
        self.calls = 0
        self.in_flight = 0
        self.peak_in_flight = 0

    async def count_lines(self, path: Path) -> int:
        self.calls += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            artifact = (path / "marker.txt").read_text()
            return self.counts.get(artifact, self.default)
        finally:
            self.in_flight -= 1
