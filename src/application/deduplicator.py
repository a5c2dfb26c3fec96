from typing import Iterable, List, TypeVar

from src.domain.models import RepositoryEntity

T = TypeVar("T")


def deduplicate(items: Iterable[T]) -> List[T]:
    """Drops repeated items, keeping the first occurrence and the original order."""
    seen = set()
    unique: List[T] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        unique.append(item)
    return unique


def find_duplicate_records(records: Iterable[RepositoryEntity]) -> List[RepositoryEntity]:
    """Returns every record whose name already appeared earlier in `records`."""
    seen = set()
    duplicates: List[RepositoryEntity] = []
    for record in records:
        if record.repository_name in seen:
            duplicates.append(record)
        else:
            seen.add(record.repository_name)
    return duplicates
