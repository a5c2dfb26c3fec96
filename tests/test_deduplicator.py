import unittest

from src.application.deduplicator import deduplicate, find_duplicate_records
from src.domain.models import RepositoryEntity


class TestDeduplicate(unittest.TestCase):
    def test_first_occurrence_order_is_kept(self) -> None:
        self.assertEqual(deduplicate(["b", "a", "b", "c", "a"]), ["b", "a", "c"])

    def test_duplicate_free_input_is_unchanged(self) -> None:
        items = ["github.com/a/x", "github.com/b/y", "golang.org/x/sync"]
        self.assertEqual(deduplicate(items), items)

    def test_equality_is_exact(self) -> None:
        self.assertEqual(deduplicate(["Mod", "mod", "mod "]), ["Mod", "mod", "mod "])

    def test_empty(self) -> None:
        self.assertEqual(deduplicate([]), [])


class TestFindDuplicateRecords(unittest.TestCase):
    def test_later_records_with_a_seen_name_are_duplicates(self) -> None:
        first = RepositoryEntity(id="1", repository_name="acme/widget", repository_url="github.com/acme/widget")
        other = RepositoryEntity(id="2", repository_name="acme/gadget", repository_url="github.com/acme/gadget")
        again = RepositoryEntity(id="3", repository_name="acme/widget", repository_url="github.com/acme/widget")

        self.assertEqual(find_duplicate_records([first, other, again]), [again])
