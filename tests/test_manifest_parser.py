import unittest

from src.application.manifest_parser import (
    has_inner_manifests,
    parse_dependencies,
    parse_inner_manifest_dirs,
    parse_inner_manifests,
    redirect_target,
)

RAW = "https://raw.githubusercontent.com"

PLAIN_MANIFEST = """module github.com/acme/widget

go 1.21

require (
	github.com/spf13/cobra v1.8.0
	golang.org/x/sync v0.6.0 // indirect
	// github.com/commented/out v1.0.0
)

require github.com/stretchr/testify v1.9.0
"""

MONOREPO_MANIFEST = """module github.com/acme/mono

go 1.21

require (
	github.com/acme/mono/api v0.0.0
	github.com/pkg/errors v0.9.1
)

replace (
	github.com/acme/mono/api => ./api
	github.com/acme/mono/storage => ./internal/storage
)
"""


class TestParseDependencies(unittest.TestCase):
    def test_block_and_single_line_requires_in_order(self) -> None:
        self.assertEqual(
            parse_dependencies(PLAIN_MANIFEST),
            ["github.com/spf13/cobra", "golang.org/x/sync", "github.com/stretchr/testify"],
        )

    def test_redirect_left_hand_side_is_not_counted(self) -> None:
        dependencies = parse_dependencies(MONOREPO_MANIFEST)

        self.assertIn("github.com/acme/mono/api", dependencies)  # also required directly
        self.assertNotIn("github.com/acme/mono/storage", dependencies)

    def test_empty_manifest(self) -> None:
        self.assertEqual(parse_dependencies(""), [])
        self.assertEqual(parse_dependencies("module x\n\ngo 1.21\n"), [])


class TestInnerManifests(unittest.TestCase):
    def test_manifest_without_redirects_has_no_inner_manifests(self) -> None:
        self.assertFalse(has_inner_manifests(PLAIN_MANIFEST))
        self.assertEqual(parse_inner_manifests(PLAIN_MANIFEST, "acme/widget", RAW, "master"), [])

    def test_one_block_with_two_directives_yields_two_locations(self) -> None:
        locations = parse_inner_manifests(MONOREPO_MANIFEST, "acme/mono", RAW, "master")

        self.assertEqual(locations, [
            "https://raw.githubusercontent.com/acme/mono/master/api/go.mod",
            "https://raw.githubusercontent.com/acme/mono/master/internal/storage/go.mod",
        ])
        for location in locations:
            self.assertTrue(location.endswith("go.mod"))

    def test_single_line_redirect(self) -> None:
        text = "module m\n\nreplace example.com/tools => ./tools\n"

        self.assertEqual(parse_inner_manifest_dirs(text), ["tools"])

    def test_line_without_arrow_does_not_crash(self) -> None:
        text = "replace (\n\tgithub.com/acme/broken\n\tgithub.com/acme/ok => ./ok\n)\n"

        self.assertEqual(parse_inner_manifest_dirs(text), ["ok"])
        self.assertIsNone(redirect_target("github.com/acme/broken"))

    def test_module_replacement_is_not_an_inner_manifest(self) -> None:
        text = "replace golang.org/x/net => github.com/fork/net v0.1.0\n"

        self.assertTrue(has_inner_manifests(text))
        self.assertEqual(parse_inner_manifest_dirs(text), [])

    def test_paths_outside_the_repository_are_dropped(self) -> None:
        text = "replace (\n\ta => ../sibling\n\tb => .\n)\n"

        self.assertEqual(parse_inner_manifest_dirs(text), [])

    def test_relative_to_nested_manifest(self) -> None:
        text = "replace example.com/shared => ../shared\n"

        self.assertEqual(parse_inner_manifest_dirs(text, module_dir="services/api"), ["services/shared"])

    def test_interior_whitespace_is_removed(self) -> None:
        self.assertEqual(redirect_target("a =>  ./ pkg/a "), "./pkg/a")
