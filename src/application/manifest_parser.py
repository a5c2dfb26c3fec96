"""
Pure parsing of go.mod documents: required modules and `replace` directives
pointing at inner go.mod files of the same repository.
"""
import logging
import posixpath
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)

REQUIRE_KEYWORD = "require"
REDIRECT_KEYWORD = "replace"
ARROW = "=>"
COMMENT = "//"
MANIFEST_FILENAME = "go.mod"


def _strip_comment(line: str) -> str:
    index = line.find(COMMENT)
    return line if index < 0 else line[:index]


def _directive_lines(text: str, keyword: str) -> Iterator[str]:
    """
    Yields the bodies of every `keyword` directive, one per entry, in line order.

    Handles both the block form `keyword ( ... )` and the single-line form.
    """
    in_block = False
    for raw_line in text.splitlines():
        line = _strip_comment(raw_line).strip()
        if not line:
            continue

        if in_block:
            if line.startswith(")"):
                in_block = False
                continue
            yield line
            continue

        head = line.split(None, 1)[0]
        if head == keyword or line.startswith(keyword + "("):
            rest = line[len(keyword):].strip()
            if rest.startswith("("):
                rest = rest[1:].strip()
                if rest.endswith(")"):
                    # `keyword ( entry )` written on one line
                    rest = rest[:-1].strip()
                    if rest:
                        yield rest
                    continue
                in_block = True
                if rest:
                    yield rest
                continue
            if rest:
                yield rest


def has_inner_manifests(text: str) -> bool:
    """True when the manifest mentions the redirect keyword at least once."""
    return REDIRECT_KEYWORD in (text or "")


def parse_dependencies(text: str) -> List[str]:
    """
    Returns the module paths declared by `require` directives, in manifest order.

    Versions and `// indirect` markers are dropped; indirect requirements still count.
    """
    dependencies: List[str] = []
    for entry in _directive_lines(text or "", REQUIRE_KEYWORD):
        module = entry.split()[0].strip('"')
        if module:
            dependencies.append(module)
    return dependencies


def redirect_target(entry: str) -> Optional[str]:
    """
    Extracts the local path a `replace` entry points at, e.g.
    "example.com/a => ./pkg/a" -> "./pkg/a".

    Returns None for entries without an arrow and for module-to-module
    replacements such as "=> github.com/fork/mod v1.2.3".
    """
    _, arrow, right = entry.partition(ARROW)
    if not arrow:
        logger.debug(f"Ignoring redirect line without '{ARROW}': {entry!r}")
        return None

    target = "".join(right.split())
    if not target.startswith("."):
        return None
    return target


def resolve_module_dir(target: str, module_dir: str = "") -> Optional[str]:
    """
    Resolves a redirect target against the directory of the manifest declaring it.

    Returns the repository-relative directory, or None when the target is the
    declaring directory itself or lies outside the repository.
    """
    path = posixpath.normpath(posixpath.join(module_dir or ".", target))
    if path == "." or path == ".." or path.startswith("../") or path.startswith("/"):
        return None
    return path


def parse_inner_manifest_dirs(text: str, module_dir: str = "") -> List[str]:
    """Repository-relative directories of the inner manifests a manifest redirects to."""
    if not has_inner_manifests(text):
        return []

    directories: List[str] = []
    for entry in _directive_lines(text, REDIRECT_KEYWORD):
        target = redirect_target(entry)
        if target is None:
            continue
        path = resolve_module_dir(target, module_dir)
        if path is not None:
            directories.append(path)
    return directories


def inner_manifest_url(repository: str, path: str, raw_base_url: str, branch: str,
                       manifest_filename: str = MANIFEST_FILENAME) -> str:
    return "/".join([raw_base_url.rstrip("/"), repository.strip("/"), branch, path, manifest_filename])


def parse_inner_manifests(
    text: str,
    repository: str,
    raw_base_url: str,
    branch: str,
    manifest_filename: str = MANIFEST_FILENAME,
    module_dir: str = "",
) -> List[str]:
    """
    Composes the fetchable locations of the inner manifests reached through `replace`.

    Args:
        text (str): Manifest content.
        repository (str): "owner/name" of the repository holding the manifest.
        raw_base_url (str): Raw-content host, e.g. "https://raw.githubusercontent.com".
        branch (str): Branch the inner manifests are read from.
        manifest_filename (str): Filename appended to each redirect target.
        module_dir (str): Repository-relative directory of this manifest; "" for the root.

    Returns:
        List[str]: One URL per usable redirect directive, in manifest order.
    """
    return [
        inner_manifest_url(repository, path, raw_base_url, branch, manifest_filename)
        for path in parse_inner_manifest_dirs(text, module_dir)
    ]
