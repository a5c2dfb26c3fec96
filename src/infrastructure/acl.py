import re
from typing import Any, Dict, List, Optional, Tuple
from src.domain.exceptions import ResponseParseException
from src.domain.models import ManifestDocument, RepositoryMetadata

_REPOSITORY_PATH = re.compile(r"^(?:[a-z+]+://)?(?:[^/]+@)?[^/]+/([^/\s]+)/([^/\s]+?)(?:\.git)?/?$")


def parse_repository_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Splits a host-qualified repository location into (owner, name).

    Accepts "github.com/owner/name" as well as "https://github.com/owner/name.git".
    Returns None when the location does not have that shape.
    """
    if not url:
        return None
    match = _REPOSITORY_PATH.match(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def _nested(raw: Optional[Dict[str, Any]], *keys: str) -> Any:
    value: Any = raw
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _count(raw: Optional[Dict[str, Any]], *keys: str) -> str:
    value = _nested(raw, *keys)
    return str(value) if isinstance(value, int) else "0"


def _text(raw: Optional[Dict[str, Any]], *keys: str) -> str:
    value = _nested(raw, *keys)
    return value if isinstance(value, str) else ""


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub GraphQL repository nodes into RepositoryMetadata.
    """

    @staticmethod
    def to_metadata(raw_node: Optional[Dict[str, Any]]) -> RepositoryMetadata:
        """
        Transforms the `repository` node of a metadata query into RepositoryMetadata.

        Nullable branches (no default branch, no license, no release) become
        zero counts or empty strings rather than errors.
        """
        if raw_node is not None and not isinstance(raw_node, dict):
            raise ResponseParseException(f"Expected a repository object, got {type(raw_node).__name__}")

        language_size = _nested(raw_node, 'languages', 'totalSize')

        return RepositoryMetadata(
            open_issue_count=_count(raw_node, 'openIssues', 'totalCount'),
            closed_issue_count=_count(raw_node, 'closedIssues', 'totalCount'),
            commit_count=_count(raw_node, 'defaultBranchRef', 'target', 'history', 'totalCount'),
            stargazer_count=_count(raw_node, 'stargazerCount'),
            creation_date=_text(raw_node, 'createdAt'),
            license_info=_text(raw_node, 'licenseInfo', 'key'),
            latest_release=_text(raw_node, 'latestRelease', 'publishedAt'),
            primary_language=_text(raw_node, 'primaryLanguage', 'name'),
            language_byte_size=language_size if isinstance(language_size, int) else 0,
        )


class SourceGraphTranslator:
    """
    Anti-corruption layer for SourceGraph GraphQL responses.
    """

    @staticmethod
    def to_repository_names(data: Dict[str, Any]) -> List[str]:
        repositories = _nested(data, 'data', 'search', 'results', 'repositories')
        if repositories is None:
            raise ResponseParseException("SourceGraph search response has no repositories list.")
        return [repo['name'] for repo in repositories if isinstance(repo, dict) and repo.get('name')]

    @staticmethod
    def to_blob_content(data: Dict[str, Any]) -> Optional[str]:
        """Returns the manifest text, or None when the repository has no such file."""
        content = _nested(data, 'data', 'repository', 'defaultBranch', 'target', 'commit', 'blob', 'content')
        return content if isinstance(content, str) else None

    @staticmethod
    def to_manifest_document(data: Dict[str, Any]) -> Optional[ManifestDocument]:
        content = SourceGraphTranslator.to_blob_content(data)
        if content is None:
            return None
        ref = _nested(data, 'data', 'repository', 'defaultBranch')
        branch = _nested(ref, 'displayName')
        if not isinstance(branch, str) or not branch:
            name = _nested(ref, 'name')
            branch = name.removeprefix('refs/heads/') if isinstance(name, str) else ''
        return ManifestDocument(content=content, branch=branch)
