import logging
from collections import deque
from typing import Deque, List, Optional, Set, Tuple

import aiohttp

from src.application.deduplicator import deduplicate
from src.application.manifest_parser import (
    inner_manifest_url,
    parse_dependencies,
    parse_inner_manifest_dirs,
)
from src.domain.config import PipelineConfig
from src.domain.exceptions import EnrichmentException
from src.domain.models import Resolution
from src.infrastructure.raw_content_client import RawContentClient

logger = logging.getLogger(__name__)


class DependencyGraphResolver:
    """
    Builds the deduplicated dependency list of one repository from its outer
    go.mod plus the inner go.mod files its `replace` directives point at.

    Inner manifests are followed `max_depth` levels deep (one by default) and
    fetched sequentially; one unreachable inner manifest never stops the others.
    """

    def __init__(self, raw_client: RawContentClient, config: PipelineConfig):
        self.raw_client = raw_client
        self.raw_base_url = config.raw_content_base_url
        self.branch = config.default_branch
        self.manifest_filename = config.manifest_filename
        self.max_depth = config.inner_manifest_depth

    def _url(self, repository: str, path: str, branch: str) -> str:
        return inner_manifest_url(repository, path, self.raw_base_url, branch, self.manifest_filename)

    async def resolve(
        self,
        session: aiohttp.ClientSession,
        repository: str,
        outer_manifest: str,
        branch: Optional[str] = None,
    ) -> Resolution:
        """
        Resolves the dependencies of `repository` ("owner/name").

        Inner manifests are read from `branch`, the repository's default
        branch; the configured `default_branch` is used when it is unknown.

        Returns:
            Resolution: dependencies in manifest line order (outer first, then
            each inner manifest in discovery order), the inner manifest URLs
            visited and those that could not be fetched.
        """
        branch = branch or self.branch
        dependencies: List[str] = parse_dependencies(outer_manifest)
        visited: List[str] = []
        failed: List[str] = []

        seen: Set[str] = set()
        pending: Deque[Tuple[str, int]] = deque()
        if self.max_depth > 0:
            for path in parse_inner_manifest_dirs(outer_manifest):
                pending.append((path, 1))

        while pending:
            path, depth = pending.popleft()
            if path in seen:
                continue
            seen.add(path)

            url = self._url(repository, path, branch)
            visited.append(url)
            try:
                inner_manifest = await self.raw_client.fetch_text(session, url)
            except (EnrichmentException, aiohttp.ClientError) as e:
                logger.warning(f"Could not fetch inner manifest {url} of {repository}: {e}")
                failed.append(url)
                continue

            dependencies.extend(parse_dependencies(inner_manifest))

            if depth < self.max_depth:
                for inner_path in parse_inner_manifest_dirs(inner_manifest, module_dir=path):
                    pending.append((inner_path, depth + 1))

        unique = deduplicate(dependencies)
        logger.info(
            f"Resolved {len(unique)} dependencies for {repository} "
            f"({len(visited)} inner manifests, {len(failed)} unreachable)."
        )
        return Resolution(dependencies=unique, inner_manifests=visited, failed_manifests=failed)
