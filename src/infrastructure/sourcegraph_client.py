import aiohttp
import logging
from typing import List, Optional

from src.domain.config import PipelineConfig
from src.domain.exceptions import ResponseParseException
from src.domain.models import ManifestDocument
from src.infrastructure.acl import SourceGraphTranslator
from src.infrastructure.http import post_json

logger = logging.getLogger(__name__)

SEARCH_QUERY = """
query ($search: String!) {
  search(query: $search, version: V2) {
    results {
      repositories {
        name
      }
    }
  }
}
"""

BLOB_QUERY = """
query ($name: String!, $path: String!) {
  repository(name: $name) {
    defaultBranch {
      name
      displayName
      target {
        commit {
          blob(path: $path) {
            content
          }
        }
      }
    }
  }
}
"""


class SourceGraphClient:
    """
    Client for the SourceGraph GraphQL API: repository discovery and
    retrieval of the outer go.mod through its content-blob query.
    """

    def __init__(self, config: PipelineConfig):
        self.headers = {"Content-Type": "application/json"}
        self.api_url = config.sourcegraph_graphql_url
        self.manifest_filename = config.manifest_filename
        self.timeout = aiohttp.ClientTimeout(total=config.http_timeout_seconds)
        self.max_retries = config.max_retries

    @staticmethod
    def build_search_query(count: int) -> str:
        return f"lang:go select:repo repohasfile:go.mod count:{count}"

    async def search_repositories(self, session: aiohttp.ClientSession, count: int) -> List[str]:
        """Returns host-qualified names such as "github.com/owner/name"."""
        payload = {"query": SEARCH_QUERY, "variables": {"search": self.build_search_query(count)}}
        data = await post_json(
            session, self.api_url, payload,
            headers=self.headers, timeout=self.timeout, max_retries=self.max_retries,
        )
        self._raise_on_errors(data)
        names = SourceGraphTranslator.to_repository_names(data)
        logger.info(f"SourceGraph returned {len(names)} repositories for count={count}.")
        return names

    async def fetch_manifest(self, session: aiohttp.ClientSession, repository_url: str) -> Optional[ManifestDocument]:
        """Fetches the outer go.mod of `repository_url` and its default branch; None when the file is absent."""
        payload = {"query": BLOB_QUERY, "variables": {"name": repository_url, "path": self.manifest_filename}}
        data = await post_json(
            session, self.api_url, payload,
            headers=self.headers, timeout=self.timeout, max_retries=self.max_retries,
        )
        self._raise_on_errors(data)
        return SourceGraphTranslator.to_manifest_document(data)

    @staticmethod
    def _raise_on_errors(data) -> None:
        if not isinstance(data, dict):
            raise ResponseParseException(f"SourceGraph returned a non-object body: {type(data).__name__}")
        if data.get('errors') and data.get('data') is None:
            raise ResponseParseException(data['errors'][0].get('message', 'Unknown GraphQL error'))
