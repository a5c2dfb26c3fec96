import aiohttp
import logging
from typing import Dict, Any, Optional

from src.domain.config import PipelineConfig
from src.domain.exceptions import RateLimitExceededException, ResponseParseException
from src.domain.models import RepositoryMetadata
from src.infrastructure.acl import GitHubTranslator
from src.infrastructure.http import post_json

logger = logging.getLogger(__name__)

# The GraphQL query fetching the quality signals stored next to the size metrics.
METADATA_QUERY = """
query ($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    defaultBranchRef {
      target {
        ... on Commit {
          history {
            totalCount
          }
        }
      }
    }
    openIssues: issues(states: OPEN) {
      totalCount
    }
    closedIssues: issues(states: CLOSED) {
      totalCount
    }
    languages {
      totalSize
    }
    stargazerCount
    licenseInfo {
      key
    }
    createdAt
    latestRelease {
      publishedAt
    }
    primaryLanguage {
      name
    }
  }
  rateLimit {
    cost
    remaining
    resetAt
  }
}
"""

RATE_LIMIT_FLOOR = 10


class GitHubGraphQLClient:
    """
    Client for interacting with the GitHub GraphQL API.
    Handles authentication, query execution, and rate limit management.
    """

    def __init__(self, config: PipelineConfig):
        self.headers = {
            "Authorization": f"Bearer {config.github_token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": "gomod-size-enricher",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.api_url = config.github_graphql_url
        self.timeout = aiohttp.ClientTimeout(total=config.http_timeout_seconds)
        self.max_retries = config.max_retries

    async def fetch_repository(
        self,
        session: aiohttp.ClientSession,
        owner: str,
        name: str,
    ) -> RepositoryMetadata:
        """
        Fetches the metadata of a single repository.

        GraphQL partial errors (HTTP 200 with some `errors`) are logged and the
        available data is still translated.

        Raises:
            TransportException: when the request keeps failing.
            ResponseParseException: when the body carries no data at all.
            RateLimitExceededException: when the remaining quota is nearly exhausted.
        """
        payload = {
            "query": METADATA_QUERY,
            "variables": {"owner": owner, "name": name},
        }
        data = await post_json(
            session, self.api_url, payload,
            headers=self.headers, timeout=self.timeout, max_retries=self.max_retries,
        )

        if not isinstance(data, dict):
            raise ResponseParseException(f"GitHub returned a non-object body for {owner}/{name}: {type(data).__name__}")

        if data.get('errors'):
            error = data['errors'][0] if isinstance(data['errors'], list) else {}
            error_msg = error.get('message', 'Unknown GraphQL error') if isinstance(error, dict) else str(error)
            if data.get('data') is None:
                raise ResponseParseException(f"GraphQL error for {owner}/{name}: {error_msg}")
            logger.warning(f"GraphQL partial error for {owner}/{name}: {error_msg}")

        body: Dict[str, Any] = data.get('data') or {}
        self._check_rate_limit(body.get('rateLimit'))

        return GitHubTranslator.to_metadata(body.get('repository'))

    @staticmethod
    def _check_rate_limit(rate_limit: Optional[Dict[str, Any]]) -> None:
        if not rate_limit:
            return
        if rate_limit.get('remaining', 100) < RATE_LIMIT_FLOOR:
            raise RateLimitExceededException(reset_at=rate_limit.get('resetAt', ''))
