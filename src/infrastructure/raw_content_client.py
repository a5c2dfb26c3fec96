import aiohttp

from src.domain.config import PipelineConfig
from src.infrastructure.http import get_text


class RawContentClient:
    """Fetches inner go.mod files over plain HTTP GET."""

    def __init__(self, config: PipelineConfig):
        self.timeout = aiohttp.ClientTimeout(total=config.http_timeout_seconds)
        self.max_retries = config.max_retries

    async def fetch_text(self, session: aiohttp.ClientSession, url: str) -> str:
        return await get_text(session, url, timeout=self.timeout, max_retries=self.max_retries)
