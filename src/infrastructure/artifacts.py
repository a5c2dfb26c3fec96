import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from src.domain.config import PipelineConfig
from src.domain.exceptions import ProcessException, ResponseParseException
from src.infrastructure.process import run_command

logger = logging.getLogger(__name__)


def clone_url(repository_url: str) -> str:
    """"github.com/owner/name" -> "https://github.com/owner/name.git"."""
    url = repository_url.strip().rstrip("/")
    if "://" not in url:
        url = "https://" + url
    if not url.endswith(".git"):
        url += ".git"
    return url


class GitMaterializer:
    """Materializes a repository with a shallow git clone."""

    def __init__(self, config: PipelineConfig):
        self.git_binary = config.git_binary
        self.timeout = config.process_timeout_seconds

    async def materialize(self, artifact: str, destination: Path) -> Path:
        target = destination / "src"
        await run_command(
            [self.git_binary, "clone", "--depth", "1", "--quiet", clone_url(artifact), str(target)],
            timeout=self.timeout,
        )
        return target


class GoModuleFetcher:
    """
    Downloads a Go module into a module cache private to `destination`.

    GOPATH and GOMODCACHE are passed to the child process only, so concurrent
    downloads never share or mutate each other's search path.
    """

    def __init__(self, config: PipelineConfig, base_env: Optional[Dict[str, str]] = None):
        self.go_binary = config.go_binary
        self.timeout = config.process_timeout_seconds
        self.base_env = dict(base_env) if base_env is not None else dict(os.environ)

    def environment_for(self, destination: Path) -> Dict[str, str]:
        env = dict(self.base_env)
        env["GOPATH"] = str(destination / "gopath")
        env["GOMODCACHE"] = str(destination / "gopath" / "pkg" / "mod")
        # Module caches are read-only by default, which would block cleanup.
        env["GOFLAGS"] = "-modcacherw"
        env["GO111MODULE"] = "on"
        return env

    async def materialize(self, artifact: str, destination: Path) -> Path:
        result = await run_command(
            [self.go_binary, "mod", "download", "-json", f"{artifact}@latest"],
            cwd=destination,
            env=self.environment_for(destination),
            timeout=self.timeout,
        )
        try:
            info: Dict[str, Any] = json.loads(result.stdout)
        except ValueError as e:
            raise ResponseParseException(f"Unreadable 'go mod download' output for {artifact}: {e}") from e

        if info.get("Error"):
            raise ProcessException(f"go mod download {artifact}", 1, info["Error"])
        if not info.get("Dir"):
            raise ResponseParseException(f"'go mod download' reported no directory for {artifact}")
        return Path(info["Dir"])


class GoclocOracle:
    """Counts source lines under a directory with gocloc."""

    def __init__(self, config: PipelineConfig):
        self.gocloc_binary = config.gocloc_binary
        self.timeout = config.process_timeout_seconds

    @staticmethod
    def parse_total(output: str) -> int:
        try:
            report = json.loads(output)
            return int(report["total"]["code"])
        except (ValueError, KeyError, TypeError) as e:
            raise ResponseParseException(f"Unreadable gocloc report: {e}") from e

    async def count_lines(self, path: Path) -> int:
        result = await run_command(
            [self.gocloc_binary, "--output-type=json", str(path)],
            timeout=self.timeout,
        )
        return self.parse_total(result.stdout)
