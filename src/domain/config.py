from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class PipelineConfig(BaseModel):
    """
    Explicit configuration value handed to every component constructor.
    Built once by the composition root; nothing reads the environment after that.
    """
    model_config = ConfigDict(frozen=True)

    github_token: str = Field(..., description="Bearer token for the GitHub GraphQL API")
    database_url: str = Field(..., description="SQLAlchemy async URL of the research store")

    github_graphql_url: str = "https://api.github.com/graphql"
    sourcegraph_graphql_url: str = "https://sourcegraph.com/.api/graphql"
    raw_content_base_url: str = "https://raw.githubusercontent.com"
    default_branch: str = "master"
    manifest_filename: str = "go.mod"

    discovery_count: int = Field(default=100, ge=1)
    metadata_max_in_flight: int = Field(default=20, ge=1)
    primary_workers: int = Field(default=20, ge=1)
    dependency_workers: int = Field(default=50, ge=1)
    inner_manifest_depth: int = Field(default=1, ge=0)

    http_timeout_seconds: float = Field(default=600.0, gt=0)
    max_retries: int = Field(default=5, ge=1)
    # None disables the per-item bound on clone / download / count commands.
    process_timeout_seconds: Optional[float] = Field(default=1800.0, gt=0)

    scratch_dir: Path = Path("tmp")
    git_binary: str = "git"
    go_binary: str = "go"
    gocloc_binary: str = "gocloc"
