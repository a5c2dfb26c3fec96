from enum import Enum
from typing import List
from pydantic import BaseModel, Field, ConfigDict, field_validator

PRIMARY_REPOSITORY_TYPE = "primary"


class SizeField(str, Enum):
    """The two size columns a sizing worker may write."""
    ORIGINAL = "original_codebase_size"
    LIBRARY = "library_codebase_size"


class RepositoryEntity(BaseModel):
    """
    Immutable domain model representing one tracked repository.
    Counts and sizes are text-encoded; an empty string means "not computed yet".
    """
    # Enforces immutability: once created, fields cannot be modified.
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable primary key of the record")
    repository_name: str = Field(..., description="owner/name of the repository")
    repository_url: str = Field(..., description="Host-qualified location, e.g. github.com/owner/name")
    repository_type: str = Field(default=PRIMARY_REPOSITORY_TYPE)
    open_issue_count: str = ""
    closed_issue_count: str = ""
    commit_count: str = ""
    stargazer_count: str = ""
    creation_date: str = ""
    license_info: str = ""
    latest_release: str = ""
    primary_language: str = ""
    original_codebase_size: str = ""
    library_codebase_size: str = ""

    @field_validator("original_codebase_size", "library_codebase_size")
    @classmethod
    def _size_is_blank_or_non_negative(cls, value: str) -> str:
        value = (value or "").strip()
        if value and (not value.isdigit()):
            raise ValueError(f"size must be blank or a non-negative integer, got {value!r}")
        return value

    def size_of(self, field: SizeField) -> str:
        return getattr(self, field.value)

    def is_sized(self, field: SizeField) -> bool:
        return self.size_of(field) != ""


class RepositoryMetadata(BaseModel):
    """
    Metadata fields merged into a RepositoryEntity after a GitHub query.
    Missing data translates to zero counts or empty strings.
    """
    model_config = ConfigDict(frozen=True)

    open_issue_count: str = "0"
    closed_issue_count: str = "0"
    commit_count: str = "0"
    stargazer_count: str = "0"
    creation_date: str = ""
    license_info: str = ""
    latest_release: str = ""
    primary_language: str = ""
    language_byte_size: int = 0

    def as_record_fields(self) -> dict:
        fields = self.model_dump(exclude={"language_byte_size"})
        fields["repository_type"] = PRIMARY_REPOSITORY_TYPE
        return fields


class WorkItem(BaseModel):
    """One unit of sizing work: materialize `artifact`, count it, credit `record_id`."""
    model_config = ConfigDict(frozen=True)

    artifact: str
    name: str
    record_id: str
    size_field: SizeField


class ManifestDocument(BaseModel):
    """An outer go.mod and the default branch it was read from."""
    model_config = ConfigDict(frozen=True)

    content: str
    branch: str = Field(default="", description="Default branch name; empty when the index did not report one")


class Resolution(BaseModel):
    """Outcome of resolving one repository's dependency graph."""
    dependencies: List[str] = Field(default_factory=list)
    inner_manifests: List[str] = Field(default_factory=list)
    failed_manifests: List[str] = Field(default_factory=list)


class MetadataReport(BaseModel):
    enriched: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class SizingReport(BaseModel):
    measured: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    total_lines: int = 0

    def merge(self, other: "SizingReport") -> "SizingReport":
        return SizingReport(
            measured=self.measured + other.measured,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
            total_lines=self.total_lines + other.total_lines,
        )


class PipelineReport(BaseModel):
    discovered: int = 0
    duplicates_removed: int = 0
    metadata: MetadataReport = Field(default_factory=MetadataReport)
    primary_sizing: SizingReport = Field(default_factory=SizingReport)
    dependency_sizing: SizingReport = Field(default_factory=SizingReport)
    unresolved_repositories: List[str] = Field(default_factory=list)
