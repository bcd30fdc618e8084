"""Runtime settings loaded from environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from formdoc.models.enums import MergeStrategy


class Settings(BaseSettings):
    """Settings shared by the loader, extractor, CLI and submission client."""

    metadata_dir: str = "metadata"
    resources_dir: str = "resources/metadata"
    resource_package: str | None = Field(
        default=None,
        description="Importable package holding a metadata/ resource directory, searched first.",
    )
    structure_file: str = "form_structure.yaml"

    key_column: str = "id"
    column_prefix: str = "c_"
    merge_strategy: MergeStrategy = MergeStrategy.UNION

    database_url: str = "sqlite:///formdoc.db"

    submission_endpoint: str | None = None
    submission_timeout: float = Field(default=30.0, gt=0)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FORMDOC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def metadata_path(self) -> Path:
        return Path(self.metadata_dir)

    @property
    def resources_path(self) -> Path:
        return Path(self.resources_dir)
