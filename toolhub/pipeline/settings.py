"""
Pipeline settings.

Everything the pipeline needs from toolhub.toml, in one validated model.
Production code builds it with ``PipelineSettings.from_config()``; tests
construct it directly with a temporary storage root.
"""

from pathlib import Path

from pydantic import BaseModel, Field, model_validator

MB = 1024 * 1024


class PipelineSettings(BaseModel):
    """Validated pipeline configuration."""
    storage_root: Path = Field(..., description="Directory holding uploads/, processed/ and downloads/")
    retention_seconds: int = Field(240, gt=0, description="Platform-wide download retention window")
    download_chunk_bytes: int = Field(64 * 1024, gt=0)
    sweep_interval_seconds: float = Field(300, gt=0)
    stale_after_seconds: float = Field(1800, gt=0)
    executor_timeout_seconds: float = Field(120, gt=0)
    pdf_max_bytes: int = Field(50 * MB, gt=0)
    image_max_bytes: int = Field(50 * MB, gt=0)
    text_max_bytes: int = Field(10 * MB, gt=0)
    max_files: int = Field(50, ge=2)

    @model_validator(mode="after")
    def _sweep_spares_live_grants(self) -> "PipelineSettings":
        # The backstop sweep ages out download directories too, so it must
        # never reach a grant that is still inside its retention window.
        if self.stale_after_seconds <= self.retention_seconds:
            raise ValueError("cleanup.stale_after_seconds must exceed delivery.retention_seconds")
        return self

    @property
    def max_request_bytes(self) -> int:
        """Largest request body worth reading: a full batch at the biggest per-file limit."""
        largest = max(self.pdf_max_bytes, self.image_max_bytes, self.text_max_bytes)
        return self.max_files * largest + MB

    @classmethod
    def from_config(cls) -> "PipelineSettings":
        """Build settings from toolhub.toml (TOOLHUB_STORAGE_ROOT overrides the root)."""
        from toolhub.core.config import get, get_env, get_path

        override = get_env("TOOLHUB_STORAGE_ROOT")
        return cls(
            storage_root=Path(override) if override else get_path("storage", "root"),
            retention_seconds=get("delivery", "retention_seconds"),
            download_chunk_bytes=get("delivery", "download_chunk_bytes"),
            sweep_interval_seconds=get("cleanup", "sweep_interval_seconds"),
            stale_after_seconds=get("cleanup", "stale_after_seconds"),
            executor_timeout_seconds=get("executor", "timeout_seconds"),
            pdf_max_bytes=get("limits", "pdf_max_mb") * MB,
            image_max_bytes=get("limits", "image_max_mb") * MB,
            text_max_bytes=get("limits", "text_max_mb") * MB,
            max_files=get("limits", "max_files"),
        )
