"""
Pydantic models for the validated, immutable runtime configuration.

These models are built once at startup from the merged Dynaconf settings and
are the only form in which configuration reaches the rest of the
application. Instances are frozen.
"""

from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..application.domain import Mirror


class TransferPolicy(BaseModel):
    """Network behaviour shared by every HTTP request of a run."""

    model_config = ConfigDict(frozen=True)

    follow_redirects: bool = True
    retry_attempts: int = Field(default=5, ge=0)
    retry_delay: float = Field(default=5.0, ge=0)
    connect_timeout: float = Field(default=30.0, gt=0)
    read_timeout: Optional[float] = Field(default=None, gt=0)
    chunk_size: int = Field(default=1024 * 1024, gt=0)
    progress: bool = True


class BackupSettings(BaseModel):
    """Everything a single backup run needs to know."""

    model_config = ConfigDict(frozen=True)

    dest_dir: Path
    edition: str = Field(min_length=1)
    mirror: str = Field(min_length=1)
    fallback_mirror: Optional[str] = None
    keep_versions: int = Field(default=4, ge=1)
    grab_torrent: bool = True
    dry_run: bool = False
    force_check: bool = False
    log_level: str = "INFO"
    log_timestamps: bool = True
    hash_chunk_size: int = Field(default=1024 * 1024, gt=0)
    transfer: TransferPolicy = TransferPolicy()

    @field_validator("dest_dir")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("fallback_mirror")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @property
    def mirrors(self) -> Tuple[Mirror, ...]:
        """Configured mirrors, primary first."""
        urls = [self.mirror, self.fallback_mirror]
        return tuple(
            Mirror(url=url, rank=rank)
            for rank, url in enumerate(u for u in urls if u)
        )
