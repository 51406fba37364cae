"""Models for a single pull-and-deploy request."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from droot.core.exceptions import ConfigurationError


S3_SCHEME = "s3"


class Strategy(str, Enum):
    """How the extracted tree is moved into place."""

    MIRROR_SYNC = "mirror-sync"  # rsync into the destination in place
    ATOMIC_SWAP = "atomic-swap"  # fresh sibling slot + symlink repoint

    @classmethod
    def parse(cls, name: Optional[str]) -> "Strategy":
        """Resolve a strategy name, accepting the legacy 'rsync'/'symlink' names.

        An empty name means mirror-sync.
        """
        if name is None or not name.strip():
            return cls.MIRROR_SYNC
        key = name.strip().lower()
        key = STRATEGY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ConfigurationError(
                f"Invalid mode {name}. '--mode' must be 'rsync' or 'symlink'."
            ) from None


STRATEGY_ALIASES: Dict[str, str] = {
    "rsync": Strategy.MIRROR_SYNC.value,
    "symlink": Strategy.ATOMIC_SWAP.value,
}


class PullStage(str, Enum):
    VALIDATED = "validated"
    ACQUIRING = "acquiring"
    EXTRACTING = "extracting"
    DEPLOYING = "deploying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class S3Ref(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


def parse_s3_url(url: str) -> S3Ref:
    """Parse s3://bucket/key URL into an S3Ref.

    Raises ValueError for any other scheme or a missing bucket/key.
    """
    if not url.startswith(f"{S3_SCHEME}://"):
        raise ValueError(f"Not s3 scheme {url}")
    rest = url[len(S3_SCHEME) + 3:]
    parts = rest.split("/", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid s3 URL {url}; expected s3://bucket/key")
    return S3Ref(bucket=parts[0], key=parts[1])


class PullRequest(BaseModel):
    """A validated pull request.

    ``destination`` is always absolute and normalized. ``source`` is always a
    well-formed s3:// URL. ``preserve_ownership`` of None means "preserve when
    running as root".
    """

    model_config = ConfigDict(frozen=True)

    destination: Path
    source: str
    strategy: Strategy = Strategy.MIRROR_SYNC
    preserve_ownership: Optional[bool] = None

    @field_validator("destination", mode="before")
    @classmethod
    def normalize_destination(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("destination is required")
        return Path(os.path.abspath(os.path.expanduser(str(v))))

    @field_validator("source")
    @classmethod
    def check_source(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("source is required")
        parse_s3_url(v)
        return v

    @property
    def s3_ref(self) -> S3Ref:
        return parse_s3_url(self.source)

    @classmethod
    def from_options(
        cls,
        dest: Optional[str],
        src: Optional[str],
        mode: Optional[str] = None,
        same_owner: Optional[bool] = None,
    ) -> "PullRequest":
        """Build a request from raw CLI-style options.

        Raises ConfigurationError for anything a caller has to fix; no
        filesystem or network access happens here.
        """
        if not dest or not src:
            raise ConfigurationError("--src and --dest option required")
        strategy = Strategy.parse(mode)
        try:
            return cls(
                destination=dest,
                source=src,
                strategy=strategy,
                preserve_ownership=same_owner,
            )
        except ValidationError as e:
            messages = "; ".join(_error_message(err) for err in e.errors())
            raise ConfigurationError(messages) from e


def _error_message(err: dict) -> str:
    msg = err.get("msg", "")
    # pydantic prefixes ValueError messages raised inside validators
    return msg.removeprefix("Value error, ")


class PullResult(BaseModel):
    destination: Path
    source: str
    strategy: Strategy
    stage: PullStage = PullStage.SUCCEEDED
    bytes_downloaded: int = 0
    deployed_path: Path
    duration_ms: float = 0.0
    stage_durations_ms: Dict[str, float] = Field(default_factory=dict)
