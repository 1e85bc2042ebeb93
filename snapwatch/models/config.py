"""Configuration models for snapwatch."""

from __future__ import annotations

import json
import os
from collections import Counter
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from snapwatch.url_utils import normalize_url, target_id_from_url


class DuplicateTargetError(ValueError):
    """Two desired targets (or viewports) resolve to the same comparison key."""

    def __init__(self, duplicates: list[str]):
        self.duplicates = duplicates
        listing = "\n".join(f"  - {d}" for d in duplicates)
        super().__init__(f"Duplicate targets detected in configuration. Each must be unique:\n{listing}")


class ViewportConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "desktop"
    width: int = Field(default=1280, gt=0)
    height: int = Field(default=720, gt=0)

    @property
    def key(self) -> str:
        return f"{self.name}_{self.width}x{self.height}"

    @property
    def label(self) -> str:
        return f"{self.name} ({self.width}x{self.height})"


class TargetConfig(BaseModel):
    url: str
    tolerance_percent: float = Field(default=0.0, ge=0.0)
    wait_time_ms: int = Field(default=3000, ge=0)
    mask_selectors: list[str] = Field(default_factory=list)
    baseline_version: int = Field(default=0, ge=0)
    viewports: list[ViewportConfig] = Field(
        default_factory=lambda: [ViewportConfig(name="desktop", width=1280, height=720)],
        min_length=1,
    )

    @property
    def target_id(self) -> str:
        return target_id_from_url(self.url)


class Recipient(BaseModel):
    """Owner of a set of targets; value-comparable so it can key a dict."""
    model_config = ConfigDict(frozen=True)

    email: str
    handle: str = Field(default="", validate_default=True)

    @field_validator("handle")
    @classmethod
    def default_handle(cls, v: str, info: ValidationInfo) -> str:
        if v:
            return v
        return info.data.get("email", "").split("@", 1)[0]


class RecipientConfig(BaseModel):
    email: str
    handle: str = ""
    targets: list[TargetConfig] = Field(default_factory=list)

    @property
    def recipient(self) -> Recipient:
        return Recipient(email=self.email, handle=self.handle)


class SmtpConfig(BaseModel):
    host: str = "localhost"
    port: int = 465
    username: str = ""
    password: str = ""
    sender: str = ""
    use_ssl: Optional[bool] = None

    @field_validator("password", mode="before")
    @classmethod
    def resolve_env_password(cls, v: str) -> str:
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v

    def model_post_init(self, __context) -> None:
        if self.use_ssl is None:
            self.use_ssl = self.port == 465
        if not self.sender:
            self.sender = self.username


class MonitorConfig(BaseModel):
    # Desired state
    recipients: list[RecipientConfig] = Field(default_factory=list)

    # Comparison sensitivity (0..1), shared by every target
    diff_threshold: float = Field(default=0.1, ge=0.0, le=1.0)

    # Execution limits
    max_parallel_captures: int = Field(default=2, ge=1)
    max_parallel_reconciles: int = Field(default=4, ge=1)
    navigation_timeout_ms: int = 60000

    # Storage
    state_dir: str = ".snapwatch"

    # Notification
    notify_on_baseline: bool = True
    smtp: Optional[SmtpConfig] = None

    # Reporting
    report_output_dir: str = "./snapwatch-reports"

    def iter_targets(self):
        """Yield (recipient, target) pairs in declaration order."""
        for entry in self.recipients:
            recipient = entry.recipient
            for target in entry.targets:
                yield recipient, target

    def validate_unique_targets(self) -> None:
        """Raise DuplicateTargetError if any comparison key is declared twice."""
        url_counts = Counter(normalize_url(t.url) for _, t in self.iter_targets())
        duplicates = [url for url, count in url_counts.items() if count > 1]

        for _, target in self.iter_targets():
            vp_counts = Counter(vp.key for vp in target.viewports)
            duplicates.extend(
                f"{target.url} [{key}]" for key, count in vp_counts.items() if count > 1
            )

        if duplicates:
            raise DuplicateTargetError(duplicates)

    @classmethod
    def load(cls, path: str | Path) -> "MonitorConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(exclude_none=True), f, indent=2)
