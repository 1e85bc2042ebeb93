"""Baseline record data structures."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BaselineRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    baseline_version: int = Field(default=0, ge=0)
    baseline_image_ref: Optional[str] = None  # image store reference of the accepted baseline
    updated_at: str = ""  # ISO timestamp
    run_id: str = ""

    @property
    def has_image(self) -> bool:
        return bool(self.baseline_image_ref)


class BaselineStoreDocument(BaseModel):
    last_updated: str = ""
    records: dict[str, BaselineRecord] = Field(default_factory=dict)
    # key format: "{target_id}__{viewport_key}"
