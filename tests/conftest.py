"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from snapwatch.models.config import (
    MonitorConfig,
    Recipient,
    RecipientConfig,
    TargetConfig,
    ViewportConfig,
)
from snapwatch.storage.baseline_store import JsonBaselineStore
from snapwatch.storage.image_store import LocalImageStore
from tests.helpers import FakeNotifier


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def viewport() -> ViewportConfig:
    return ViewportConfig(name="desktop", width=1280, height=720)


@pytest.fixture
def target(viewport: ViewportConfig) -> TargetConfig:
    return TargetConfig(
        url="https://example.com/pricing",
        tolerance_percent=2.0,
        wait_time_ms=0,
        viewports=[viewport],
    )


@pytest.fixture
def recipient() -> Recipient:
    return Recipient(email="alice@example.com", handle="alice")


@pytest.fixture
def monitor_config(tmp_path: Path, target: TargetConfig) -> MonitorConfig:
    return MonitorConfig(
        recipients=[RecipientConfig(email="alice@example.com", handle="alice", targets=[target])],
        state_dir=str(tmp_path / "state"),
        report_output_dir=str(tmp_path / "reports"),
    )


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def baseline_store(tmp_path: Path) -> JsonBaselineStore:
    return JsonBaselineStore(tmp_path / "state" / "baselines.json")


@pytest.fixture
def image_store(tmp_path: Path) -> LocalImageStore:
    return LocalImageStore(tmp_path / "state" / "images")


@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()
