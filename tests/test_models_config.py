"""Tests for configuration models — defaults, validation, duplicate detection, load/save."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from snapwatch.models.config import (
    DuplicateTargetError,
    MonitorConfig,
    Recipient,
    RecipientConfig,
    SmtpConfig,
    TargetConfig,
    ViewportConfig,
)


def _config(*recipients: RecipientConfig) -> MonitorConfig:
    return MonitorConfig(recipients=list(recipients))


class TestViewportConfig:

    def test_defaults(self):
        vp = ViewportConfig()
        assert (vp.name, vp.width, vp.height) == ("desktop", 1280, 720)
        assert vp.key == "desktop_1280x720"
        assert vp.label == "desktop (1280x720)"

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValidationError):
            ViewportConfig(width=0)


class TestTargetConfig:

    def test_defaults(self):
        t = TargetConfig(url="https://example.com")
        assert t.tolerance_percent == 0.0
        assert t.baseline_version == 0
        assert t.mask_selectors == []
        assert [vp.key for vp in t.viewports] == ["desktop_1280x720"]

    def test_target_id_is_stable_across_spellings(self):
        a = TargetConfig(url="https://Example.com/page/?b=2&a=1")
        b = TargetConfig(url="https://example.com/page?a=1&b=2")
        assert a.target_id == b.target_id
        assert len(a.target_id) == 12

    @pytest.mark.parametrize("field,value", [
        ("tolerance_percent", -1.0),
        ("baseline_version", -1),
        ("viewports", []),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            TargetConfig(url="https://example.com", **{field: value})


class TestRecipient:
    """Recipient identity and handle defaults."""

    def test_handle_defaults_to_local_part(self):
        assert Recipient(email="alice@example.com").handle == "alice"
        assert Recipient(email="alice@example.com", handle="ops").handle == "ops"

    def test_value_equality_and_hashing(self):
        a = Recipient(email="alice@example.com")
        b = Recipient(email="alice@example.com", handle="alice")
        assert a == b
        assert {a: 1}[b] == 1

    def test_recipient_config_builds_recipient(self):
        rc = RecipientConfig(email="bob@example.com")
        assert rc.recipient == Recipient(email="bob@example.com", handle="bob")


class TestSmtpConfig:

    def test_ssl_follows_port(self):
        assert SmtpConfig(port=465).use_ssl is True
        assert SmtpConfig(port=587).use_ssl is False
        assert SmtpConfig(port=587, use_ssl=True).use_ssl is True

    def test_sender_defaults_to_username(self):
        assert SmtpConfig(username="bot@example.com").sender == "bot@example.com"

    def test_password_from_environment(self, monkeypatch):
        monkeypatch.setenv("SNAPWATCH_SMTP_PASSWORD", "s3cret")
        assert SmtpConfig(password="env:SNAPWATCH_SMTP_PASSWORD").password == "s3cret"

    def test_missing_environment_password(self, monkeypatch):
        monkeypatch.delenv("SNAPWATCH_SMTP_PASSWORD", raising=False)
        with pytest.raises(ValidationError, match="SNAPWATCH_SMTP_PASSWORD"):
            SmtpConfig(password="env:SNAPWATCH_SMTP_PASSWORD")


class TestMonitorConfig:
    """Top-level config: ordering, uniqueness, persistence."""

    def test_defaults(self):
        cfg = MonitorConfig()
        assert cfg.diff_threshold == 0.1
        assert cfg.max_parallel_captures == 2
        assert cfg.notify_on_baseline is True
        assert cfg.smtp is None

    def test_iter_targets_preserves_order(self):
        cfg = _config(
            RecipientConfig(email="a@x.com", targets=[TargetConfig(url="https://x.com/1"), TargetConfig(url="https://x.com/2")]),
            RecipientConfig(email="b@x.com", targets=[TargetConfig(url="https://y.com/")]),
        )
        pairs = [(r.email, t.url) for r, t in cfg.iter_targets()]
        assert pairs == [("a@x.com", "https://x.com/1"), ("a@x.com", "https://x.com/2"), ("b@x.com", "https://y.com/")]

    def test_unique_targets_pass(self):
        cfg = _config(RecipientConfig(email="a@x.com", targets=[
            TargetConfig(url="https://x.com/1"),
            TargetConfig(url="https://x.com/2"),
        ]))
        cfg.validate_unique_targets()

    def test_duplicate_url_across_recipients(self):
        cfg = _config(
            RecipientConfig(email="a@x.com", targets=[TargetConfig(url="https://x.com/page")]),
            RecipientConfig(email="b@x.com", targets=[TargetConfig(url="https://X.com/page/")]),
        )
        with pytest.raises(DuplicateTargetError) as exc:
            cfg.validate_unique_targets()
        assert exc.value.duplicates == ["https://x.com/page"]
        assert "https://x.com/page" in str(exc.value)

    def test_duplicate_viewport_within_target(self):
        vp = ViewportConfig(name="mobile", width=375, height=667)
        cfg = _config(RecipientConfig(email="a@x.com", targets=[TargetConfig(url="https://x.com/", viewports=[vp, vp])]))
        with pytest.raises(DuplicateTargetError) as exc:
            cfg.validate_unique_targets()
        assert exc.value.duplicates == ["https://x.com/ [mobile_375x667]"]

    def test_duplicate_error_is_a_value_error(self):
        assert issubclass(DuplicateTargetError, ValueError)

    def test_rejects_threshold_out_of_range(self):
        with pytest.raises(ValidationError):
            MonitorConfig(diff_threshold=1.5)

    def test_save_and_load(self, tmp_path: Path):
        cfg = _config(RecipientConfig(email="a@x.com", targets=[TargetConfig(url="https://x.com/", tolerance_percent=1.5)]))
        path = tmp_path / "nested" / "snapwatch.json"
        cfg.save(path)

        data = json.loads(path.read_text())
        assert "smtp" not in data

        loaded = MonitorConfig.load(path)
        assert loaded == cfg

    def test_load_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            MonitorConfig.load(tmp_path / "absent.json")
