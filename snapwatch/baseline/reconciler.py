"""Baseline reconciler — decides, per target and viewport, whether to adopt a new
baseline or compare the fresh capture against the accepted one.

State is derived fresh every run from the stored BaselineRecord:

    CAPTURE_FAILED  no image this run               -> SKIP
    NO_BASELINE     nothing adopted yet             -> ADOPT_BASELINE
    STALE           desired version > stored        -> ADOPT_BASELINE
    CURRENT         desired version == stored       -> COMPARE
    AHEAD           desired version < stored        -> COMPARE

Only ADOPT_BASELINE writes to the baseline store, through a compare-and-set
on the exact (target, viewport) key. Storage failures degrade that single
tuple to SKIP with a diagnostic and leave the record untouched.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

from snapwatch.diff.comparator import DEFAULT_THRESHOLD, compare
from snapwatch.models.baseline import BaselineRecord
from snapwatch.models.config import TargetConfig, ViewportConfig
from snapwatch.models.outcome import Action, BaselineState, Evidence, Outcome
from snapwatch.models.raster import Raster
from snapwatch.storage.base import BaselineStore, ImageStore, StorageError
from snapwatch.url_utils import storage_folder

logger = logging.getLogger(__name__)

TRANSITIONS: dict[BaselineState, Action] = {
    BaselineState.CAPTURE_FAILED: Action.SKIP,
    BaselineState.NO_BASELINE: Action.ADOPT_BASELINE,
    BaselineState.STALE: Action.ADOPT_BASELINE,
    BaselineState.CURRENT: Action.COMPARE,
    # TODO: confirm whether a lowered baseline_version should roll back; until then keep the stored one
    BaselineState.AHEAD: Action.COMPARE,
}


def classify(desired_version: int, record: Optional[BaselineRecord], has_capture: bool = True) -> BaselineState:
    """Derive the baseline state for one (target, viewport)."""
    if not has_capture:
        return BaselineState.CAPTURE_FAILED
    if record is None or not record.has_image:
        return BaselineState.NO_BASELINE
    if desired_version > record.baseline_version:
        return BaselineState.STALE
    if desired_version == record.baseline_version:
        return BaselineState.CURRENT
    return BaselineState.AHEAD


class Reconciler:
    """Applies the baseline state machine to one captured image at a time."""

    def __init__(
        self,
        baseline_store: BaselineStore,
        image_store: ImageStore,
        threshold: float = DEFAULT_THRESHOLD,
        run_id: str = "",
    ):
        self.baseline_store = baseline_store
        self.image_store = image_store
        self.threshold = threshold
        self.run_id = run_id

    def reconcile(
        self,
        target: TargetConfig,
        viewport: ViewportConfig,
        desired_version: int,
        record: Optional[BaselineRecord],
        image: Optional[Raster],
        diagnostics: Iterable[str] = (),
        owner: str = "",
    ) -> Outcome:
        """Decide and apply the action for one (target, viewport)."""
        diagnostics = list(diagnostics)
        state = classify(desired_version, record, image is not None)
        action = TRANSITIONS[state]
        label = f"{target.url} [{viewport.name}]"

        context = {
            "state": state,
            "target_id": target.target_id,
            "target_url": target.url,
            "viewport": viewport,
            "tolerance_percent": target.tolerance_percent,
            "desired_version": desired_version,
            "baseline_version": record.baseline_version if record else None,
            "baseline_image_ref": record.baseline_image_ref if record else None,
        }

        if action == Action.SKIP:
            logger.warning("Skipping %s: no screenshot captured", label)
            return Outcome(action=Action.SKIP, diagnostics=diagnostics, **context)

        if state == BaselineState.AHEAD:
            logger.warning(
                "%s: desired baseline version %d is behind stored version %d; comparing against stored baseline",
                label, desired_version, record.baseline_version,
            )

        folder = storage_folder(owner or "shared", target.url)
        if action == Action.ADOPT_BASELINE:
            return self._adopt(label, folder, target, viewport, desired_version, record, image, diagnostics, context)
        return self._compare(label, folder, target, record, image, diagnostics, context)

    def _adopt(
        self, label: str, folder: str, target: TargetConfig, viewport: ViewportConfig,
        desired_version: int, record: Optional[BaselineRecord], image: Raster,
        diagnostics: list[str], context: dict,
    ) -> Outcome:
        logger.info("Setting new baseline for %s (%s)", label, context["state"].value)
        stored_version = record.baseline_version if record else 0
        try:
            ref = self.image_store.store(image, folder)
            new_record = BaselineRecord(
                baseline_version=max(desired_version, stored_version),
                baseline_image_ref=ref,
                updated_at=time.strftime("%Y-%m-%dT%H:%M:%SZ"),
                run_id=self.run_id,
            )
            if not self.baseline_store.compare_and_set(target.target_id, viewport.key, record, new_record):
                self._discard_orphan(target, viewport, ref, record)
                raise StorageError("baseline record was modified by another writer")
        except StorageError as e:
            logger.error("Baseline update failed for %s: %s", label, e)
            return Outcome(
                action=Action.SKIP,
                diagnostics=diagnostics + [f"Baseline update failed: {e}"],
                **context,
            )

        context.update(baseline_version=new_record.baseline_version, baseline_image_ref=ref)
        return Outcome(action=Action.ADOPT_BASELINE, diagnostics=diagnostics, **context)

    def _discard_orphan(
        self, target: TargetConfig, viewport: ViewportConfig, ref: str, previous: Optional[BaselineRecord],
    ) -> None:
        """Remove an image written for a lost compare-and-set unless a record still points at it."""
        try:
            winner = self.baseline_store.get(target.target_id, viewport.key)
            if ref in {r.baseline_image_ref for r in (winner, previous) if r is not None}:
                return
            logger.warning("Discarding orphaned baseline image %s", ref)
            self.image_store.discard(ref)
        except StorageError as e:
            logger.warning("Leaving orphaned baseline image %s: %s", ref, e)

    def _compare(
        self, label: str, folder: str, target: TargetConfig, record: BaselineRecord,
        image: Raster, diagnostics: list[str], context: dict,
    ) -> Outcome:
        logger.info("Comparing %s against baseline v%d", label, record.baseline_version)
        try:
            baseline = self.image_store.fetch(record.baseline_image_ref)
        except StorageError as e:
            logger.error("Could not load baseline for %s: %s", label, e)
            return Outcome(
                action=Action.SKIP,
                diagnostics=diagnostics + [f"Baseline image unavailable: {e}"],
                **context,
            )

        result = compare(baseline, image, self.threshold)
        if not result.comparable:
            logger.warning("%s: nothing to compare after cropping to %dx%d", label, result.width, result.height)
            return Outcome(
                action=Action.COMPARE,
                mismatch_percent=0.0,
                diagnostics=diagnostics + [
                    f"Not comparable: zero-area image after cropping ({result.width}x{result.height})"
                ],
                **context,
            )

        logger.info("  Mismatch: %.2f%% (tolerance: %s%%)", result.mismatch_percent, target.tolerance_percent)
        if result.mismatch_percent <= target.tolerance_percent:
            return Outcome(
                action=Action.COMPARE,
                mismatch_percent=result.mismatch_percent,
                diagnostics=diagnostics,
                **context,
            )

        logger.warning("[REGRESSION] %s: %.2f%% > %s%%, uploading evidence",
                       label, result.mismatch_percent, target.tolerance_percent)
        try:
            evidence = Evidence(
                current_image_ref=self.image_store.store(image, f"{folder}/regressions"),
                diff_image_ref=self.image_store.store(result.diff_image, f"{folder}/diffs"),
            )
        except StorageError as e:
            logger.error("Evidence upload failed for %s: %s", label, e)
            return Outcome(
                action=Action.SKIP,
                mismatch_percent=result.mismatch_percent,
                diagnostics=diagnostics + [f"Evidence upload failed: {e}"],
                **context,
            )

        return Outcome(
            action=Action.COMPARE,
            mismatch_percent=result.mismatch_percent,
            evidence=evidence,
            diagnostics=diagnostics,
            **context,
        )
