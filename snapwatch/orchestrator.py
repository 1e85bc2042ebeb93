"""Run coordinator — validates desired state, then captures and reconciles every
(target, viewport) before the aggregate, notify and report stages."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from snapwatch.alerts.aggregator import aggregate, collect_baseline_events
from snapwatch.baseline.reconciler import Reconciler, classify
from snapwatch.capture.capturer import Capturer, CaptureResult, PlaywrightCapturer
from snapwatch.models.baseline import BaselineRecord
from snapwatch.models.config import MonitorConfig, Recipient, TargetConfig, ViewportConfig
from snapwatch.models.outcome import Action, BaselineState, Outcome, OutcomeEntry, RunResult
from snapwatch.notify.notifier import ConsoleNotifier, Notifier, SmtpNotifier
from snapwatch.reporter.json_report import generate_json_report
from snapwatch.storage.base import BaselineStore, ImageStore, StorageError
from snapwatch.storage.baseline_store import JsonBaselineStore
from snapwatch.storage.image_store import LocalImageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileTask:
    recipient: Recipient
    target: TargetConfig
    viewport: ViewportConfig

    @property
    def label(self) -> str:
        return f"{self.target.url} [{self.viewport.name}]"


class Orchestrator:
    """Coordinates one monitoring run across all configured targets."""

    def __init__(
        self,
        config: MonitorConfig,
        capturer: Optional[Capturer] = None,
        baseline_store: Optional[BaselineStore] = None,
        image_store: Optional[ImageStore] = None,
        notifier: Optional[Notifier] = None,
        dry_run: bool = False,
    ):
        self.config = config
        self.state_dir = Path(config.state_dir)
        self.run_id = f"run_{uuid.uuid4().hex[:8]}"

        self.baseline_store = baseline_store or JsonBaselineStore(self.state_dir / "baselines.json")
        self.image_store = image_store or LocalImageStore(self.state_dir / "images")
        self.capturer = capturer or PlaywrightCapturer(navigation_timeout_ms=config.navigation_timeout_ms)

        if notifier is None:
            if dry_run or config.smtp is None or not isinstance(self.image_store, LocalImageStore):
                if not dry_run:
                    logger.warning("No SMTP settings configured; alerts will be printed instead of emailed")
                notifier = ConsoleNotifier()
            else:
                notifier = SmtpNotifier(config.smtp, self.image_store)
        self.notifier = notifier

        self.reconciler = Reconciler(
            self.baseline_store, self.image_store,
            threshold=config.diff_threshold, run_id=self.run_id,
        )

    def run(self) -> dict:
        """Execute a complete monitoring run."""
        return asyncio.run(self._run_pipeline())

    def plan_tasks(self) -> list[ReconcileTask]:
        """One task per (target, viewport), in configuration order."""
        return [
            ReconcileTask(recipient=recipient, target=target, viewport=viewport)
            for recipient, target in self.config.iter_targets()
            for viewport in target.viewports
        ]

    async def _run_pipeline(self) -> dict:
        start = time.time()
        started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ")
        logger.info("=== Starting snapwatch run %s ===", self.run_id)

        # Stage 1: Validate (no capture or write happens before this passes)
        logger.info("--- Stage 1: Validate ---")
        self.config.validate_unique_targets()
        tasks = self.plan_tasks()
        logger.info("--- Stage 1 complete: %d target/viewport pair(s) ---", len(tasks))

        # Stage 2: Capture & reconcile, one bounded task per tuple
        logger.info("--- Stage 2: Capture & reconcile ---")
        stage_start = time.time()
        entries = await self._evaluate(tasks)
        failed = sum(1 for e in entries if e.outcome.state == BaselineState.CAPTURE_FAILED)
        logger.info("--- Stage 2 complete: %d captured, %d failed in %.1fs ---",
                    len(entries) - failed, failed, time.time() - stage_start)

        # Stage 3: Aggregate (join point: every reconciliation has finished)
        logger.info("--- Stage 3: Aggregate ---")
        pairs = [(e.recipient, e.outcome) for e in entries]
        batches = aggregate(pairs)
        notices = collect_baseline_events(pairs) if self.config.notify_on_baseline else {}

        # Stage 4: Notify
        logger.info("--- Stage 4: Notify ---")
        sent = self.notifier.notify(batches) if batches else 0
        if notices:
            self.notifier.notify_baselines(notices)
        logger.info("--- Stage 4 complete: %d alert notification(s) sent ---", sent)

        # Stage 5: Report
        duration = time.time() - start
        outcomes = [e.outcome for e in entries]
        run_result = RunResult(
            run_id=self.run_id,
            started_at=started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            duration_seconds=round(duration, 2),
            total=len(outcomes),
            adopted=sum(1 for o in outcomes if o.action == Action.ADOPT_BASELINE),
            compared=sum(1 for o in outcomes if o.action == Action.COMPARE),
            skipped=sum(1 for o in outcomes if o.action == Action.SKIP),
            regressions=sum(1 for o in outcomes if o.is_regression),
            recipients_alerted=len(batches),
            entries=entries,
        )
        report_path = Path(self.config.report_output_dir) / f"report_{self.run_id}.json"
        generate_json_report(run_result, report_path)
        logger.info("=== Run complete in %.1fs (report: %s) ===", duration, report_path)

        return {
            "run_id": self.run_id,
            "duration": run_result.duration_seconds,
            "results": {
                "total": run_result.total,
                "adopted": run_result.adopted,
                "compared": run_result.compared,
                "skipped": run_result.skipped,
                "regressions": run_result.regressions,
            },
            "alerts": {
                "recipients": len(batches),
                "issues": sum(len(b.outcomes) for b in batches.values()),
                "sent": sent,
            },
            "report": str(report_path),
        }

    async def _evaluate(self, tasks: list[ReconcileTask]) -> list[OutcomeEntry]:
        """Capture and reconcile every task; at most ``max_parallel_captures`` rasters are alive at once."""
        if not tasks:
            return []
        capture_slots = asyncio.Semaphore(self.config.max_parallel_captures)
        reconcile_slots = asyncio.Semaphore(self.config.max_parallel_reconciles)

        async def _evaluate_one(task: ReconcileTask, launch_error: Optional[Exception] = None) -> OutcomeEntry:
            async with capture_slots:
                if launch_error is not None:
                    capture = CaptureResult(image=None, diagnostics=[f"Capture failed: {launch_error}"])
                else:
                    capture = await self._capture_one(task)
                async with reconcile_slots:
                    outcome = await asyncio.to_thread(self.reconcile_task, task, capture)
            return OutcomeEntry(recipient=task.recipient, outcome=outcome)

        try:
            await self.capturer.__aenter__()
        except Exception as e:
            logger.error("Browser failed to start: %s", e)
            return list(await asyncio.gather(*(_evaluate_one(t, e) for t in tasks)))
        try:
            return list(await asyncio.gather(*(_evaluate_one(t) for t in tasks)))
        finally:
            await self.capturer.__aexit__(None, None, None)

    async def _capture_one(self, task: ReconcileTask) -> CaptureResult:
        try:
            return await self.capturer.capture(task.target, task.viewport)
        except Exception as e:
            logger.error("Capture crashed for %s: %s", task.label, e)
            return CaptureResult(image=None, diagnostics=[f"Capture failed: {e}"])

    def reconcile_task(self, task: ReconcileTask, capture: CaptureResult) -> Outcome:
        """Reconcile a single (target, viewport); failures stay local to this task."""
        target, viewport = task.target, task.viewport
        record = None
        try:
            record = self.baseline_store.get(target.target_id, viewport.key)
            return self.reconciler.reconcile(
                target, viewport, target.baseline_version, record,
                capture.image, capture.diagnostics, owner=task.recipient.handle,
            )
        except StorageError as e:
            logger.error("Baseline record unavailable for %s: %s", task.label, e)
            return self._failed_outcome(task, capture, f"Baseline record unavailable: {e}", state=None)
        except Exception as e:
            logger.error("Reconciliation crashed for %s: %s", task.label, e)
            state = classify(target.baseline_version, record, capture.ok)
            return self._failed_outcome(task, capture, f"Reconciliation failed: {e}", state=state)

    @staticmethod
    def _failed_outcome(task: ReconcileTask, capture: CaptureResult, message: str, state) -> Outcome:
        return Outcome(
            action=Action.SKIP,
            state=state,
            target_id=task.target.target_id,
            target_url=task.target.url,
            viewport=task.viewport,
            tolerance_percent=task.target.tolerance_percent,
            desired_version=task.target.baseline_version,
            diagnostics=list(capture.diagnostics) + [message],
        )

    def list_baselines(self) -> list[tuple[ReconcileTask, Optional[BaselineRecord], BaselineState]]:
        """Stored record and current state for every configured (target, viewport)."""
        rows = []
        for task in self.plan_tasks():
            record = self.baseline_store.get(task.target.target_id, task.viewport.key)
            rows.append((task, record, classify(task.target.baseline_version, record)))
        return rows
