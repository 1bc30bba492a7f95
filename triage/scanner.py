"""Scan orchestrator.

Drives extraction and scoring for every non-system application, absorbs
per-application failures, and folds the outcomes into one Report.
"""

import collections
import enum
import logging
import queue
import threading
import time
from typing import Dict, Iterable, List, Optional

from .classifier import ClassifierHandle
from .errors import ScanCancelledError, ScoringError
from .feature_extractor import extract_for
from .metadata import MetadataProvider
from .models import InstalledApplication, Report, ScoreResult


logger = logging.getLogger(__name__)


class ScanState(enum.Enum):
    IDLE = "idle"
    ENUMERATING = "enumerating"
    SCANNING = "scanning"
    FINALIZED = "finalized"


class ScanOrchestrator:
    def __init__(
        self,
        classifier: ClassifierHandle,
        provider: MetadataProvider,
        workers: int = 1,
        app_timeout: Optional[float] = None,
    ):
        self.classifier = classifier
        self.provider = provider
        self.workers = max(1, int(workers))
        self.app_timeout = app_timeout
        self.state = ScanState.IDLE

    def _score_one(self, package_name: str, cancel_event: Optional[threading.Event]) -> Optional[ScoreResult]:
        if cancel_event is not None and cancel_event.is_set():
            return None
        features = extract_for(self.provider, package_name)
        try:
            score = self.classifier.score(features)
        except ScoringError as e:
            logger.error(f"Prediction failed for {package_name}: {e}")
            return ScoreResult(package_name, 0.0, failed=True)
        except Exception as e:
            logger.exception(f"Unexpected prediction failure for {package_name}: {e}")
            return ScoreResult(package_name, 0.0, failed=True)
        logger.info(f"Prediction score for {package_name}: {score:.4f}")
        return ScoreResult(package_name, score)

    def _select(self, applications: Iterable[InstalledApplication], exclude_self: str) -> List[str]:
        selected: List[str] = []
        for app in applications:
            if app.is_system_app or app.package_name == exclude_self:
                continue
            selected.append(app.package_name)
        return selected

    def _run_sequential(self, packages: List[str], cancel_event) -> List[ScoreResult]:
        results: List[ScoreResult] = []
        for package_name in packages:
            result = self._score_one(package_name, cancel_event)
            if result is None:
                raise ScanCancelledError(f"Scan cancelled after {len(results)} of {len(packages)} apps")
            results.append(result)
        return results

    def _run_app(self, index: int, package_name: str, cancel_event, finished: "queue.Queue") -> None:
        try:
            result = self._score_one(package_name, cancel_event)
        except Exception as e:
            logger.exception(f"Scan of {package_name} failed: {e}")
            result = ScoreResult(package_name, 0.0, failed=True)
        finished.put((index, result))

    def _run_pooled(self, packages: List[str], cancel_event) -> List[ScoreResult]:
        # Collected by submission index, so completion order never leaks into the report
        results: List[Optional[ScoreResult]] = [None] * len(packages)
        finished: "queue.Queue" = queue.Queue()
        pending = collections.deque(range(len(packages)))
        running: Dict[int, float] = {}  # index -> start time

        while pending or running:
            if cancel_event is not None and cancel_event.is_set():
                raise ScanCancelledError(f"Scan cancelled with {len(pending) + len(running)} apps left")
            while pending and len(running) < self.workers:
                index = pending.popleft()
                running[index] = time.monotonic()
                threading.Thread(
                    target=self._run_app,
                    args=(index, packages[index], cancel_event, finished),
                    name=f"triage-scan-{index}",
                    daemon=True,
                ).start()

            wait = None
            if self.app_timeout is not None:
                wait = max(0.0, min(running.values()) + self.app_timeout - time.monotonic())
            try:
                index, result = finished.get(timeout=wait)
            except queue.Empty:
                pass
            else:
                # Late results from abandoned workers are dropped
                if index in running:
                    del running[index]
                    if result is None:
                        raise ScanCancelledError("Scan cancelled")
                    results[index] = result

            if self.app_timeout is not None:
                now = time.monotonic()
                for index, started in list(running.items()):
                    if now - started >= self.app_timeout:
                        # The hung worker is abandoned and its slot goes to the next app
                        logger.error(f"Scan of {packages[index]} timed out after {self.app_timeout}s")
                        del running[index]
                        results[index] = ScoreResult(packages[index], 0.0, failed=True)
        return results

    def scan(
        self,
        applications: Iterable[InstalledApplication],
        exclude_self: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> Report:
        self.state = ScanState.ENUMERATING
        packages = self._select(applications, exclude_self)
        logger.info(f"Scanning {len(packages)} apps with {self.workers} worker(s)")

        self.state = ScanState.SCANNING
        try:
            if self.workers == 1 and self.app_timeout is None:
                results = self._run_sequential(packages, cancel_event)
            else:
                results = self._run_pooled(packages, cancel_event)
        except ScanCancelledError:
            self.state = ScanState.IDLE
            raise

        flagged = tuple(r for r in results if r.flagged)
        report = Report(total=len(results), flagged=flagged)
        self.state = ScanState.FINALIZED
        logger.info(f"Scan finished: {report.total} scanned, {len(report.flagged)} flagged")
        return report


def run_scan(
    classifier: ClassifierHandle,
    provider: MetadataProvider,
    exclude_self: str = "",
    workers: int = 1,
    app_timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Report:
    """Enumerate the provider's applications and scan them."""
    orchestrator = ScanOrchestrator(classifier, provider, workers=workers, app_timeout=app_timeout)
    orchestrator.state = ScanState.ENUMERATING
    applications = provider.list_applications()
    return orchestrator.scan(applications, exclude_self=exclude_self, cancel_event=cancel_event)
