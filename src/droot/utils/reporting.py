"""Progress reporting for the pull pipeline.

The pipeline never logs directly; it calls a ``PullReporter`` it was given.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

import structlog

from droot.core.exceptions import DrootError
from droot.deploy.models import PullRequest, PullResult, PullStage


class PullReporter:
    """Observer for pipeline progress. Every hook is a no-op by default."""

    def pull_started(self, request: PullRequest) -> None:
        pass

    def stage_started(self, stage: PullStage, **details: Any) -> None:
        pass

    def stage_finished(self, stage: PullStage, **details: Any) -> None:
        pass

    def pull_succeeded(self, result: PullResult) -> None:
        pass

    def pull_failed(
        self, request: PullRequest, stage: PullStage, error: DrootError, duration_ms: Optional[float] = None
    ) -> None:
        pass


class LoggingReporter(PullReporter):
    """Reports progress as structlog events."""

    _STAGE_MESSAGES = {
        PullStage.ACQUIRING: "Downloading",
        PullStage.EXTRACTING: "Extracting archive",
        PullStage.DEPLOYING: "Deploying",
    }

    def __init__(self, logger: Optional[Any] = None):
        self.logger = logger if logger is not None else structlog.get_logger("droot")

    def pull_started(self, request: PullRequest) -> None:
        self.logger.info(
            "Pull started",
            destination=str(request.destination),
            source=request.source,
            strategy=request.strategy.value,
        )

    def stage_started(self, stage: PullStage, **details: Any) -> None:
        message = self._STAGE_MESSAGES.get(stage, stage.value)
        self.logger.info(f"--> {message}", stage=stage.value, **details)

    def stage_finished(self, stage: PullStage, **details: Any) -> None:
        self.logger.debug("Stage finished", stage=stage.value, **details)

    def pull_succeeded(self, result: PullResult) -> None:
        self.logger.info(
            "Pull succeeded",
            deployed_path=str(result.deployed_path),
            bytes=result.bytes_downloaded,
            duration_ms=round(result.duration_ms, 1),
        )

    def pull_failed(
        self, request: PullRequest, stage: PullStage, error: DrootError, duration_ms: Optional[float] = None
    ) -> None:
        self.logger.error(
            "Pull failed",
            stage=stage.value,
            error=str(error),
            code=error.code,
            duration_ms=round(duration_ms, 1) if duration_ms is not None else None,
        )


class CompositeReporter(PullReporter):
    """Fans every hook out to several reporters, in order."""

    def __init__(self, reporters: Iterable[PullReporter]):
        self.reporters: List[PullReporter] = list(reporters)

    def pull_started(self, request: PullRequest) -> None:
        for r in self.reporters:
            r.pull_started(request)

    def stage_started(self, stage: PullStage, **details: Any) -> None:
        for r in self.reporters:
            r.stage_started(stage, **details)

    def stage_finished(self, stage: PullStage, **details: Any) -> None:
        for r in self.reporters:
            r.stage_finished(stage, **details)

    def pull_succeeded(self, result: PullResult) -> None:
        for r in self.reporters:
            r.pull_succeeded(result)

    def pull_failed(
        self, request: PullRequest, stage: PullStage, error: DrootError, duration_ms: Optional[float] = None
    ) -> None:
        for r in self.reporters:
            r.pull_failed(request, stage, error, duration_ms=duration_ms)
