"""Timing and Prometheus textfile metrics for a pull."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter_ns
from typing import Any, Dict, Optional

import structlog
from prometheus_client import CollectorRegistry, Gauge, write_to_textfile

from droot.core.exceptions import DrootError
from droot.deploy.models import PullRequest, PullResult, PullStage
from droot.utils.reporting import PullReporter

logger = structlog.get_logger()


@dataclass
class PullMetrics:
    start_ns: int = field(default_factory=perf_counter_ns)
    stage_starts: Dict[str, int] = field(default_factory=dict)
    stage_durations_ns: Dict[str, int] = field(default_factory=dict)
    end_ns: int | None = None

    def start_stage(self, name: str) -> None:
        """Mark the start of a stage."""
        self.stage_starts[name] = perf_counter_ns()

    def end_stage(self, name: str) -> None:
        """Mark the end of a stage and record its duration."""
        if name in self.stage_starts:
            self.stage_durations_ns[name] = perf_counter_ns() - self.stage_starts[name]

    def finish(self) -> None:
        self.end_ns = perf_counter_ns()

    @property
    def total_ms(self) -> float:
        end = self.end_ns if self.end_ns is not None else perf_counter_ns()
        return (end - self.start_ns) / 1_000_000.0

    def stages_ms(self) -> Dict[str, float]:
        return {k: v / 1_000_000.0 for k, v in self.stage_durations_ns.items()}


class MetricsReporter(PullReporter):
    """Writes the outcome of one pull to a node-exporter textfile.

    The file is rewritten at the end of every pull, so it always describes the
    most recent attempt for the destination. Durations come from the pipeline's
    own timing. Failing to write the file is logged and never changes the
    outcome of the pull.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.stages_ms: Dict[str, float] = {}
        self.registry: Optional[CollectorRegistry] = None

    def pull_started(self, request: PullRequest) -> None:
        self.stages_ms = {}

    def stage_finished(self, stage: PullStage, duration_ms: Optional[float] = None, **details: Any) -> None:
        if duration_ms is not None:
            self.stages_ms[stage.value] = duration_ms

    def pull_succeeded(self, result: PullResult) -> None:
        self._write(
            destination=str(result.destination),
            strategy=result.strategy.value,
            success=True,
            failed_stage=None,
            duration_ms=result.duration_ms,
            stages_ms=result.stage_durations_ms,
            bytes_downloaded=result.bytes_downloaded,
        )

    def pull_failed(
        self, request: PullRequest, stage: PullStage, error: DrootError, duration_ms: Optional[float] = None
    ) -> None:
        self._write(
            destination=str(request.destination),
            strategy=request.strategy.value,
            success=False,
            failed_stage=error.code or stage.value,
            duration_ms=duration_ms or 0.0,
            stages_ms=self.stages_ms,
            bytes_downloaded=None,
        )

    def _write(
        self,
        destination: str,
        strategy: str,
        success: bool,
        failed_stage: Optional[str],
        duration_ms: float,
        stages_ms: Dict[str, float],
        bytes_downloaded: Optional[int],
    ) -> None:
        registry = CollectorRegistry()
        labels = {"destination": destination, "strategy": strategy}
        names = list(labels)
        now = time.time()

        Gauge("droot_pull_success", "1 if the last pull succeeded, else 0", names, registry=registry).labels(
            **labels
        ).set(1 if success else 0)
        Gauge("droot_pull_last_run_timestamp_seconds", "Unix time the last pull finished", names, registry=registry).labels(
            **labels
        ).set(now)
        Gauge("droot_pull_duration_seconds", "Wall time of the last pull", names, registry=registry).labels(
            **labels
        ).set(duration_ms / 1000.0)

        stage_gauge = Gauge(
            "droot_pull_stage_duration_seconds",
            "Wall time of each stage of the last pull",
            names + ["stage"],
            registry=registry,
        )
        for stage, ms in stages_ms.items():
            stage_gauge.labels(stage=stage, **labels).set(ms / 1000.0)

        if success:
            Gauge(
                "droot_pull_last_success_timestamp_seconds",
                "Unix time of the last successful pull",
                names,
                registry=registry,
            ).labels(**labels).set(now)
            Gauge("droot_pull_downloaded_bytes", "Size of the downloaded archive", names, registry=registry).labels(
                **labels
            ).set(bytes_downloaded or 0)
        else:
            Gauge(
                "droot_pull_failure",
                "Set to 1 for the stage the last pull failed in",
                names + ["stage"],
                registry=registry,
            ).labels(stage=failed_stage, **labels).set(1)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_to_textfile(str(self.path), registry)
        except OSError as e:
            logger.error("Failed to write metrics textfile", path=str(self.path), error=str(e))
            return
        self.registry = registry
