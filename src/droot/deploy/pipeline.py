"""Pull pipeline: acquire, extract, deploy.

One ``run`` call is one best-effort attempt. Stages run strictly in order, a
failure in any of them stops the pull, and the scratch file and directory are
removed on every exit path.
"""

from __future__ import annotations

from contextlib import ExitStack
from typing import Callable, Optional

from droot.core.config import Settings
from droot.core.exceptions import (
    AcquisitionFailed,
    DeploymentFailed,
    DrootError,
    ExtractionFailed,
    StageError,
)
from droot.deploy.archive import Extractor, TarGzExtractor, extract
from droot.deploy.fetch import Downloader, S3Downloader, acquire
from droot.deploy.models import PullRequest, PullResult, PullStage
from droot.deploy.strategies import (
    Deployer,
    Repointer,
    RsyncTreeSyncer,
    SymlinkRepointer,
    TreeSyncer,
    build_deployer,
)
from droot.deploy.transient import transient_artifact, transient_tree
from droot.utils.pull_metrics import PullMetrics
from droot.utils.reporting import PullReporter


class PullPipeline:
    """Runs pull requests against a fixed set of collaborators."""

    def __init__(
        self,
        downloader: Downloader,
        extractor: Optional[Extractor] = None,
        syncer: Optional[TreeSyncer] = None,
        repointer: Optional[Repointer] = None,
        reporter: Optional[PullReporter] = None,
        tmp_dir: Optional[str] = None,
        create_destination: bool = True,
    ):
        self.downloader = downloader
        self.extractor = extractor or TarGzExtractor()
        self.syncer = syncer or RsyncTreeSyncer()
        self.repointer = repointer or SymlinkRepointer()
        self.reporter = reporter or PullReporter()
        self.tmp_dir = tmp_dir
        self.create_destination = create_destination

    @classmethod
    def from_settings(cls, settings: Settings, reporter: Optional[PullReporter] = None) -> "PullPipeline":
        return cls(
            downloader=S3Downloader.from_settings(settings),
            syncer=RsyncTreeSyncer(settings.rsync_path, settings.rsync_options_list),
            reporter=reporter,
            tmp_dir=settings.tmp_dir,
            create_destination=settings.create_destination,
        )

    def deployer_for(self, request: PullRequest) -> Deployer:
        return build_deployer(
            request.strategy,
            self.syncer,
            repointer=self.repointer,
            create_destination=self.create_destination,
        )

    def run(self, request: PullRequest) -> PullResult:
        """Pull ``request.source`` and deploy it at ``request.destination``.

        Raises:
            ConfigurationError: the request cannot be served; nothing was allocated
            AcquisitionFailed, ExtractionFailed, DeploymentFailed: a stage failed
        """
        metrics = PullMetrics()
        stage = PullStage.VALIDATED
        self.reporter.pull_started(request)
        try:
            deployer = self.deployer_for(request)
            deployer.preflight(request.destination)

            with ExitStack() as scratch:
                stage = PullStage.ACQUIRING
                artifact = self._guard(
                    lambda e: AcquisitionFailed(request.source, e),
                    scratch.enter_context, transient_artifact(self.tmp_dir),
                )
                self._begin(metrics, stage, source=request.source, to=str(artifact))
                bytes_downloaded = self._guard(
                    lambda e: AcquisitionFailed(request.source, e),
                    acquire, request.source, artifact, self.downloader,
                )
                self._end(metrics, stage, bytes=bytes_downloaded)

                stage = PullStage.EXTRACTING
                tree = self._guard(
                    lambda e: ExtractionFailed("Failed to create extraction directory", e),
                    scratch.enter_context, transient_tree(self.tmp_dir),
                )
                self._begin(metrics, stage, archive=str(artifact), to=str(tree))
                self._guard(
                    lambda e: ExtractionFailed(cause=e),
                    extract, artifact, tree, request.preserve_ownership, self.extractor,
                )
                self._end(metrics, stage)

                stage = PullStage.DEPLOYING
                self._begin(
                    metrics, stage,
                    source_dir=str(tree),
                    destination=str(request.destination),
                    strategy=request.strategy.value,
                )
                deployed_path = self._guard(
                    lambda e: DeploymentFailed("Unexpected deployment error", e),
                    deployer.deploy, tree, request.destination,
                )
                self._end(metrics, stage, deployed_path=str(deployed_path))
        except DrootError as e:
            metrics.finish()
            self.reporter.pull_failed(request, stage, e, duration_ms=metrics.total_ms)
            raise

        metrics.finish()
        result = PullResult(
            destination=request.destination,
            source=request.source,
            strategy=request.strategy,
            bytes_downloaded=bytes_downloaded,
            deployed_path=deployed_path,
            duration_ms=metrics.total_ms,
            stage_durations_ms=metrics.stages_ms(),
        )
        self.reporter.pull_succeeded(result)
        return result

    def _begin(self, metrics: PullMetrics, stage: PullStage, **details) -> None:
        metrics.start_stage(stage.value)
        self.reporter.stage_started(stage, **details)

    def _end(self, metrics: PullMetrics, stage: PullStage, **details) -> None:
        metrics.end_stage(stage.value)
        self.reporter.stage_finished(stage, duration_ms=metrics.stages_ms().get(stage.value), **details)

    @staticmethod
    def _guard(wrap: Callable[[Exception], StageError], func, *args):
        """Call a stage, tagging anything unexpected it raises with the stage's error type."""
        try:
            return func(*args)
        except StageError:
            raise
        except Exception as e:
            raise wrap(e) from e
