"""Pull-and-deploy pipeline.

- PullPipeline: sequences acquisition, extraction and deployment
- PullRequest/PullResult/Strategy: request and outcome models
- S3Downloader, TarGzExtractor, RsyncTreeSyncer, SymlinkRepointer: default collaborators
"""

from .models import (
    PullRequest,
    PullResult,
    PullStage,
    S3Ref,
    Strategy,
    parse_s3_url,
)
from .archive import TarGzExtractor
from .fetch import S3Downloader
from .strategies import (
    AtomicSwapDeployer,
    MirrorSyncDeployer,
    RsyncTreeSyncer,
    SymlinkRepointer,
    build_deployer,
)
from .pipeline import PullPipeline

__all__ = [
    "PullPipeline",
    "PullRequest",
    "PullResult",
    "PullStage",
    "S3Ref",
    "Strategy",
    "parse_s3_url",
    "TarGzExtractor",
    "S3Downloader",
    "AtomicSwapDeployer",
    "MirrorSyncDeployer",
    "RsyncTreeSyncer",
    "SymlinkRepointer",
    "build_deployer",
]
