"""droot - pull an extracted filesystem image from S3 and deploy it locally."""

__version__ = "0.1.0"

from droot.core.config import Settings
from droot.deploy.models import PullRequest, PullResult, Strategy

__all__ = ["Settings", "PullRequest", "PullResult", "Strategy", "__version__"]
