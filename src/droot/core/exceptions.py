"""Custom exceptions for droot."""

from typing import Optional


class DrootError(Exception):
    """Base exception for all droot errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(DrootError):
    """Bad or missing arguments, detected before any resource is allocated."""

    def __init__(self, message: str):
        super().__init__(message, code="configuration")


class StageError(DrootError):
    """A pipeline stage failed.

    Carries the name of the failing stage and the underlying cause so that
    operators can tell a missing archive from a corrupt one from a refused
    write.
    """

    stage = "unknown"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, code=self.stage)
        self.cause = cause


class AcquisitionFailed(StageError):
    """Download of the remote archive failed."""

    stage = "acquisition"

    def __init__(self, source: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to download file({source}) from s3", cause)
        self.source = source


class ExtractionFailed(StageError):
    """The archive could not be decoded or written out."""

    stage = "extraction"

    def __init__(self, message: str = "Failed to extract archive", cause: Optional[BaseException] = None):
        super().__init__(message, cause)


class DeploymentFailed(StageError):
    """Syncing or swapping the extracted tree into place failed."""

    stage = "deployment"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
