"""Scratch storage scoped to a single pull.

Both helpers are context managers: the path they yield is removed when the
block exits, whether it exits normally or by exception.
"""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import structlog

logger = structlog.get_logger()

ARTIFACT_PREFIX = "droot_gzip"
TREE_PREFIX = "droot_raw"


@contextmanager
def transient_artifact(tmp_dir: Optional[str] = None) -> Iterator[Path]:
    """Create an empty temp file for the downloaded archive."""
    fd, name = tempfile.mkstemp(prefix=ARTIFACT_PREFIX, dir=tmp_dir)
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to remove temporary file", path=str(path), error=str(e))


@contextmanager
def transient_tree(tmp_dir: Optional[str] = None) -> Iterator[Path]:
    """Create an empty temp directory to extract the archive into.

    The directory is chmod 0755 so that syncing its root into place does not
    leave the destination with mkdtemp's 0700.
    """
    path = Path(tempfile.mkdtemp(prefix=TREE_PREFIX, dir=tmp_dir))
    try:
        os.chmod(path, 0o755)
        yield path
    finally:
        try:
            remove_tree(path)
        except OSError as e:
            logger.error("Failed to remove temporary directory", path=str(path), error=str(e))


def remove_tree(path: Path) -> None:
    """rmtree that also copes with read-only directories, the root included.

    Extracting an image with a ``.`` entry applies the image's root mode to
    ``path`` itself, which may well be 0555.
    """
    if not path.exists():
        return
    _ensure_owner_rwx(str(path))
    for root, dirs, _files in os.walk(path):
        for d in dirs:
            sub = os.path.join(root, d)
            # never chmod through a symlink, it may point outside the tree
            if os.path.islink(sub):
                continue
            _ensure_owner_rwx(sub)
    shutil.rmtree(path)


def _ensure_owner_rwx(path: str) -> None:
    mode = os.lstat(path).st_mode
    if stat.S_ISDIR(mode) and mode & stat.S_IRWXU != stat.S_IRWXU:
        os.chmod(path, mode | stat.S_IRWXU)
