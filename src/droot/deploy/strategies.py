"""Deployment stage: move an extracted tree to its permanent destination.

Two strategies are supported:

- mirror-sync: rsync the tree into the destination in place. The destination
  directory is never removed, only its files change.
- atomic-swap: rsync the tree into a fresh, never reused sibling slot, then
  replace the destination symlink with one pointing at the slot in a single
  rename. The previous slot is left behind.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Protocol

import structlog

from droot.core.exceptions import ConfigurationError, DeploymentFailed
from droot.deploy.models import Strategy
from droot.deploy.transient import remove_tree


logger = structlog.get_logger()


class SyncCommandError(Exception):
    """rsync exited non-zero."""

    def __init__(self, returncode: int, stderr: str):
        super().__init__(f"rsync exited with status {returncode}: {stderr}")
        self.returncode = returncode
        self.stderr = stderr


class TreeSyncer(Protocol):
    def check(self) -> None:
        ...

    def sync(self, src: Path, dst: Path) -> None:
        ...


class Repointer(Protocol):
    def repoint(self, target: Path, link: Path) -> None:
        ...


class RsyncTreeSyncer:
    """Mirror one directory into another with rsync."""

    def __init__(self, rsync_path: str = "rsync", options: Optional[List[str]] = None):
        self.rsync_path = rsync_path
        self.options = list(options) if options is not None else ["-aH", "--delete"]

    def check(self) -> None:
        if shutil.which(self.rsync_path) is None:
            raise ConfigurationError(f"rsync executable not found: {self.rsync_path}")

    def sync(self, src: Path, dst: Path) -> None:
        # trailing slashes: copy the contents of src into dst, following dst if it is a symlink
        cmd = [self.rsync_path, *self.options, f"{src}/", f"{dst}/"]
        logger.debug("Running rsync", command=" ".join(cmd))
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            logger.error("rsync failed", returncode=result.returncode, stderr=result.stderr[:500])
            raise SyncCommandError(result.returncode, result.stderr.strip())


class SymlinkRepointer:
    """Atomically point ``link`` at ``target``.

    A uniquely named temporary symlink is created next to ``link`` and renamed
    over it; rename(2) replaces the old symlink in one step.
    """

    def repoint(self, target: Path, link: Path) -> None:
        tmp_link = link.parent / f".{link.name}.{uuid.uuid4().hex}.tmp"
        os.symlink(target, tmp_link)
        try:
            os.replace(tmp_link, link)
        except BaseException:
            tmp_link.unlink(missing_ok=True)
            raise


class Deployer(ABC):
    """Moves an extracted tree into place for one strategy."""

    strategy: Strategy

    def __init__(self, syncer: TreeSyncer):
        self.syncer = syncer

    def preflight(self, destination: Path) -> None:
        """Reject destinations this strategy cannot deploy to.

        Called before any scratch storage is allocated.

        Raises:
            ConfigurationError
        """
        self.syncer.check()

    @abstractmethod
    def deploy(self, tree: Path, destination: Path) -> Path:
        """Deploy ``tree`` to ``destination``; return the directory that now holds the content.

        Raises:
            DeploymentFailed
        """


class MirrorSyncDeployer(Deployer):
    strategy = Strategy.MIRROR_SYNC

    def __init__(self, syncer: TreeSyncer, create_destination: bool = True):
        super().__init__(syncer)
        self.create_destination = create_destination

    def preflight(self, destination: Path) -> None:
        super().preflight(destination)
        if destination.exists():
            if not destination.is_dir():
                raise ConfigurationError(f"Destination {destination} exists and is not a directory")
            return
        if destination.is_symlink():
            raise ConfigurationError(f"Destination {destination} is a dangling symlink")
        if not self.create_destination:
            raise ConfigurationError(
                f"Destination {destination} does not exist and creating it is disabled"
            )

    def deploy(self, tree: Path, destination: Path) -> Path:
        if not destination.exists():
            logger.info("Creating destination directory", destination=str(destination))
            try:
                destination.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DeploymentFailed(f"Failed to create destination {destination}", e) from e
        try:
            self.syncer.sync(tree, destination)
        except Exception as e:
            raise DeploymentFailed("Failed to rsync", e) from e
        return destination


class AtomicSwapDeployer(Deployer):
    strategy = Strategy.ATOMIC_SWAP

    def __init__(self, syncer: TreeSyncer, repointer: Optional[Repointer] = None):
        super().__init__(syncer)
        self.repointer = repointer or SymlinkRepointer()

    def preflight(self, destination: Path) -> None:
        super().preflight(destination)
        if os.path.lexists(destination) and not destination.is_symlink():
            raise ConfigurationError(
                f"Destination {destination} exists and is not a symlink; atomic-swap can only replace a symlink"
            )

    def _new_slot(self, destination: Path) -> Path:
        stamp = time.strftime("%Y%m%d%H%M%S", time.gmtime())
        destination.parent.mkdir(parents=True, exist_ok=True)
        slot = Path(tempfile.mkdtemp(prefix=f"{destination.name}.{stamp}.", dir=destination.parent))
        os.chmod(slot, 0o755)
        return slot

    def _discard_slot(self, slot: Path) -> None:
        try:
            remove_tree(slot)
        except OSError as e:
            logger.error("Failed to remove unused deployment slot", slot=str(slot), error=str(e))

    def deploy(self, tree: Path, destination: Path) -> Path:
        try:
            slot = self._new_slot(destination)
        except OSError as e:
            raise DeploymentFailed(f"Failed to create deployment slot next to {destination}", e) from e

        # the slot is dropped on any unwind before the link points at it,
        # SystemExit from SIGTERM included
        swapped = False
        try:
            logger.info("Syncing into new slot", slot=str(slot))
            try:
                self.syncer.sync(tree, slot)
            except Exception as e:
                raise DeploymentFailed(f"Failed to rsync into {slot}", e) from e

            logger.info("Switching symlink", destination=str(destination), target=str(slot))
            try:
                self.repointer.repoint(slot, destination)
            except Exception as e:
                raise DeploymentFailed(f"Failed to switch symlink {destination} to {slot}", e) from e
            swapped = True
        finally:
            if not swapped:
                self._discard_slot(slot)
        return slot


def build_deployer(
    strategy: Strategy,
    syncer: TreeSyncer,
    repointer: Optional[Repointer] = None,
    create_destination: bool = True,
) -> Deployer:
    if strategy is Strategy.MIRROR_SYNC:
        return MirrorSyncDeployer(syncer, create_destination=create_destination)
    if strategy is Strategy.ATOMIC_SWAP:
        return AtomicSwapDeployer(syncer, repointer)
    raise ConfigurationError(f"Unsupported strategy {strategy}")
