"""Extraction stage: unpack a gzip-compressed tar image into scratch storage."""

from __future__ import annotations

import functools
import os
import tarfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional, Protocol

import structlog

from droot.core.exceptions import ExtractionFailed


logger = structlog.get_logger()


class UnsafeMemberError(tarfile.FilterError):
    """Archive member would be written outside the extraction directory."""

    def __init__(self, tarinfo: tarfile.TarInfo, reason: str):
        self.tarinfo = tarinfo
        super().__init__(f"{tarinfo.name!r} {reason}")


class Extractor(Protocol):
    def extract(self, source: BinaryIO, dest_dir: Path, preserve_ownership: Optional[bool] = None) -> None:
        ...


def is_superuser() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def _within(path: str, base: str) -> bool:
    return os.path.commonpath([path, base]) == base


class TarGzExtractor:
    """Extracts .tar.gz filesystem images.

    Permission bits are kept as-is (images carry setuid binaries). Ownership is
    kept only when asked to; ``preserve_ownership=None`` means "when running
    as root", matching tar's own --same-owner default.
    """

    def extract(self, source: BinaryIO, dest_dir: Path, preserve_ownership: Optional[bool] = None) -> None:
        if preserve_ownership is None:
            preserve_ownership = is_superuser()
        elif preserve_ownership and not is_superuser():
            logger.warning("Ownership can only be preserved when running as root; extracting as current user")

        base = os.path.realpath(dest_dir)
        member_filter = functools.partial(_image_filter, preserve_ownership=preserve_ownership)
        with tarfile.open(fileobj=source, mode="r:gz") as tf:
            # raise filter and extract errors instead of skipping the member
            tf.errorlevel = 2
            tf.extractall(base, filter=member_filter)


def _image_filter(member: tarfile.TarInfo, dest_path: str, *, preserve_ownership: bool) -> tarfile.TarInfo:
    """Per-member extraction filter, evaluated right before each member is written.

    Checks against the tree as it exists on disk at that moment, so a symlink
    extracted earlier cannot be used to redirect a later member outside
    ``dest_path``.
    """
    dest_path = os.path.realpath(dest_path)
    name = PurePosixPath(member.name)
    if name.is_absolute() or ".." in name.parts:
        raise UnsafeMemberError(member, "has an absolute path or parent reference")

    target = os.path.join(dest_path, member.name)
    if member.issym() or member.islnk():
        # the link itself is replaced, only its directory must stay inside
        checked = os.path.realpath(os.path.dirname(target))
    else:
        checked = os.path.realpath(target)
    if not _within(checked, dest_path):
        raise UnsafeMemberError(member, "would be extracted outside the destination")

    if member.islnk():
        link_target = os.path.realpath(os.path.join(dest_path, member.linkname))
        if not _within(link_target, dest_path):
            raise UnsafeMemberError(member, "is a hard link to a path outside the destination")

    if not preserve_ownership:
        member = member.replace(uid=os.getuid(), gid=os.getgid(), uname="", gname="", deep=False)
    return member


def extract(artifact: Path, tree: Path, preserve_ownership: Optional[bool], extractor: Extractor) -> None:
    """Unpack ``artifact`` into ``tree``.

    ``tree`` may be left partially populated on failure; it is scratch space.

    Raises:
        ExtractionFailed: wrapping the decode or write error
    """
    try:
        with open(artifact, "rb") as source:
            extractor.extract(source, tree, preserve_ownership)
    except Exception as e:
        raise ExtractionFailed(cause=e) from e
