"""
Pytest configuration and fixtures for droot tests.
"""

import io
import os
import shutil
import tarfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """
    Remove DROOT_* and AWS_* variables so Settings only sees what a test sets.
    """
    for key in list(os.environ):
        if key.startswith("DROOT_") or key.startswith("AWS_") or key == "S3_ENDPOINT_URL":
            monkeypatch.delenv(key, raising=False)


def make_targz(
    path: Path,
    files: Dict[str, bytes],
    symlinks: Optional[Dict[str, str]] = None,
    modes: Optional[Dict[str, int]] = None,
    uid: int = 0,
) -> Path:
    """Write a .tar.gz image containing ``files`` (and optional symlinks)."""
    modes = modes or {}
    with tarfile.open(path, "w:gz") as tf:
        dirs = set()
        for name in files:
            parent = Path(name).parent
            while str(parent) not in (".", ""):
                dirs.add(str(parent))
                parent = parent.parent
        for d in sorted(dirs):
            info = tarfile.TarInfo(d)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            info.uid = info.gid = uid
            tf.addfile(info)
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = modes.get(name, 0o644)
            info.uid = info.gid = uid
            tf.addfile(info, io.BytesIO(data))
        for name, target in (symlinks or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tf.addfile(info)
    return path


def tree_files(root: Path) -> Dict[str, bytes]:
    """Map of relative path -> content for every regular file under root."""
    out = {}
    for dirpath, _dirs, files in os.walk(root):
        for name in files:
            p = Path(dirpath) / name
            if p.is_file() and not p.is_symlink():
                out[str(p.relative_to(root))] = p.read_bytes()
    return out


class FakeDownloader:
    """Writes a canned payload, or raises a canned error."""

    def __init__(self, payload: bytes = b"", error: Optional[Exception] = None):
        self.payload = payload
        self.error = error
        self.calls: List[str] = []

    def download(self, source, sink):
        self.calls.append(source)
        if self.error is not None:
            raise self.error
        sink.write(self.payload)
        return len(self.payload)


class CopySyncer:
    """In-process stand-in for rsync -a --delete."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.calls: List[tuple] = []

    def check(self):
        pass

    def sync(self, src: Path, dst: Path):
        self.calls.append((Path(src), Path(dst)))
        if self.fail_with is not None:
            raise self.fail_with
        dst = Path(os.path.realpath(dst))
        for dirpath, dirs, files in os.walk(dst, topdown=False):
            for name in dirs + files:
                p = Path(dirpath) / name
                if os.path.lexists(Path(src) / p.relative_to(dst)):
                    continue
                if p.is_dir() and not p.is_symlink():
                    shutil.rmtree(p)
                else:
                    p.unlink()
        shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    """Private temp dir for droot_gzip*/droot_raw* paths, so leftovers are visible."""
    d = tmp_path / "scratch"
    d.mkdir()
    return d
