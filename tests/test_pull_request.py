import os
from pathlib import Path

import pytest

from droot.core.exceptions import ConfigurationError
from droot.deploy.models import PullRequest, S3Ref, Strategy, parse_s3_url


def test_defaults_to_mirror_sync():
    req = PullRequest.from_options("/srv/app", "s3://bucket/app.tar.gz")
    assert req.strategy is Strategy.MIRROR_SYNC
    assert req.destination == Path("/srv/app")
    assert req.preserve_ownership is None
    assert req.s3_ref == S3Ref(bucket="bucket", key="app.tar.gz")


@pytest.mark.parametrize(
    "mode,expected",
    [
        ("rsync", Strategy.MIRROR_SYNC),
        ("symlink", Strategy.ATOMIC_SWAP),
        ("mirror-sync", Strategy.MIRROR_SYNC),
        ("atomic-swap", Strategy.ATOMIC_SWAP),
        ("SYMLINK", Strategy.ATOMIC_SWAP),
        ("", Strategy.MIRROR_SYNC),
        (None, Strategy.MIRROR_SYNC),
    ],
)
def test_strategy_names(mode, expected):
    assert Strategy.parse(mode) is expected


def test_unknown_strategy_rejected_even_with_valid_paths():
    with pytest.raises(ConfigurationError, match="Invalid mode copy"):
        PullRequest.from_options("/srv/app", "s3://bucket/app.tar.gz", "copy")


@pytest.mark.parametrize("dest,src", [(None, "s3://b/k"), ("", "s3://b/k"), ("/srv/app", None), ("/srv/app", "")])
def test_missing_dest_or_src(dest, src):
    with pytest.raises(ConfigurationError, match="--src and --dest option required"):
        PullRequest.from_options(dest, src)


@pytest.mark.parametrize(
    "src",
    [
        "/tmp/app.tar.gz",
        "file:///tmp/app.tar.gz",
        "https://bucket.s3.amazonaws.com/app.tar.gz",
        "s3://bucket",
        "s3://bucket/",
        "s3:///key",
    ],
)
def test_unsupported_or_malformed_source(src):
    with pytest.raises(ConfigurationError):
        PullRequest.from_options("/srv/app", src)


def test_destination_is_made_absolute_and_normalized(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    req = PullRequest.from_options("var/../apps/./app/", "s3://b/k.tar.gz")
    assert req.destination == Path(os.getcwd()) / "apps" / "app"
    assert req.destination.is_absolute()


def test_same_owner_is_passed_through():
    assert PullRequest.from_options("/a", "s3://b/k", same_owner=True).preserve_ownership is True
    assert PullRequest.from_options("/a", "s3://b/k", same_owner=False).preserve_ownership is False


def test_configuration_error_code():
    with pytest.raises(ConfigurationError) as exc:
        PullRequest.from_options("/a", "gs://b/k")
    assert exc.value.code == "configuration"
    assert "Not s3 scheme" in str(exc.value)


def test_parse_s3_url_keeps_nested_key():
    ref = parse_s3_url("s3://drootexample/images/app.tar.gz")
    assert ref.bucket == "drootexample"
    assert ref.key == "images/app.tar.gz"
    assert str(ref) == "s3://drootexample/images/app.tar.gz"


def test_request_is_immutable():
    req = PullRequest.from_options("/a", "s3://b/k")
    with pytest.raises(Exception):
        req.source = "s3://other/k"
