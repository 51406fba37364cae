import json
from pathlib import Path

import structlog
from structlog.contextvars import clear_contextvars

from droot.core.exceptions import ExtractionFailed
from droot.deploy.models import PullRequest, PullResult, PullStage, Strategy
from droot.utils.logging import bind_pull_context, setup_logging
from droot.utils.reporting import CompositeReporter, LoggingReporter, PullReporter


def _last_json_line(capsys) -> dict:
    out = capsys.readouterr().out.strip().splitlines()[-1]
    return json.loads(out)


def test_structured_logs_include_correlation(capsys):
    clear_contextvars()
    setup_logging("INFO", "json")
    bind_pull_context("/srv/app", "s3://b/app.tar.gz", "atomic-swap")

    logger = structlog.get_logger()
    logger.info("test_event", foo="bar")
    data = _last_json_line(capsys)
    assert data["event"] == "test_event"
    assert data["destination"] == "/srv/app"
    assert data["source"] == "s3://b/app.tar.gz"
    assert data["strategy"] == "atomic-swap"
    assert data["foo"] == "bar"
    clear_contextvars()


def test_redaction(capsys):
    clear_contextvars()
    setup_logging("INFO", "json")
    logger = structlog.get_logger()
    logger.info("leak_test", aws_secret_access_key="secret", token="abc")
    data = _last_json_line(capsys)
    assert data["aws_secret_access_key"] == "[REDACTED]"
    assert data["token"] == "[REDACTED]"


def test_debug_filtered_at_info(capsys):
    clear_contextvars()
    setup_logging("INFO", "json")
    structlog.get_logger().debug("hidden")
    structlog.get_logger().info("shown")
    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "shown" in out


def test_logging_reporter_messages(capsys):
    clear_contextvars()
    setup_logging("INFO", "json")
    reporter = LoggingReporter(structlog.get_logger("droot"))
    request = PullRequest.from_options("/srv/app", "s3://b/app.tar.gz")

    reporter.stage_started(PullStage.ACQUIRING, source=request.source, to="/tmp/droot_gzip123")
    data = _last_json_line(capsys)
    assert data["event"] == "--> Downloading"
    assert data["stage"] == "acquiring"
    assert data["to"] == "/tmp/droot_gzip123"

    reporter.pull_failed(request, PullStage.EXTRACTING, ExtractionFailed(cause=EOFError("truncated")))
    data = _last_json_line(capsys)
    assert data["event"] == "Pull failed"
    assert data["level"] == "error"
    assert data["code"] == "extraction"
    assert "truncated" in data["error"]


def test_composite_reporter_fans_out():
    calls = []

    class Recorder(PullReporter):
        def __init__(self, name):
            self.name = name

        def pull_succeeded(self, result):
            calls.append(self.name)

    result = PullResult(
        destination=Path("/srv/app"),
        source="s3://b/k",
        strategy=Strategy.MIRROR_SYNC,
        deployed_path=Path("/srv/app"),
    )
    CompositeReporter([Recorder("a"), Recorder("b")]).pull_succeeded(result)
    assert calls == ["a", "b"]
