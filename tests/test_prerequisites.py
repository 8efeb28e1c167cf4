from __future__ import annotations

import resource

import pytest

from conftest import FakeRunner, output_of
from qos_deploy.console import Reporter
from qos_deploy.engine import DockerEngine
from qos_deploy.errors import PrerequisiteError
from qos_deploy.prerequisites import PrerequisiteChecker


def _checker(
    runner: FakeRunner,
    reporter: Reporter,
    *,
    installed: tuple[str, ...] = ("kind", "kubectl", "docker"),
    fd_limit: int = 1048576,
) -> PrerequisiteChecker:
    return PrerequisiteChecker(
        DockerEngine(runner),
        reporter,
        recommended_fd_limit=65536,
        which=lambda tool: f"/usr/bin/{tool}" if tool in installed else None,
        fd_limit_reader=lambda: fd_limit,
    )


def test_check_passes_with_tools_and_daemon(runner: FakeRunner, reporter: Reporter) -> None:
    _checker(runner, reporter).check()

    assert runner.calls == [("docker", "info")]
    assert reporter.warning_count == 0
    assert "Prerequisites check completed successfully" in output_of(reporter)


@pytest.mark.parametrize("missing", ["kind", "kubectl", "docker"])
def test_missing_tool_is_fatal(runner: FakeRunner, reporter: Reporter, missing: str) -> None:
    installed = tuple(tool for tool in ("kind", "kubectl", "docker") if tool != missing)

    with pytest.raises(PrerequisiteError) as excinfo:
        _checker(runner, reporter, installed=installed).check()

    assert str(excinfo.value) == f"{missing} could not be found. Please install it first."
    assert runner.calls == []


def test_stopped_daemon_is_fatal(runner: FakeRunner, reporter: Reporter) -> None:
    runner.on("docker", "info", returncode=1, stderr="Cannot connect to the Docker daemon")

    with pytest.raises(PrerequisiteError, match="Docker is not running"):
        _checker(runner, reporter).check()


def test_low_fd_limit_warns_and_continues(runner: FakeRunner, reporter: Reporter) -> None:
    _checker(runner, reporter, fd_limit=1024).check()

    output = output_of(reporter)
    assert reporter.warning_count == 3
    assert "Current file descriptor limit (1024) is low" in output
    assert "ulimit -n 65536" in output
    assert "too many open files" in output
    assert "Prerequisites check completed successfully" in output


def test_unlimited_fd_limit_is_accepted(runner: FakeRunner, reporter: Reporter) -> None:
    checker = _checker(runner, reporter, fd_limit=resource.RLIM_INFINITY)

    assert checker.check_fd_limit()
    assert reporter.warning_count == 0
