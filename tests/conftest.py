from __future__ import annotations

import base64
import io
import json
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from qos_deploy.config import DeploySettings, load_settings
from qos_deploy.console import Reporter
from qos_deploy.dependencies import Toolkit, build_toolkit
from qos_deploy.engine import DockerEngine
from qos_deploy.manifests import COMMON_PLAN, QOS_PLAN
from qos_deploy.prerequisites import PrerequisiteChecker
from qos_deploy.runner import CommandResult

MUTATING_KUBECTL_VERBS = frozenset(
    {"apply", "create", "delete", "exec", "run", "patch", "label", "annotate", "scale"}
)


@dataclass
class _Rule:
    prefix: tuple[str, ...]
    contains: tuple[str, ...]
    responses: list[tuple[int, str, str]]
    order: int

    def matches(self, command: tuple[str, ...]) -> bool:
        if command[: len(self.prefix)] != self.prefix:
            return False
        return all(token in command for token in self.contains)

    @property
    def score(self) -> tuple[int, int]:
        return (len(self.prefix) + len(self.contains), self.order)


@dataclass
class FakeRunner:
    """Scripted command runner; unscripted commands succeed with no output."""

    calls: list[tuple[str, ...]] = field(default_factory=list)
    _rules: list[_Rule] = field(default_factory=list)

    def on(
        self,
        *prefix: str,
        contains: Sequence[str] = (),
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.sequence(*prefix, contains=contains, responses=[(returncode, stdout, stderr)])

    def sequence(
        self,
        *prefix: str,
        contains: Sequence[str] = (),
        responses: Sequence[tuple[int, str, str]],
    ) -> None:
        """Answer successive matching calls in order; the last answer repeats."""
        self._rules.append(
            _Rule(
                prefix=tuple(prefix),
                contains=tuple(contains),
                responses=list(responses),
                order=len(self._rules),
            )
        )

    def run(self, args: Sequence[str]) -> CommandResult:
        command = tuple(args)
        self.calls.append(command)
        matching = [rule for rule in self._rules if rule.matches(command)]
        if not matching:
            return CommandResult(args=command, returncode=0)
        rule = max(matching, key=lambda candidate: candidate.score)
        returncode, stdout, stderr = (
            rule.responses.pop(0) if len(rule.responses) > 1 else rule.responses[0]
        )
        return CommandResult(args=command, returncode=returncode, stdout=stdout, stderr=stderr)

    def calls_to(self, *prefix: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[: len(prefix)] == prefix]

    def mutating_calls(self) -> list[tuple[str, ...]]:
        mutating: list[tuple[str, ...]] = []
        for call in self.calls:
            tool = call[0]
            verbs = [part for part in call[1:] if not part.startswith("-")]
            if tool == "kubectl" and verbs and verbs[0] in MUTATING_KUBECTL_VERBS:
                mutating.append(call)
            elif tool == "kind" and verbs and verbs[0] in {"create", "delete"}:
                mutating.append(call)
            elif tool == "docker" and verbs and verbs[0] in {"start", "update", "rm", "stop"}:
                mutating.append(call)
        return mutating


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def pod(name: str, *, ready: bool = True, phase: str = "Running") -> dict[str, Any]:
    return {
        "metadata": {"name": name},
        "status": {
            "phase": phase,
            "conditions": [{"type": "Ready", "status": "True" if ready else "False"}],
        },
    }


def node(name: str, *, ready: bool = True) -> dict[str, Any]:
    return {
        "metadata": {"name": name},
        "status": {"conditions": [{"type": "Ready", "status": "True" if ready else "False"}]},
    }


def items(*objects: dict[str, Any]) -> str:
    return json.dumps({"items": list(objects)})


def b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def output_of(reporter: Reporter) -> str:
    stream = reporter.console.file
    assert isinstance(stream, io.StringIO)
    return stream.getvalue()


def script_healthy_cluster(runner: FakeRunner) -> None:
    """Nodes and every pod Ready, PVCs bound, ingress present."""
    runner.on(
        "kubectl",
        "get",
        "nodes",
        contains=("json",),
        stdout=items(node("qos-control-plane")),
    )
    runner.on("kubectl", "get", "pods", contains=("json",), stdout=items(pod("workload-0")))
    runner.on(
        "kubectl",
        "get",
        "pvc",
        contains=("json",),
        stdout=items({"metadata": {"name": "data"}, "status": {"phase": "Bound"}}),
    )
    runner.on(
        "kubectl",
        "get",
        "ingress",
        stdout="NAME   CLASS   HOSTS\nqos    nginx   qos.local\n",
    )


def _write_manifest(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"# {path.name}\n", encoding="utf-8")


@pytest.fixture(autouse=True)
def _isolated_environment(  # pyright: ignore[reportUnusedFunction]
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    for key in list(os.environ):
        if key.startswith("QOS_DEPLOY_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("QOS_DEPLOY_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    base = tmp_path / "bundle"
    _write_manifest(base / "common" / "manifests" / "kind-config.yaml")
    for filename in COMMON_PLAN.filenames():
        _write_manifest(base / "common" / "manifests" / filename)
    for filename in ("qoc-depl.yaml", "qoc-cfg.yaml"):
        _write_manifest(base / "qoc" / "manifests" / filename)
    for filename in QOS_PLAN.filenames():
        _write_manifest(base / "qos" / "manifests" / filename)
    return base


@pytest.fixture
def settings(bundle_dir: Path) -> DeploySettings:
    return load_settings(
        base_dir=bundle_dir,
        wait_timeout_seconds=4,
        ingress_wait_timeout_seconds=4,
        poll_interval_seconds=1,
        recovery_settle_seconds=0,
        recovery_probe_interval_seconds=0,
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reporter() -> Reporter:
    return Reporter(
        Console(
            file=io.StringIO(),
            width=200,
            highlight=False,
            soft_wrap=True,
            color_system=None,
        )
    )


@pytest.fixture
def prompts() -> list[str]:
    return []


@pytest.fixture
def answers() -> list[bool]:
    """Replies to confirmation prompts, consumed in order; empty means decline."""
    return []


@pytest.fixture
def toolkit(
    settings: DeploySettings,
    runner: FakeRunner,
    reporter: Reporter,
    clock: FakeClock,
    prompts: list[str],
    answers: list[bool],
) -> Toolkit:
    def _confirm(prompt: str) -> bool:
        prompts.append(prompt)
        return answers.pop(0) if answers else False

    prerequisites = PrerequisiteChecker(
        DockerEngine(runner),
        reporter,
        recommended_fd_limit=settings.recommended_fd_limit,
        which=lambda tool: f"/usr/local/bin/{tool}",
        fd_limit_reader=lambda: 1048576,
    )
    return build_toolkit(
        settings,
        runner=runner,
        reporter=reporter,
        confirm=_confirm,
        sleep=clock.sleep,
        clock=clock,
        prerequisites=prerequisites,
    )
