from __future__ import annotations

import json

from conftest import FakeRunner, b64, items, output_of, pod
from qos_deploy.dependencies import Toolkit

DATABASE = "quick-order-system-bigmenu"


def _script_mongodb(runner: FakeRunner) -> None:
    runner.on(
        "kubectl",
        "get",
        "statefulset",
        stdout=json.dumps({"spec": {"replicas": 1}, "status": {"readyReplicas": 1}}),
    )
    runner.on("kubectl", "get", "pods", contains=("json",), stdout=items(pod("mongodb-0")))
    runner.on(
        "kubectl",
        "get",
        "pvc",
        contains=("json",),
        stdout=items(
            {"metadata": {"name": "mongodb-data-mongodb-0"}, "status": {"phase": "Bound"}}
        ),
    )
    runner.on(
        "kubectl",
        "get",
        "secret",
        contains=("jsonpath={.data.MONGODB_APP_USER}",),
        stdout=b64("app"),
    )
    runner.on(
        "kubectl",
        "get",
        "secret",
        contains=("jsonpath={.data.MONGODB_APP_PASSWORD}",),
        stdout=b64("s3cret"),
    )
    runner.on(
        "kubectl",
        "exec",
        contains=("db.test_collection.countDocuments({})",),
        stdout="3\n",
    )


def _exec_scripts(runner: FakeRunner) -> list[str]:
    return [call[-1] for call in runner.calls_to("kubectl", "exec")]


def test_healthy_mongodb_passes_every_stage(toolkit: Toolkit, runner: FakeRunner) -> None:
    _script_mongodb(runner)

    report = toolkit.mongodb.validate()

    assert report.passed
    assert [stage.name for stage in report.stages] == [
        "deployment",
        "connectivity",
        "persistence",
        "service-discovery",
    ]
    assert report.stages[2].detail == "3 documents"
    output = output_of(toolkit.reporter)
    assert "✓ Data persistence test successful (found 3 documents)" in output
    assert "mongodb.default.svc.cluster.local:27017" in output
    assert "s3cret" not in output


def test_authenticated_commands_use_secret_credentials(
    toolkit: Toolkit,
    runner: FakeRunner,
) -> None:
    _script_mongodb(runner)

    toolkit.mongodb.validate()

    ping, list_databases = runner.calls_to("kubectl", "exec")[:2]
    assert ping == (
        "kubectl",
        "exec",
        "mongodb-0",
        "-n",
        "default",
        "--",
        "mongosh",
        "--quiet",
        "--eval",
        "db.adminCommand('ping')",
    )
    assert list_databases[6:] == (
        "mongosh",
        DATABASE,
        "--quiet",
        "-u",
        "app",
        "-p",
        "s3cret",
        "--authenticationDatabase",
        DATABASE,
        "--eval",
        "db.adminCommand('listDatabases')",
    )
    assert _exec_scripts(runner)[2] == "db.stats()"
    insert = _exec_scripts(runner)[3]
    assert insert.startswith("db.test_collection.insertOne({test_id: 'persistence_test_")


def test_missing_statefulset_stops_validation(toolkit: Toolkit, runner: FakeRunner) -> None:
    runner.on("kubectl", "get", "statefulset", returncode=1, stderr="NotFound")

    report = toolkit.mongodb.validate()

    assert not report.passed
    assert len(report.stages) == 1
    assert runner.calls_to("kubectl", "exec") == []
    assert "✗ MongoDB StatefulSet not found" in output_of(toolkit.reporter)


def test_missing_credentials_fail_connectivity(toolkit: Toolkit, runner: FakeRunner) -> None:
    _script_mongodb(runner)
    runner.on(
        "kubectl",
        "get",
        "secret",
        contains=("jsonpath={.data.MONGODB_APP_PASSWORD}",),
        returncode=1,
        stderr="NotFound",
    )

    report = toolkit.mongodb.validate()

    assert not report.passed
    assert report.stages[-1].name == "connectivity"
    assert report.stages[-1].detail == "credentials unavailable"
    assert runner.calls_to("kubectl", "exec") == []


def test_failed_authentication_stops_before_persistence(
    toolkit: Toolkit,
    runner: FakeRunner,
) -> None:
    _script_mongodb(runner)
    runner.on(
        "kubectl",
        "exec",
        contains=("db.adminCommand('listDatabases')",),
        returncode=1,
        stderr="Authentication failed.",
    )

    report = toolkit.mongodb.validate()

    assert not report.passed
    assert report.stages[-1].detail == "authentication failed"
    assert len(_exec_scripts(runner)) == 2


def test_empty_collection_fails_persistence(toolkit: Toolkit, runner: FakeRunner) -> None:
    _script_mongodb(runner)
    runner.on(
        "kubectl",
        "exec",
        contains=("db.test_collection.countDocuments({})",),
        stdout="0\n",
    )

    report = toolkit.mongodb.validate()

    assert not report.passed
    assert report.stages[-1].name == "persistence"


def test_service_discovery_failure_is_only_a_warning(
    toolkit: Toolkit,
    runner: FakeRunner,
) -> None:
    _script_mongodb(runner)
    runner.on("kubectl", "run", returncode=1, stderr="ErrImagePull")

    report = toolkit.mongodb.validate()

    assert report.passed
    assert report.stages[-1].name == "service-discovery"
    assert "✗ Service discovery test failed" in output_of(toolkit.reporter)
    discovery = runner.calls_to("kubectl", "run")[0]
    assert "--image=mongo:7.0" in discovery
    assert "mongodb://mongodb.default.svc.cluster.local:27017" in discovery
