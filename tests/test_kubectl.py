from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeRunner, b64, items, node, pod
from qos_deploy.errors import KubectlError
from qos_deploy.kubectl import KubectlClient, is_ready, pod_phase, resource_name


def test_exists_uses_get_with_name_output(runner: FakeRunner) -> None:
    client = KubectlClient(runner)

    assert client.exists("secret", "mongodb-secret", "default")
    assert runner.calls == [
        ("kubectl", "get", "secret", "mongodb-secret", "-n", "default", "-o", "name")
    ]


def test_exists_is_false_on_non_zero_exit(runner: FakeRunner) -> None:
    runner.on("kubectl", "get", "secret", returncode=1, stderr="NotFound")

    assert not KubectlClient(runner).exists("secret", "missing", "default")


def test_kubeconfig_and_context_prefix_every_command(runner: FakeRunner) -> None:
    client = KubectlClient(runner, kubeconfig=Path("/tmp/kubeconfig"), context="kind-qos")

    client.apply_file(Path("/bundle/qos-cfg.yaml"))

    assert runner.calls == [
        (
            "kubectl",
            "--kubeconfig=/tmp/kubeconfig",
            "--context",
            "kind-qos",
            "apply",
            "-f",
            "/bundle/qos-cfg.yaml",
        )
    ]


def test_list_items_scopes_by_namespace_and_selector(runner: FakeRunner) -> None:
    runner.on("kubectl", "get", "pods", stdout=items(pod("mongodb-0")))

    found = KubectlClient(runner).list_items("pods", namespace="default", selector="app=mongodb")

    assert [resource_name(item) for item in found] == ["mongodb-0"]
    assert runner.calls[-1] == (
        "kubectl",
        "get",
        "pods",
        "-n",
        "default",
        "-l",
        "app=mongodb",
        "-o",
        "json",
    )


def test_all_namespaces_replaces_namespace_flag(runner: FakeRunner) -> None:
    KubectlClient(runner).get_table("pods", namespace="default", all_namespaces=True, wide=True)

    assert runner.calls[-1] == ("kubectl", "get", "pods", "--all-namespaces", "-o", "wide")


def test_get_json_raises_kubectl_error_on_failure(runner: FakeRunner) -> None:
    runner.on("kubectl", "get", "statefulset", returncode=1, stderr="not found")

    with pytest.raises(KubectlError, match="not found") as excinfo:
        KubectlClient(runner).get_json("statefulset", name="mongodb", namespace="default")

    assert excinfo.value.returncode == 1
    assert excinfo.value.command[:3] == ("kubectl", "get", "statefulset")


def test_get_json_rejects_invalid_json(runner: FakeRunner) -> None:
    runner.on("kubectl", "get", "nodes", stdout="{not json")

    with pytest.raises(KubectlError, match="invalid JSON"):
        KubectlClient(runner).get_json("nodes")


def test_get_secret_value_decodes_base64(runner: FakeRunner) -> None:
    runner.on("kubectl", "get", "secret", stdout=b64("app-user"))

    value = KubectlClient(runner).get_secret_value("mongodb-secret", "MONGODB_APP_USER", "default")

    assert value == "app-user"
    assert runner.calls[-1][-1] == "jsonpath={.data.MONGODB_APP_USER}"


@pytest.mark.parametrize(
    ("returncode", "stdout"),
    [(1, ""), (0, ""), (0, "%%% not base64 %%%")],
)
def test_get_secret_value_returns_none_when_unavailable(
    runner: FakeRunner,
    returncode: int,
    stdout: str,
) -> None:
    runner.on("kubectl", "get", "secret", returncode=returncode, stdout=stdout)

    assert KubectlClient(runner).get_secret_value("mongodb-secret", "KEY", "default") is None


def test_create_generic_secret_passes_literals(runner: FakeRunner) -> None:
    KubectlClient(runner).create_generic_secret(
        "mongodb-secret",
        {"MONGODB_APP_USER": "USERNAME", "MONGODB_APP_PASSWORD": "PASSWORD"},
        "default",
    )

    assert runner.calls[-1] == (
        "kubectl",
        "create",
        "secret",
        "generic",
        "mongodb-secret",
        "-n",
        "default",
        "--from-literal=MONGODB_APP_USER=USERNAME",
        "--from-literal=MONGODB_APP_PASSWORD=PASSWORD",
    )


def test_exec_and_run_pod_separate_command_with_double_dash(runner: FakeRunner) -> None:
    client = KubectlClient(runner)

    client.exec_in_pod("mongodb-0", ["mongosh", "--eval", "1"], namespace="default")
    client.run_pod("mongodb-test", "mongo:7.0", ["mongosh", "--quiet"], namespace="default")

    assert runner.calls[0] == (
        "kubectl",
        "exec",
        "mongodb-0",
        "-n",
        "default",
        "--",
        "mongosh",
        "--eval",
        "1",
    )
    assert runner.calls[1] == (
        "kubectl",
        "run",
        "mongodb-test",
        "--image=mongo:7.0",
        "--rm",
        "-i",
        "--restart=Never",
        "-n",
        "default",
        "--",
        "mongosh",
        "--quiet",
    )


def test_readiness_helpers() -> None:
    assert is_ready(pod("a"))
    assert not is_ready(pod("a", ready=False))
    assert is_ready(node("n"))
    assert not is_ready({"metadata": {"name": "bare"}})
    assert pod_phase(pod("a", phase="Pending")) == "Pending"
    assert resource_name({}) is None
