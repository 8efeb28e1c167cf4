from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from qos_deploy.errors import ConfigError

DEFAULT_DATA_DIR = ".qos-deploy"
_BASE_RELATIVE_FIELDS: tuple[str, ...] = (
    "kind_config_path",
    "common_manifests_dir",
    "qoc_manifests_dir",
    "qos_manifests_dir",
    "log_dir",
)
_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


class DeploySettings(BaseSettings):
    """
    Runtime configuration for the deployment tooling.

    Every option can come from a `QOS_DEPLOY_*` environment variable, a `.env`
    file or a YAML settings file passed with `--config`. Manifest locations and
    the log directory are relative to `base_dir` unless given as absolute paths.
    """

    model_config = SettingsConfigDict(
        env_prefix="QOS_DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Cluster and layout.
    cluster_name: str = Field(
        default="qos",
        description="Name of the kind cluster; the kube context is `kind-<name>`.",
    )
    base_dir: Path = Field(
        default=Path("."),
        description="Root of the deployment bundle (manifests and kind config).",
    )
    kind_config_path: Path = Field(
        default=Path("common/manifests/kind-config.yaml"),
        description="kind cluster bootstrap configuration file.",
    )
    common_manifests_dir: Path = Field(
        default=Path("common/manifests"),
        description="Directory holding shared infrastructure manifests (ingress controller).",
    )
    qoc_manifests_dir: Path = Field(
        default=Path("qoc/manifests"),
        description="Directory holding Quick Order Customer manifests, applied in filename order.",
    )
    qos_manifests_dir: Path = Field(
        default=Path("qos/manifests"),
        description="Directory holding Quick Order System manifests.",
    )
    namespace: str = Field(
        default="default",
        description="Namespace of the application workloads.",
    )
    kubeconfig: Path | None = Field(
        default=None,
        description="Optional kubeconfig passed to kubectl; the current context is used otherwise.",
    )

    # Waiting and recovery.
    wait_timeout_seconds: int = Field(
        default=300,
        ge=1,
        description="Readiness timeout for nodes and application pods.",
    )
    ingress_wait_timeout_seconds: int = Field(
        default=600,
        ge=1,
        description="Readiness timeout for the NGINX ingress controller.",
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Delay between readiness polls.",
    )
    recovery_settle_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Delay after restarting cluster containers before probing the API.",
    )
    recovery_probe_attempts: int = Field(
        default=3,
        ge=1,
        description="Number of `kubectl get nodes` probes during quick recovery.",
    )
    recovery_probe_interval_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Delay between recovery probes.",
    )
    recommended_fd_limit: int = Field(
        default=65536,
        ge=1,
        description="Warn when the soft open-file limit is below this value.",
    )
    strict_apply: bool = Field(
        default=False,
        description="Abort the deployment on the first manifest that fails to apply.",
    )

    # MongoDB.
    mongodb_secret_name: str = Field(default="mongodb-secret")
    mongodb_user_key: str = Field(default="MONGODB_APP_USER")
    mongodb_password_key: str = Field(default="MONGODB_APP_PASSWORD")
    mongodb_default_user: str = Field(
        default="USERNAME",
        description="Placeholder user written when the secret has to be bootstrapped.",
    )
    mongodb_default_password: str = Field(
        default="PASSWORD",
        description="Placeholder password written when the secret has to be bootstrapped.",
    )
    mongodb_database: str = Field(default="quick-order-system-bigmenu")
    mongodb_selector: str = Field(default="app=mongodb")
    mongodb_test_image: str = Field(default="mongo:7.0")

    # Logging.
    log_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR) / "logs",
        description="Directory for the JSON log file, relative to `base_dir` unless absolute.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level when console logging is enabled.",
    )
    console_logging: bool = Field(
        default=False,
        description="Mirror structured logs to stderr (enabled by `--verbose`).",
    )

    @field_validator("cluster_name", "namespace", mode="before")
    @classmethod
    def _normalize_name(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        normalized = value.strip()
        if not normalized:
            raise ValueError("must not be empty")
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("QOS_DEPLOY_LOG_LEVEL must be a string.")
        normalized = value.strip().upper()
        if normalized in _LOG_LEVELS:
            return normalized
        raise ValueError(f"QOS_DEPLOY_LOG_LEVEL must be one of: {', '.join(sorted(_LOG_LEVELS))}.")

    @property
    def kube_context(self) -> str:
        return f"kind-{self.cluster_name}"


def _read_yaml_settings(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in settings file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping at the top level.")
    return data


def _resolve_path_fields(settings: DeploySettings) -> DeploySettings:
    base_dir = _resolve_path(settings.base_dir)
    updates: dict[str, Path | None] = {"base_dir": base_dir}
    for field_name in _BASE_RELATIVE_FIELDS:
        value = Path(getattr(settings, field_name)).expanduser()
        updates[field_name] = value if value.is_absolute() else (base_dir / value).resolve()
    if settings.kubeconfig is not None:
        updates["kubeconfig"] = _resolve_path(settings.kubeconfig)
    return settings.model_copy(update=updates)


def load_settings(config_path: Path | None = None, **overrides: Any) -> DeploySettings:
    values: dict[str, Any] = {}
    if config_path is not None:
        values.update(_read_yaml_settings(config_path))
    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        settings = DeploySettings(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration:\n{exc}") from exc

    return _resolve_path_fields(settings)
