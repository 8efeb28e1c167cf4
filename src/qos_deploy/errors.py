"""Exception hierarchy for qos-deploy.

Only the CLI layer turns these into exit codes. Anything that is merely a
warning (missing optional manifest, readiness timeout, failed check) is
reported where it happens and never raised.
"""

from __future__ import annotations


class DeployError(Exception):
    pass


class ConfigError(DeployError):
    pass


class PrerequisiteError(DeployError):
    pass


class ClusterError(DeployError):
    pass


class ManifestOrderError(DeployError):
    pass


class ManifestApplyError(DeployError):
    def __init__(self, message: str, *, filename: str) -> None:
        super().__init__(message)
        self.filename = filename


class KubectlError(DeployError):
    def __init__(self, message: str, *, args: tuple[str, ...], returncode: int) -> None:
        super().__init__(message)
        self.command = args
        self.returncode = returncode
