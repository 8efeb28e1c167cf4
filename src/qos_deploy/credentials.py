"""Create-if-absent bootstrap of datastore credential secrets."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from qos_deploy.console import Reporter
from qos_deploy.kubectl import KubectlClient

LOGGER = logging.getLogger("qos_deploy.credentials")
SECURE_SECRET_COMMAND = "qos-deploy mongodb-secret"
GENERATED_PASSWORD_BYTES = 24


class SecretState(str, Enum):
    EXISTING = "existing"
    CREATED = "created"
    FAILED = "failed"


@dataclass(frozen=True)
class SecretOutcome:
    name: str
    state: SecretState
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.state is not SecretState.FAILED


class SecretBootstrapper:
    """Makes sure a credential secret exists without ever changing one that does."""

    def __init__(
        self,
        kubectl: KubectlClient,
        reporter: Reporter,
        *,
        namespace: Optional[str] = None,
    ) -> None:
        self._kubectl = kubectl
        self._reporter = reporter
        self._namespace = namespace

    def ensure(self, name: str, literals: dict[str, str]) -> SecretOutcome:
        """Create `name` with development placeholder values if it is absent."""
        self._reporter.info(f"Checking secret {name}...")
        if self._kubectl.exists("secret", name, self._namespace):
            self._reporter.info(f"✓ Secret {name} already exists")
            return SecretOutcome(name=name, state=SecretState.EXISTING)

        self._reporter.warn(f"Secret {name} not found. Creating with default credentials...")
        self._reporter.warn("SECURITY WARNING: Using default password for development only!")
        self._reporter.warn(
            f"For production, run '{SECURE_SECRET_COMMAND}' to set a secure password."
        )
        result = self._kubectl.create_generic_secret(name, literals, self._namespace)
        if not result.ok:
            message = result.error_text()
            self._reporter.error(f"✗ Failed to create secret {name}: {message}")
            return SecretOutcome(name=name, state=SecretState.FAILED, message=message)

        LOGGER.info("secret bootstrapped with placeholder credentials name=%s", name)
        self._reporter.info(f"✓ Secret {name} created with default credentials")
        return SecretOutcome(name=name, state=SecretState.CREATED)

    def create_secure(
        self,
        name: str,
        *,
        user_key: str,
        password_key: str,
        user: str,
        replace: bool = False,
    ) -> SecretOutcome:
        """Create `name` with a generated password.

        An existing secret is left alone unless `replace` is set, in which case
        it is deleted and created again.
        """
        if self._kubectl.exists("secret", name, self._namespace):
            if not replace:
                self._reporter.warn(
                    f"Secret {name} already exists; pass --replace to regenerate it."
                )
                return SecretOutcome(name=name, state=SecretState.EXISTING)
            self._reporter.warn(f"Replacing existing secret {name}")
            deleted = self._kubectl.delete("secret", name, self._namespace)
            if not deleted.ok:
                message = deleted.error_text()
                self._reporter.error(f"✗ Failed to delete secret {name}: {message}")
                return SecretOutcome(name=name, state=SecretState.FAILED, message=message)

        password = secrets.token_urlsafe(GENERATED_PASSWORD_BYTES)
        result = self._kubectl.create_generic_secret(
            name,
            {user_key: user, password_key: password},
            self._namespace,
        )
        if not result.ok:
            message = result.error_text()
            self._reporter.error(f"✗ Failed to create secret {name}: {message}")
            return SecretOutcome(name=name, state=SecretState.FAILED, message=message)

        self._reporter.info(f"✓ Secret {name} created with a generated password")
        self._reporter.info("To read the password back:")
        self._reporter.detail(
            f"kubectl get secret {name} -o jsonpath='{{.data.{password_key}}}' | base64 -d"
        )
        return SecretOutcome(name=name, state=SecretState.CREATED)
