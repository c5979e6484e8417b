from __future__ import annotations

import base64
from dataclasses import dataclass
import os

from knative_deployer.services.errors import IntegrityException

_ENV_PREFIX = "KNATIVE_DEPLOYER_"

DEFAULT_REGISTRY_URL = "https://index.docker.io/v1/"
DEFAULT_DATABASE_URL = "sqlite:///./knative-deployer.db"


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(f"{_ENV_PREFIX}{name}")
    if value is None or value == "":
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise IntegrityException(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    kubectl: str = "kubectl"
    kube_context: str | None = None
    registry_url: str = DEFAULT_REGISTRY_URL
    registry_username: str | None = None
    registry_auth: str | None = None
    registry_password: str | None = None
    staging_image: str = "ubuntu:latest"
    builder_image: str = "gcr.io/kaniko-project/executor:latest"
    volume_size: str = "10Gi"
    mount_path: str = "/data"
    pod_timeout: float = 600.0
    poll_interval: float = 2.0
    service_timeout: float = 300.0
    build_wait_phase: str = "Succeeded"

    @classmethod
    def from_env(cls) -> Settings:
        build_wait_phase = _env("BUILD_WAIT_PHASE", "Succeeded")
        if build_wait_phase not in ("Running", "Succeeded"):
            raise IntegrityException(
                f"{_ENV_PREFIX}BUILD_WAIT_PHASE must be 'Running' or 'Succeeded', got {build_wait_phase!r}"
            )
        return cls(
            kubectl=_env("KUBECTL", "kubectl"),
            kube_context=_env("KUBE_CONTEXT"),
            registry_url=_env("REGISTRY_URL", DEFAULT_REGISTRY_URL),
            registry_username=_env("REGISTRY_USERNAME"),
            registry_auth=_env("REGISTRY_AUTH"),
            registry_password=_env("REGISTRY_PASSWORD"),
            staging_image=_env("STAGING_IMAGE", "ubuntu:latest"),
            builder_image=_env("BUILDER_IMAGE", "gcr.io/kaniko-project/executor:latest"),
            volume_size=_env("VOLUME_SIZE", "10Gi"),
            mount_path=_env("MOUNT_PATH", "/data"),
            pod_timeout=_env_float("POD_TIMEOUT", 600.0),
            poll_interval=_env_float("POLL_INTERVAL", 2.0),
            service_timeout=_env_float("SERVICE_TIMEOUT", 300.0),
            build_wait_phase=build_wait_phase,
        )


@dataclass(frozen=True)
class RegistryCredentials:
    username: str
    auth: str

    @classmethod
    def from_settings(cls, settings: Settings) -> RegistryCredentials:
        if not settings.registry_username:
            raise IntegrityException(f"{_ENV_PREFIX}REGISTRY_USERNAME is required")
        auth = settings.registry_auth
        if not auth and settings.registry_password:
            token = f"{settings.registry_username}:{settings.registry_password}".encode("utf-8")
            auth = base64.b64encode(token).decode("ascii")
        if not auth:
            raise IntegrityException(
                f"One of {_ENV_PREFIX}REGISTRY_AUTH or {_ENV_PREFIX}REGISTRY_PASSWORD is required"
            )
        return cls(username=settings.registry_username, auth=auth)


def docker_config_json(auth: str, registry_url: str = DEFAULT_REGISTRY_URL) -> str:
    # Layout is fixed byte for byte.
    return f'{{ "auths": {{ "{registry_url}": {{ "auth": "{auth}" }} }} }}'
