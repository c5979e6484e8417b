from __future__ import annotations

import re
import secrets

from knative_deployer.services.errors import IntegrityException

DNS_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_HYPHEN_RUN_RE = re.compile(r"-+")

MAX_DNS_LABEL_LEN = 63
ID_LEN = 6
# Longest derived name is "<prefix>-<tag>-kaniko-container" and must stay a DNS label.
_BUILD_CONTAINER_OVERHEAD = len("-") + ID_LEN + len("-kaniko-container")
MAX_PREFIX_LEN = MAX_DNS_LABEL_LEN - _BUILD_CONTAINER_OVERHEAD
MAX_APP_SLUG_LEN = MAX_PREFIX_LEN - (ID_LEN + 1)

CONFIG_MAP_NAME = "docker-config"
STAGING_VOLUME_NAME = "data"
KANIKO_DOCKER_CONFIG_PATH = "/kaniko/.docker/"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify_token(value: str) -> str:
    lowered = value.lower()
    replaced = _NON_ALNUM_RE.sub("-", lowered)
    collapsed = _HYPHEN_RUN_RE.sub("-", replaced)
    return collapsed.strip("-")


def is_valid_dns_label(value: str) -> bool:
    return bool(DNS_LABEL_RE.fullmatch(value))


def generate_id() -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(ID_LEN))


def app_slug(app_name: str) -> str:
    slug = slugify_token(app_name)[:MAX_APP_SLUG_LEN].strip("-")
    if not slug:
        raise IntegrityException(f"App name {app_name!r} does not contain any usable characters")
    return slug


def generate_prefix(app_name: str, *, suffix: str | None = None) -> str:
    prefix = f"{app_slug(app_name)}-{suffix if suffix is not None else generate_id()}"
    if len(prefix) > MAX_PREFIX_LEN or not is_valid_dns_label(prefix):
        raise IntegrityException(f"Generated prefix {prefix!r} is not a valid DNS label")
    return prefix


def fs_pod_name(prefix: str) -> str:
    return f"{prefix}-fs"


def fs_container_name(prefix: str) -> str:
    return f"{fs_pod_name(prefix)}-container"


def pvc_name(prefix: str) -> str:
    return f"{prefix}-fs-pvc"


def archive_name(prefix: str) -> str:
    return f"{prefix}.tar.gz"


def build_pod_name(prefix: str, tag: str) -> str:
    return f"{prefix}-{tag}-kaniko"


def build_container_name(prefix: str, tag: str) -> str:
    return f"{build_pod_name(prefix, tag)}-container"


def service_name(prefix: str) -> str:
    return f"{prefix}-knative"


def image_repository(registry_username: str, app_name: str) -> str:
    # Not a DNS label, so never truncated.
    repository = slugify_token(app_name)
    if not repository:
        raise IntegrityException(f"App name {app_name!r} does not contain any usable characters")
    return f"{registry_username}/{repository}"
