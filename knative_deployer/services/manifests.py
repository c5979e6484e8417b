"""Manifest builders for every resource the deploy pipeline creates.

All functions are pure and return plain JSON-serialisable dicts which the
adapters hand to ``kubectl``. Names are passed in rather than derived here so
that callers decide naming (see ``naming``) and tests can assert on them.
"""

from __future__ import annotations

from typing import Any

from knative_deployer.services.naming import (
    KANIKO_DOCKER_CONFIG_PATH,
    STAGING_VOLUME_NAME,
)

MANAGED_BY = "knative-deployer"
PREFIX_LABEL = "knative-deployer/prefix"
COMPONENT_LABEL = "knative-deployer/component"


def standard_labels(prefix: str, component: str) -> dict[str, str]:
    return {
        "app.kubernetes.io/managed-by": MANAGED_BY,
        PREFIX_LABEL: prefix,
        COMPONENT_LABEL: component,
    }


def _metadata(*, name: str, namespace: str, prefix: str, component: str) -> dict[str, Any]:
    return {
        "name": name,
        "namespace": namespace,
        "labels": standard_labels(prefix, component),
    }


def _claim_volume(claim_name: str) -> dict[str, Any]:
    return {
        "name": STAGING_VOLUME_NAME,
        "persistentVolumeClaim": {"claimName": claim_name},
    }


def config_map(*, namespace: str, name: str, prefix: str, data: dict[str, str]) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(name=name, namespace=namespace, prefix=prefix, component="registry-auth"),
        "data": dict(data),
    }


def persistent_volume_claim(
    *,
    namespace: str,
    name: str,
    prefix: str,
    size: str,
    access_mode: str = "ReadWriteOnce",
) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _metadata(name=name, namespace=namespace, prefix=prefix, component="storage"),
        "spec": {
            "accessModes": [access_mode],
            "resources": {"requests": {"storage": size}},
        },
    }


def staging_pod(
    *,
    namespace: str,
    name: str,
    container_name: str,
    prefix: str,
    image: str,
    claim_name: str,
    mount_path: str,
) -> dict[str, Any]:
    """Long-running pod holding the build context on the shared claim.

    Any image works as long as it ships ``tar``.
    """
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(name=name, namespace=namespace, prefix=prefix, component="staging"),
        "spec": {
            "containers": [
                {
                    "name": container_name,
                    "image": image,
                    "command": ["tail", "-f", "/dev/null"],
                    "volumeMounts": [{"name": STAGING_VOLUME_NAME, "mountPath": mount_path}],
                }
            ],
            "volumes": [_claim_volume(claim_name)],
        },
    }


def kaniko_args(*, mount_path: str, archive: str, destination: str) -> list[str]:
    return [
        "--dockerfile=Dockerfile",
        f"--context=tar://{mount_path}/{archive}",
        f"--destination={destination}",
    ]


def build_pod(
    *,
    namespace: str,
    name: str,
    container_name: str,
    prefix: str,
    image: str,
    claim_name: str,
    config_map_name: str,
    mount_path: str,
    archive: str,
    destination: str,
) -> dict[str, Any]:
    """One-shot kaniko pod that builds from the staged tarball and pushes ``destination``."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(name=name, namespace=namespace, prefix=prefix, component="build"),
        "spec": {
            "containers": [
                {
                    "name": container_name,
                    "image": image,
                    "args": kaniko_args(mount_path=mount_path, archive=archive, destination=destination),
                    "volumeMounts": [
                        {"name": config_map_name, "mountPath": KANIKO_DOCKER_CONFIG_PATH},
                        {"name": STAGING_VOLUME_NAME, "mountPath": mount_path},
                    ],
                }
            ],
            "restartPolicy": "Never",
            "volumes": [
                {"name": config_map_name, "configMap": {"name": config_map_name}},
                _claim_volume(claim_name),
            ],
        },
    }


def knative_service(
    *,
    namespace: str,
    name: str,
    prefix: str,
    repository: str,
    tag: str,
) -> dict[str, Any]:
    # A new tag yields a new revision.
    return {
        "apiVersion": "serving.knative.dev/v1",
        "kind": "Service",
        "metadata": _metadata(name=name, namespace=namespace, prefix=prefix, component="runtime"),
        "spec": {
            "template": {
                "metadata": {"labels": standard_labels(prefix, "runtime")},
                "spec": {
                    "containers": [
                        {
                            "image": f"{repository}:{tag}",
                        }
                    ]
                },
            }
        },
    }
