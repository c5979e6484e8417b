from __future__ import annotations

import logging
from typing import Any, BinaryIO

from knative_deployer.config import Settings
from knative_deployer.services.kube_adapter import (
    AppliedResource,
    KubeAdapter,
    NamespaceResult,
    PodLookupResult,
)
from knative_deployer.services.knative_adapter import KnativeAdapter, KnativeServiceResult

logger = logging.getLogger(__name__)


class Provisioner:
    """Facade over the kubectl adapters used by the deploy pipeline."""

    def __init__(self, *, kube: KubeAdapter | None = None, knative: KnativeAdapter | None = None) -> None:
        self.kube = kube or KubeAdapter()
        self.knative = knative or KnativeAdapter()

    @classmethod
    def from_settings(cls, settings: Settings) -> Provisioner:
        logger.debug("Using kubectl=%s context=%s", settings.kubectl, settings.kube_context or "<current>")
        return cls(
            kube=KubeAdapter(kubectl=settings.kubectl, context=settings.kube_context),
            knative=KnativeAdapter(kubectl=settings.kubectl, context=settings.kube_context),
        )

    def ensure_namespace(self, *, name: str) -> NamespaceResult:
        return self.kube.ensure_namespace(name)

    def delete_namespace(self, *, name: str) -> NamespaceResult:
        return self.kube.delete_namespace(name)

    def deploy_config_map(self, *, manifest: dict[str, Any]) -> AppliedResource:
        return self.kube.apply_manifest(manifest)

    def deploy_pvc(self, *, manifest: dict[str, Any]) -> AppliedResource:
        return self.kube.apply_manifest(manifest)

    def read_pod(self, *, namespace: str, name: str) -> PodLookupResult:
        return self.kube.read_pod(namespace, name)

    def create_pod(self, *, manifest: dict[str, Any]) -> AppliedResource:
        return self.kube.create_pod(manifest)

    def wait_for_pod_phase(
        self,
        *,
        namespace: str,
        name: str,
        phase: str,
        timeout: float,
        interval: float,
    ) -> str:
        return self.kube.wait_for_pod_phase(namespace, name, phase=phase, timeout=timeout, interval=interval)

    def exec_in_pod(
        self,
        *,
        namespace: str,
        name: str,
        container: str,
        command: list[str],
        stdin: BinaryIO | None = None,
    ) -> None:
        self.kube.exec_in_pod(namespace, name, container=container, command=command, stdin=stdin)

    def delete_pod(self, *, namespace: str, name: str) -> None:
        self.kube.delete_pod(namespace, name)

    def deploy_knative_service(self, *, manifest: dict[str, Any], timeout: float) -> KnativeServiceResult:
        return self.knative.deploy_service(manifest, timeout=timeout)
