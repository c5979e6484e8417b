from __future__ import annotations

import io
import tarfile
from typing import Any, BinaryIO

from knative_deployer.services.knative_adapter import KnativeServiceResult
from knative_deployer.services.kube_adapter import (
    AppliedResource,
    NamespaceResult,
    PodLookupResult,
    PodPresence,
)


class FakeProvisioner:
    """Records every call and keeps just enough cluster state to answer reads."""

    def __init__(self, *, domain: str = "apps.example.test") -> None:
        self.calls: list[tuple[str, dict]] = []
        self.domain = domain
        self.namespaces: set[str] = set()
        self.pods: dict[tuple[str, str], dict[str, Any]] = {}
        self.uploads: list[bytes] = []
        self.read_pod_presence: PodPresence | None = None
        self.raise_on_delete_pod: Exception | None = None
        self.raise_on_delete_namespace: Exception | None = None
        self.raise_on_service: Exception | None = None
        self.wait_errors: dict[str, Exception] = {}

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def calls_named(self, name: str) -> list[dict]:
        return [kwargs for call, kwargs in self.calls if call == name]

    def ensure_namespace(self, *, name: str) -> NamespaceResult:
        self.calls.append(("ensure_namespace", {"name": name}))
        changed = name not in self.namespaces
        self.namespaces.add(name)
        return NamespaceResult(name=name, exists=True, changed=changed)

    def delete_namespace(self, *, name: str) -> NamespaceResult:
        self.calls.append(("delete_namespace", {"name": name}))
        if self.raise_on_delete_namespace is not None:
            raise self.raise_on_delete_namespace
        self.namespaces.discard(name)
        return NamespaceResult(name=name, exists=False, changed=True)

    def _applied(self, manifest: dict) -> AppliedResource:
        meta = manifest["metadata"]
        return AppliedResource(kind=manifest["kind"], name=meta["name"], namespace=meta.get("namespace"), changed=True)

    def deploy_config_map(self, *, manifest: dict) -> AppliedResource:
        self.calls.append(("deploy_config_map", {"manifest": manifest}))
        return self._applied(manifest)

    def deploy_pvc(self, *, manifest: dict) -> AppliedResource:
        self.calls.append(("deploy_pvc", {"manifest": manifest}))
        return self._applied(manifest)

    def read_pod(self, *, namespace: str, name: str) -> PodLookupResult:
        self.calls.append(("read_pod", {"namespace": namespace, "name": name}))
        if self.read_pod_presence is not None:
            presence = self.read_pod_presence
        elif (namespace, name) in self.pods:
            presence = PodPresence.FOUND
        else:
            presence = PodPresence.NOT_FOUND
        error = "Unable to connect to the server" if presence is PodPresence.TRANSIENT_ERROR else None
        return PodLookupResult(namespace=namespace, name=name, presence=presence, error=error)

    def create_pod(self, *, manifest: dict) -> AppliedResource:
        self.calls.append(("create_pod", {"manifest": manifest}))
        meta = manifest["metadata"]
        self.pods[(meta["namespace"], meta["name"])] = manifest
        return self._applied(manifest)

    def wait_for_pod_phase(self, *, namespace: str, name: str, phase: str, timeout: float, interval: float) -> str:
        self.calls.append(
            (
                "wait_for_pod_phase",
                {"namespace": namespace, "name": name, "phase": phase, "timeout": timeout, "interval": interval},
            )
        )
        if name in self.wait_errors:
            raise self.wait_errors[name]
        return phase

    def exec_in_pod(
        self,
        *,
        namespace: str,
        name: str,
        container: str,
        command: list[str],
        stdin: BinaryIO | None = None,
    ) -> None:
        self.calls.append(
            ("exec_in_pod", {"namespace": namespace, "name": name, "container": container, "command": command})
        )
        self.uploads.append(stdin.read() if stdin is not None else b"")

    def delete_pod(self, *, namespace: str, name: str) -> None:
        self.calls.append(("delete_pod", {"namespace": namespace, "name": name}))
        if self.raise_on_delete_pod is not None:
            raise self.raise_on_delete_pod
        self.pods.pop((namespace, name), None)

    def deploy_knative_service(self, *, manifest: dict, timeout: float) -> KnativeServiceResult:
        self.calls.append(("deploy_knative_service", {"manifest": manifest, "timeout": timeout}))
        if self.raise_on_service is not None:
            raise self.raise_on_service
        meta = manifest["metadata"]
        return KnativeServiceResult(
            name=meta["name"],
            namespace=meta["namespace"],
            url=f"http://{meta['name']}.{meta['namespace']}.{self.domain}",
            changed=True,
        )


class RecordingStore:
    """In-memory state store that keeps every checkpoint."""

    def __init__(self, initial: dict[str, dict] | None = None) -> None:
        self.states: dict[str, dict] = {k: dict(v) for k, v in (initial or {}).items()}
        self.saves: list[tuple[str, dict]] = []
        self.clears: list[str] = []

    def load(self, name: str) -> dict:
        return dict(self.states.get(name, {}))

    def save(self, name: str, config: dict) -> None:
        self.saves.append((name, dict(config)))
        self.states[name] = dict(config)

    def clear(self, name: str) -> None:
        self.clears.append(name)
        self.states[name] = {}


class SequenceIds:
    """Deterministic stand-in for ``generate_id``."""

    def __init__(self, *ids: str) -> None:
        self._ids = list(ids)
        self.issued: list[str] = []

    def __call__(self) -> str:
        value = self._ids.pop(0)
        self.issued.append(value)
        return value


def read_tar_members(data: bytes) -> dict[str, bytes]:
    members: dict[str, bytes] = {}
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tf:
        for member in tf.getmembers():
            if member.isfile():
                extracted = tf.extractfile(member)
                assert extracted is not None
                members[member.name] = extracted.read()
    return members
