from __future__ import annotations

from dataclasses import dataclass
import enum
import json
import logging
from pathlib import Path
from tempfile import NamedTemporaryFile
import time
from typing import Any, BinaryIO, Callable

from knative_deployer.proc import AdapterCommandError, CommandRunner, run_command
from knative_deployer.services.errors import PodPhaseError, WaitTimeoutError

logger = logging.getLogger(__name__)

POD_PHASE_RUNNING = "Running"
POD_PHASE_SUCCEEDED = "Succeeded"
POD_PHASE_FAILED = "Failed"


@dataclass(frozen=True)
class NamespaceResult:
    name: str
    exists: bool
    changed: bool


@dataclass(frozen=True)
class AppliedResource:
    kind: str
    name: str
    namespace: str | None
    changed: bool


class PodPresence(enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not-found"
    TRANSIENT_ERROR = "transient-error"


@dataclass(frozen=True)
class PodLookupResult:
    namespace: str
    name: str
    presence: PodPresence
    phase: str | None = None
    error: str | None = None


class KubectlBase:
    def __init__(
        self,
        *,
        kubectl: str = "kubectl",
        context: str | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self._kubectl = kubectl
        self._context = context
        self._runner = runner

    def _cmd(self, *args: str) -> list[str]:
        cmd = [self._kubectl]
        if self._context:
            cmd.extend(["--context", self._context])
        cmd.extend(args)
        return cmd

    def _run(self, *args: str, error_message: str, stdin: BinaryIO | None = None):
        return run_command(
            self._cmd(*args),
            runner=self._runner,
            stdin=stdin,
            error_message=error_message,
        )

    def _submit(self, verb: str, manifest: dict[str, Any]) -> AppliedResource:
        kind = manifest["kind"]
        metadata = manifest.get("metadata", {})
        name = metadata["name"]
        namespace = metadata.get("namespace")
        with manifest_file(manifest) as path:
            result = self._run(verb, "-f", str(path), error_message=f"Failed to {verb} {kind} {name}")
        # kubectl prints e.g. "configmap/docker-config unchanged"
        changed = not result.stdout.strip().lower().endswith("unchanged")
        logger.debug("%s %s/%s in namespace=%s changed=%s", verb, kind, name, namespace, changed)
        return AppliedResource(kind=kind, name=name, namespace=namespace, changed=changed)


class KubeAdapter(KubectlBase):
    """Adapter for the core Kubernetes objects the deploy pipeline touches."""

    def __init__(
        self,
        *,
        kubectl: str = "kubectl",
        context: str | None = None,
        runner: CommandRunner | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(kubectl=kubectl, context=context, runner=runner)
        self._sleep = sleep
        self._clock = clock

    def ensure_namespace(self, name: str) -> NamespaceResult:
        logger.info("Ensuring Kubernetes namespace exists: %s", name)
        if self.namespace_exists(name):
            logger.debug("Namespace already exists: %s", name)
            return NamespaceResult(name=name, exists=True, changed=False)

        self._run("create", "namespace", name, error_message=f"Failed to create namespace {name}")
        logger.info("Created namespace: %s", name)
        return NamespaceResult(name=name, exists=True, changed=True)

    def delete_namespace(self, name: str) -> NamespaceResult:
        # Namespace deletion finishes asynchronously; the cluster cascades to everything inside.
        logger.info("Deleting Kubernetes namespace: %s", name)
        self._run(
            "delete",
            "namespace",
            name,
            "--wait=false",
            error_message=f"Failed to delete namespace {name}",
        )
        return NamespaceResult(name=name, exists=False, changed=True)

    def namespace_exists(self, name: str) -> bool:
        try:
            self._run("get", "namespace", name, "-o", "name", error_message=f"Failed to check namespace {name}")
            return True
        except AdapterCommandError as exc:
            if exc.not_found:
                return False
            raise

    def apply_manifest(self, manifest: dict[str, Any]) -> AppliedResource:
        return self._submit("apply", manifest)

    def create_pod(self, manifest: dict[str, Any]) -> AppliedResource:
        logger.info("Creating pod %s", manifest["metadata"]["name"])
        return self._submit("create", manifest)

    def read_pod(self, namespace: str, name: str) -> PodLookupResult:
        try:
            result = self._run(
                "get",
                "pod",
                name,
                "--namespace",
                namespace,
                "-o",
                "json",
                error_message=f"Failed to read pod {name}",
            )
        except AdapterCommandError as exc:
            if exc.not_found:
                logger.debug("Pod not found: %s/%s", namespace, name)
                return PodLookupResult(namespace=namespace, name=name, presence=PodPresence.NOT_FOUND)
            logger.warning("Pod lookup failed for %s/%s: %s", namespace, name, exc)
            return PodLookupResult(
                namespace=namespace,
                name=name,
                presence=PodPresence.TRANSIENT_ERROR,
                error=str(exc),
            )

        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError:
            payload = {}
        status = payload.get("status", {}) if isinstance(payload, dict) else {}
        phase = status.get("phase") if isinstance(status, dict) else None
        return PodLookupResult(
            namespace=namespace,
            name=name,
            presence=PodPresence.FOUND,
            phase=phase if isinstance(phase, str) else None,
        )

    def get_pod_phase(self, namespace: str, name: str) -> str:
        result = self._run(
            "get",
            "pod",
            name,
            "--namespace",
            namespace,
            "-o",
            "jsonpath={.status.phase}",
            error_message=f"Failed to read phase of pod {name}",
        )
        return result.stdout.strip()

    def wait_for_pod_phase(
        self,
        namespace: str,
        name: str,
        *,
        phase: str = POD_PHASE_RUNNING,
        timeout: float,
        interval: float,
    ) -> str:
        """Poll until ``name`` reaches ``phase`` and return the phase observed.

        A pod that already ran to completion counts as having been Running.
        Reaching Failed raises :class:`PodPhaseError` unless Failed was asked for.
        """
        logger.info("Waiting for pod %s/%s to reach phase %s", namespace, name, phase)
        accepted = {phase}
        if phase == POD_PHASE_RUNNING:
            accepted.add(POD_PHASE_SUCCEEDED)
        deadline = self._clock() + timeout
        while True:
            current = self.get_pod_phase(namespace, name)
            logger.debug("Pod %s/%s phase=%s", namespace, name, current or "<none>")
            if current in accepted:
                return current
            if current == POD_PHASE_FAILED:
                raise PodPhaseError(
                    f"Pod {name} in namespace {namespace} failed while waiting for phase {phase}",
                    namespace=namespace,
                    name=name,
                    phase=current,
                )
            if self._clock() >= deadline:
                raise WaitTimeoutError(
                    f"Timed out after {timeout:g}s waiting for pod {name} in namespace {namespace} "
                    f"to reach phase {phase} (last phase: {current or 'unknown'})"
                )
            self._sleep(interval)

    def exec_in_pod(
        self,
        namespace: str,
        name: str,
        *,
        container: str,
        command: list[str],
        stdin: BinaryIO | None = None,
    ) -> None:
        args = ["exec"]
        if stdin is not None:
            args.append("-i")
        args.extend([name, "--namespace", namespace, "--container", container, "--", *command])
        self._run(*args, stdin=stdin, error_message=f"Failed to exec {command[0]!r} in pod {name}")

    def delete_pod(self, namespace: str, name: str, *, wait: bool = False) -> None:
        logger.info("Deleting pod %s/%s", namespace, name)
        self._run(
            "delete",
            "pod",
            name,
            "--namespace",
            namespace,
            f"--wait={'true' if wait else 'false'}",
            error_message=f"Failed to delete pod {name}",
        )


class manifest_file:
    def __init__(self, manifest: dict[str, Any]) -> None:
        self._manifest = manifest
        self.path: Path | None = None

    def __enter__(self) -> Path:
        tmp = NamedTemporaryFile(mode="w", encoding="utf-8", suffix=".json", delete=False)
        with tmp:
            json.dump(self._manifest, tmp)
        self.path = Path(tmp.name)
        logger.debug("Wrote temporary manifest file: %s", self.path)
        return self.path

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.path and self.path.exists():
            self.path.unlink()
