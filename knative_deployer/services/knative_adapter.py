from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from knative_deployer.proc import AdapterCommandError
from knative_deployer.services.errors import IntegrityException
from knative_deployer.services.kube_adapter import KubectlBase

logger = logging.getLogger(__name__)

KNATIVE_RESOURCE = "ksvc"


@dataclass(frozen=True)
class KnativeServiceResult:
    name: str
    namespace: str
    url: str
    changed: bool


class KnativeAdapter(KubectlBase):
    """Adapter for Knative Serving services."""

    def deploy_service(self, manifest: dict[str, Any], *, timeout: float) -> KnativeServiceResult:
        name = manifest["metadata"]["name"]
        namespace = manifest["metadata"]["namespace"]
        image = manifest["spec"]["template"]["spec"]["containers"][0]["image"]
        logger.info("Applying Knative service '%s' in namespace '%s' (image=%s)", name, namespace, image)

        applied = self._submit("apply", manifest)
        generation = self._read_generation(namespace, name)
        # Ready alone may still describe the previous generation right after apply.
        self._run(
            "wait",
            f"{KNATIVE_RESOURCE}/{name}",
            "--namespace",
            namespace,
            f"--for=jsonpath={{.status.observedGeneration}}={generation}",
            f"--timeout={int(timeout)}s",
            error_message=f"Knative service {name} did not observe generation {generation}",
        )
        self._run(
            "wait",
            f"{KNATIVE_RESOURCE}/{name}",
            "--namespace",
            namespace,
            "--for=condition=Ready",
            f"--timeout={int(timeout)}s",
            error_message=f"Knative service {name} did not become ready",
        )

        url = self.get_service_url(namespace, name)
        if not url:
            raise IntegrityException(f"Knative service {name} is ready but reports no URL")
        logger.info("Knative service '%s' is serving at %s", name, url)
        return KnativeServiceResult(name=name, namespace=namespace, url=url, changed=applied.changed)

    def get_service_url(self, namespace: str, name: str) -> str | None:
        try:
            result = self._run(
                "get",
                KNATIVE_RESOURCE,
                name,
                "--namespace",
                namespace,
                "-o",
                "jsonpath={.status.url}",
                error_message=f"Failed to read URL of Knative service {name}",
            )
        except AdapterCommandError as exc:
            if exc.not_found:
                return None
            raise
        return result.stdout.strip() or None

    def _read_generation(self, namespace: str, name: str) -> int:
        result = self._run(
            "get",
            KNATIVE_RESOURCE,
            name,
            "--namespace",
            namespace,
            "-o",
            "jsonpath={.metadata.generation}",
            error_message=f"Failed to read generation of Knative service {name}",
        )
        try:
            return int(result.stdout.strip())
        except ValueError as exc:
            raise IntegrityException(
                f"Knative service {name} reports no generation: {result.stdout.strip()!r}"
            ) from exc
