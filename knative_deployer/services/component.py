from __future__ import annotations

import logging
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any, Callable

from knative_deployer.config import RegistryCredentials, Settings
from knative_deployer.logging_config import component_context
from knative_deployer.provisioner import Provisioner
from knative_deployer.services.naming import generate_id
from knative_deployer.services.pipeline import (
    CleanupWarning,
    DeployContext,
    DeploymentPipeline,
    DEPLOY_STEPS,
    PipelineStep,
)
from knative_deployer.services.record import resolve_config, validate_inputs
from knative_deployer.services.state import StateStore

logger = logging.getLogger(__name__)


class AppComponent:
    """Builds an app from source on the cluster and serves it with Knative.

    ``deploy`` and ``remove`` read and write the component's configuration
    record through ``store``; callers are expected to serialise calls for the
    same component name.
    """

    def __init__(
        self,
        name: str,
        *,
        store: StateStore,
        provisioner: Provisioner | None = None,
        settings: Settings | None = None,
        credentials: RegistryCredentials | None = None,
        app_name: str | None = None,
        steps: tuple[PipelineStep, ...] = DEPLOY_STEPS,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        self.name = name
        self.app_name = app_name or name
        self._store = store
        self._settings = settings or Settings.from_env()
        self._provisioner = provisioner or Provisioner.from_settings(self._settings)
        self._credentials = credentials
        self._pipeline = DeploymentPipeline(store=store, steps=steps)
        self._id_factory = id_factory
        self.last_warnings: list[CleanupWarning] = []

    def deploy(self, inputs: dict[str, Any]) -> dict[str, Any]:
        with component_context(self.name):
            logger.info("Deploying app '%s' as component '%s'...", self.app_name, self.name)
            validate_inputs(inputs)
            credentials = self._credentials or RegistryCredentials.from_settings(self._settings)
            config = resolve_config(
                self.app_name,
                inputs,
                self._store.load(self.name),
                id_factory=self._id_factory,
            )

            with TemporaryDirectory(prefix=f"{config['prefix']}-") as workdir:
                ctx = DeployContext(
                    component=self.name,
                    app_name=self.app_name,
                    inputs=dict(inputs),
                    credentials=credentials,
                    settings=self._settings,
                    provisioner=self._provisioner,
                    workdir=Path(workdir),
                    id_factory=self._id_factory,
                )
                result = self._pipeline.run(ctx, config)

            self.last_warnings = result.warnings
            logger.info(
                "Deployed component '%s' namespace=%s image=%s url=%s",
                self.name,
                result.config.get("namespace"),
                result.config.get("image"),
                result.config.get("serviceUrl"),
            )
            return result.config

    def remove(self) -> dict[str, Any]:
        with component_context(self.name):
            config = self._store.load(self.name)
            namespace = config.get("namespace") or ""
            logger.info("Removing K8S Namespace '%s' for component '%s'...", namespace, self.name)
            try:
                self._provisioner.delete_namespace(name=namespace)
            finally:
                # Cleared even when deletion raised.
                self._store.clear(self.name)
            return {}
