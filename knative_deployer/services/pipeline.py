"""The deploy recipe as an ordered list of provisioning steps.

Each step takes the configuration record accumulated so far and returns an
updated copy. :class:`DeploymentPipeline` checkpoints the full record to the
state store after every step, so a failed deploy can be re-run and will reuse
the names recorded by the steps that did complete.

Transient resources (the build pod) register a :class:`CompensatingAction`
on the context. The pipeline runs those right after the step that registered
them, whether the step succeeded or not, and reports failures as
:class:`CleanupWarning` instead of failing the deploy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
import logging
from pathlib import Path
from typing import Any, Callable

from knative_deployer.config import RegistryCredentials, Settings, docker_config_json
from knative_deployer.provisioner import Provisioner
from knative_deployer.services import manifests, naming
from knative_deployer.services.archive import targzip, unpack_source
from knative_deployer.services.errors import IntegrityException, PodLookupError
from knative_deployer.services.kube_adapter import POD_PHASE_RUNNING, PodPresence
from knative_deployer.services.state import StateStore

logger = logging.getLogger(__name__)

Config = dict[str, Any]


@dataclass(frozen=True)
class CompensatingAction:
    action: str
    resource: str
    run: Callable[[], Any]


@dataclass(frozen=True)
class CleanupWarning:
    action: str
    resource: str
    error: str

    def __str__(self) -> str:
        return f"{self.action} {self.resource} failed: {self.error}"


@dataclass
class DeployContext:
    component: str
    app_name: str
    inputs: dict[str, Any]
    credentials: RegistryCredentials
    settings: Settings
    provisioner: Provisioner
    workdir: Path
    id_factory: Callable[[], str] = naming.generate_id
    compensations: list[CompensatingAction] = field(default_factory=list)
    transfer_archive: Path | None = None


@dataclass(frozen=True)
class PipelineStep:
    name: str
    run: Callable[[DeployContext, Config], Config]


@dataclass(frozen=True)
class PipelineResult:
    config: Config
    warnings: list[CleanupWarning]


def ensure_namespace(ctx: DeployContext, config: Config) -> Config:
    if config.get("namespace"):
        logger.debug("Namespace already recorded: %s", config["namespace"])
        return config
    logger.info("Deploying K8S Namespace...")
    result = ctx.provisioner.ensure_namespace(name=config["prefix"])
    return {**config, "namespace": result.name}


def deploy_config_map(ctx: DeployContext, config: Config) -> Config:
    logger.info("Deploying K8S ConfigMap...")
    manifest = manifests.config_map(
        namespace=config["namespace"],
        name=naming.CONFIG_MAP_NAME,
        prefix=config["prefix"],
        data={"config.json": docker_config_json(ctx.credentials.auth, ctx.settings.registry_url)},
    )
    result = ctx.provisioner.deploy_config_map(manifest=manifest)
    return {**config, "configMapName": result.name}


def deploy_volume_claim(ctx: DeployContext, config: Config) -> Config:
    logger.info("Ensuring K8S PersistentVolumeClaim...")
    manifest = manifests.persistent_volume_claim(
        namespace=config["namespace"],
        name=naming.pvc_name(config["prefix"]),
        prefix=config["prefix"],
        size=ctx.settings.volume_size,
    )
    result = ctx.provisioner.deploy_pvc(manifest=manifest)
    return {**config, "pvcName": result.name}


def ensure_staging_pod(ctx: DeployContext, config: Config) -> Config:
    namespace = config["namespace"]
    prefix = config["prefix"]
    pod_name = naming.fs_pod_name(prefix)
    logger.info('Ensuring K8S "%s" Pod...', pod_name)

    lookup = ctx.provisioner.read_pod(namespace=namespace, name=pod_name)
    if lookup.presence is PodPresence.TRANSIENT_ERROR:
        raise PodLookupError(
            f"Could not determine whether pod {pod_name} exists in namespace {namespace}: {lookup.error}",
            namespace=namespace,
            name=pod_name,
        )
    if lookup.presence is PodPresence.NOT_FOUND:
        ctx.provisioner.create_pod(
            manifest=manifests.staging_pod(
                namespace=namespace,
                name=pod_name,
                container_name=naming.fs_container_name(prefix),
                prefix=prefix,
                image=ctx.settings.staging_image,
                claim_name=config.get("pvcName") or naming.pvc_name(prefix),
                mount_path=ctx.settings.mount_path,
            )
        )
        ctx.provisioner.wait_for_pod_phase(
            namespace=namespace,
            name=pod_name,
            phase=POD_PHASE_RUNNING,
            timeout=ctx.settings.pod_timeout,
            interval=ctx.settings.poll_interval,
        )
    else:
        logger.debug("Staging pod %s already exists (phase=%s)", pod_name, lookup.phase)
    return {**config, "fsPodName": pod_name}


def package_source(ctx: DeployContext, config: Config) -> Config:
    # Read src from the caller's inputs: the merged record may hold a stale src from an earlier run.
    src = ctx.inputs.get("src")
    if not src:
        raise IntegrityException("deploy inputs must include 'src'")
    archive = naming.archive_name(config["prefix"])
    source_dir = unpack_source(src, ctx.workdir / "src")
    build_context = targzip(source_dir, archive, ctx.workdir / "context")
    # Wrapped a second time: the upload untars stdin inside the pod, leaving the build context tarball on the volume.
    ctx.transfer_archive = targzip(build_context, archive, ctx.workdir / "transfer")
    logger.info("Packaged %s into %s", src, ctx.transfer_archive)
    return {**config, "archiveName": archive}


def upload_source(ctx: DeployContext, config: Config) -> Config:
    if ctx.transfer_archive is None:
        raise IntegrityException("Source must be packaged before it can be uploaded")
    pod_name = config.get("fsPodName") or naming.fs_pod_name(config["prefix"])
    logger.info('Uploading file "%s" to "%s"...', ctx.transfer_archive, pod_name)
    with ctx.transfer_archive.open("rb") as stdin:
        ctx.provisioner.exec_in_pod(
            namespace=config["namespace"],
            name=pod_name,
            container=naming.fs_container_name(config["prefix"]),
            command=["tar", "-xzf", "-", "-C", ctx.settings.mount_path],
            stdin=stdin,
        )
    return config


def build_image(ctx: DeployContext, config: Config) -> Config:
    namespace = config["namespace"]
    prefix = config["prefix"]
    # Tags are unique per deploy.
    tag = ctx.id_factory()
    pod_name = naming.build_pod_name(prefix, tag)
    repository = naming.image_repository(ctx.credentials.username, ctx.app_name)
    destination = f"{repository}:{tag}"
    logger.info('Running K8S "%s" Pod...', pod_name)

    ctx.provisioner.create_pod(
        manifest=manifests.build_pod(
            namespace=namespace,
            name=pod_name,
            container_name=naming.build_container_name(prefix, tag),
            prefix=prefix,
            image=ctx.settings.builder_image,
            claim_name=config.get("pvcName") or naming.pvc_name(prefix),
            config_map_name=config.get("configMapName") or naming.CONFIG_MAP_NAME,
            mount_path=ctx.settings.mount_path,
            archive=config.get("archiveName") or naming.archive_name(prefix),
            destination=destination,
        )
    )
    ctx.compensations.append(
        CompensatingAction(
            action="delete build pod",
            resource=f"{namespace}/{pod_name}",
            run=partial(ctx.provisioner.delete_pod, namespace=namespace, name=pod_name),
        )
    )
    ctx.provisioner.wait_for_pod_phase(
        namespace=namespace,
        name=pod_name,
        phase=ctx.settings.build_wait_phase,
        timeout=ctx.settings.pod_timeout,
        interval=ctx.settings.poll_interval,
    )
    return {**config, "repository": repository, "buildTag": tag, "image": destination}


def deploy_runtime_service(ctx: DeployContext, config: Config) -> Config:
    logger.info("Deploying Knative Serving...")
    repository = config.get("repository") or naming.image_repository(ctx.credentials.username, ctx.app_name)
    manifest = manifests.knative_service(
        namespace=config["namespace"],
        name=naming.service_name(config["prefix"]),
        prefix=config["prefix"],
        repository=repository,
        tag=config["buildTag"],
    )
    result = ctx.provisioner.deploy_knative_service(manifest=manifest, timeout=ctx.settings.service_timeout)
    return {**config, "serviceName": result.name, "serviceUrl": result.url}


DEPLOY_STEPS: tuple[PipelineStep, ...] = (
    PipelineStep("namespace", ensure_namespace),
    PipelineStep("config_map", deploy_config_map),
    PipelineStep("volume_claim", deploy_volume_claim),
    PipelineStep("staging_pod", ensure_staging_pod),
    PipelineStep("package_source", package_source),
    PipelineStep("upload_source", upload_source),
    PipelineStep("build_image", build_image),
    PipelineStep("runtime_service", deploy_runtime_service),
)


def run_compensations(ctx: DeployContext) -> list[CleanupWarning]:
    warnings: list[CleanupWarning] = []
    while ctx.compensations:
        action = ctx.compensations.pop()
        logger.info("Running cleanup: %s %s", action.action, action.resource)
        try:
            action.run()
        except Exception as exc:
            warning = CleanupWarning(action=action.action, resource=action.resource, error=str(exc))
            logger.warning(
                "Cleanup '%s' of %s failed; the namespace removal will reclaim it: %s",
                action.action,
                action.resource,
                exc,
            )
            warnings.append(warning)
    return warnings


class DeploymentPipeline:
    def __init__(self, *, store: StateStore, steps: tuple[PipelineStep, ...] = DEPLOY_STEPS) -> None:
        self._store = store
        self._steps = steps

    def run(self, ctx: DeployContext, config: Config) -> PipelineResult:
        warnings: list[CleanupWarning] = []
        for step in self._steps:
            logger.debug("Running step '%s' for component=%s", step.name, ctx.component)
            try:
                config = step.run(ctx, config)
            except Exception:
                logger.error("Step '%s' failed for component=%s", step.name, ctx.component)
                raise
            finally:
                warnings.extend(run_compensations(ctx))
            self._store.save(ctx.component, config)
        return PipelineResult(config=config, warnings=warnings)
