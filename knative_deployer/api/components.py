from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from knative_deployer.config import Settings
from knative_deployer.db import get_session
from knative_deployer.models import ComponentStateRead, DeployInputs
from knative_deployer.provisioner import Provisioner
from knative_deployer.services.component import AppComponent
from knative_deployer.services.state import SqlStateStore

router = APIRouter(prefix="/components", tags=["components"])


def get_settings() -> Settings:
    return Settings.from_env()


def get_provisioner(settings: Settings = Depends(get_settings)) -> Provisioner:
    return Provisioner.from_settings(settings)


def _component(
    name: str,
    session: Session,
    settings: Settings,
    provisioner: Provisioner,
    app_name: str | None = None,
) -> AppComponent:
    return AppComponent(
        name,
        store=SqlStateStore(session),
        provisioner=provisioner,
        settings=settings,
        app_name=app_name,
    )


@router.get("", response_model=list[ComponentStateRead])
def list_components(session: Session = Depends(get_session)) -> list[ComponentStateRead]:
    return SqlStateStore(session).list()


@router.get("/{name}", response_model=ComponentStateRead)
def get_component(name: str, session: Session = Depends(get_session)) -> ComponentStateRead:
    return SqlStateStore(session).get(name)


@router.post("/{name}/deploy", status_code=status.HTTP_200_OK)
def deploy_component(
    name: str,
    payload: DeployInputs,
    app_name: str | None = Query(None),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    provisioner: Provisioner = Depends(get_provisioner),
) -> dict[str, Any]:
    component = _component(name, session, settings, provisioner, app_name=app_name)
    config = component.deploy(payload.to_inputs())
    return {"state": config, "warnings": [str(w) for w in component.last_warnings]}


@router.delete("/{name}", status_code=status.HTTP_200_OK)
def remove_component(
    name: str,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    provisioner: Provisioner = Depends(get_provisioner),
) -> dict[str, Any]:
    return _component(name, session, settings, provisioner).remove()
