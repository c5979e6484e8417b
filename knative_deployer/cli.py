from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
import yaml
from fastapi.encoders import jsonable_encoder
from sqlmodel import Session

from knative_deployer.config import Settings
from knative_deployer.db import session_scope
from knative_deployer.logging_config import configure_logging
from knative_deployer.proc import AdapterCommandError
from knative_deployer.provisioner import Provisioner
from knative_deployer.services.component import AppComponent
from knative_deployer.services.errors import DeployerException
from knative_deployer.services.state import SqlStateStore

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(help="Build apps on Kubernetes and serve them with Knative", pretty_exceptions_show_locals=False)


def _parse_json_object_input(*, json_text: str | None, json_file: Path | None) -> dict:
    if json_text is not None and json_file is not None:
        raise ValueError("Provide only one of --inputs-json or --inputs-file")

    if json_file is not None:
        try:
            json_text = json_file.read_text()
        except OSError as exc:
            raise ValueError(f"Unable to read --inputs-file: {exc}") from exc
    if json_text is None:
        return {}

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON for deploy inputs: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Deploy inputs must decode to a JSON object")
    return parsed


def _exit_for_error(exc: Exception) -> None:
    logger.warning("CLI command failed: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _echo_yaml_entity(entity: object) -> None:
    encoded = jsonable_encoder(entity)
    typer.echo(yaml.safe_dump(encoded, sort_keys=False), nl=False)


def build_component(name: str, *, session: Session, app_name: str | None = None) -> AppComponent:
    settings = Settings.from_env()
    return AppComponent(
        name,
        store=SqlStateStore(session),
        provisioner=Provisioner.from_settings(settings),
        settings=settings,
        app_name=app_name,
    )


@app.command("deploy")
def deploy(
    name: str,
    *,
    src: Path = typer.Option(..., "--src", help="Source directory, .zip or tarball containing a Dockerfile."),
    app_name: str | None = typer.Option(None, "--app-name", help="App name used for the image repository."),
    inputs_json: str | None = typer.Option(
        None,
        "--inputs-json",
        help="JSON object with extra deploy inputs, e.g. '{\"namespace\": \"my-ns\"}'.",
    ),
    inputs_file: Path | None = typer.Option(
        None,
        "--inputs-file",
        help="Path to a JSON file containing extra deploy inputs.",
    ),
) -> None:
    try:
        inputs = _parse_json_object_input(json_text=inputs_json, json_file=inputs_file)
    except ValueError as e:
        _exit_for_error(e)
    inputs["src"] = str(src)

    with session_scope() as session:
        try:
            component = build_component(name, session=session, app_name=app_name)
            config = component.deploy(inputs)
        except (DeployerException, AdapterCommandError) as e:
            _exit_for_error(e)
        for warning in component.last_warnings:
            typer.echo(f"Warning: {warning}", err=True)
        _echo_yaml_entity(config)


@app.command("remove")
def remove(name: str) -> None:
    with session_scope() as session:
        try:
            result = build_component(name, session=session).remove()
        except (DeployerException, AdapterCommandError) as e:
            _exit_for_error(e)
        _echo_yaml_entity(result)


@app.command("show-state")
def show_state(name: str) -> None:
    with session_scope() as session:
        try:
            state = SqlStateStore(session).get(name)
        except DeployerException as e:
            _exit_for_error(e)
        _echo_yaml_entity(state)


@app.command("list-components")
def list_components() -> None:
    with session_scope() as session:
        _echo_yaml_entity(SqlStateStore(session).list())


if __name__ == "__main__":
    app()
