from __future__ import annotations

from copy import deepcopy
from typing import Any, Callable, Mapping

from jsonschema import ValidationError
from jsonschema import validate as jsonschema_validate

from knative_deployer.services.errors import IntegrityException
from knative_deployer.services.naming import MAX_PREFIX_LEN, generate_id, generate_prefix

DEPLOY_INPUTS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "src": {"type": "string", "minLength": 1},
        "namespace": {"type": ["string", "null"]},
        "prefix": {
            "type": "string",
            "maxLength": MAX_PREFIX_LEN,
            "pattern": "^[a-z0-9]([a-z0-9-]*[a-z0-9])?$",
        },
    },
    "required": ["src"],
}


def validate_inputs(inputs: Any) -> None:
    """Presence checks for deploy inputs; extra caller fields are allowed."""
    if not isinstance(inputs, dict):
        raise IntegrityException("deploy inputs must be a JSON object")
    try:
        jsonschema_validate(instance=inputs, schema=DEPLOY_INPUTS_SCHEMA)
    except ValidationError as exc:
        raise IntegrityException(f"deploy inputs are invalid: {exc.message}") from exc


def resolve_config(
    app_name: str,
    inputs: Mapping[str, Any] | None,
    state: Mapping[str, Any] | None,
    *,
    id_factory: Callable[[], str] = generate_id,
) -> dict[str, Any]:
    """Layer defaults < inputs < persisted state into one configuration record.

    Persisted state wins so that a re-deploy keeps the prefix and namespace
    established by an earlier run.
    """
    defaults = {"prefix": generate_prefix(app_name, suffix=id_factory())}
    config: dict[str, Any] = dict(defaults)
    config.update(deepcopy(dict(inputs or {})))
    config.update(deepcopy(dict(state or {})))
    return config
