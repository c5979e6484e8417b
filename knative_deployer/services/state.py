from __future__ import annotations

from copy import deepcopy
from datetime import datetime
import logging
from typing import Any, Protocol

from sqlmodel import Session, select

from knative_deployer.models import ComponentStateORM, ComponentStateRead
from knative_deployer.services.errors import NotFoundException

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def load(self, name: str) -> dict[str, Any]: ...

    def save(self, name: str, config: dict[str, Any]) -> None: ...

    def clear(self, name: str) -> None: ...


class SqlStateStore:
    """Persist component configuration records in the ``component_state`` table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _get(self, name: str) -> ComponentStateORM | None:
        return self._session.exec(select(ComponentStateORM).where(ComponentStateORM.name == name)).one_or_none()

    def load(self, name: str) -> dict[str, Any]:
        row = self._get(name)
        if row is None:
            return {}
        return deepcopy(row.state_json)

    def save(self, name: str, config: dict[str, Any]) -> None:
        row = self._get(name)
        now = datetime.utcnow()
        if row is None:
            row = ComponentStateORM(name=name, state_json=deepcopy(config), created_at=now, updated_at=now)
        else:
            # JSON columns only track reassignment, not in-place mutation.
            row.state_json = deepcopy(config)
            row.updated_at = now
        self._session.add(row)
        self._session.commit()
        logger.debug("Saved state for component=%s keys=%s", name, sorted(config))

    def clear(self, name: str) -> None:
        row = self._get(name)
        if row is None:
            return
        row.state_json = {}
        row.updated_at = datetime.utcnow()
        self._session.add(row)
        self._session.commit()
        logger.info("Cleared state for component=%s", name)

    def get(self, name: str) -> ComponentStateRead:
        row = self._get(name)
        if row is None:
            raise NotFoundException(f"Component {name} not found")
        return _to_read(row)

    def list(self) -> list[ComponentStateRead]:
        rows = self._session.exec(select(ComponentStateORM).order_by(ComponentStateORM.name)).all()
        return [_to_read(row) for row in rows]


def _to_read(row: ComponentStateORM) -> ComponentStateRead:
    return ComponentStateRead(name=row.name, state=deepcopy(row.state_json), updated_at=row.updated_at)
