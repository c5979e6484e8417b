from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class ComponentStateBase(SQLModel):
    name: str


class ComponentStateORM(ComponentStateBase, table=True):
    __tablename__ = "component_state"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False, unique=True, index=True)
    # The configuration record, stored whole on every checkpoint.
    state_json: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class ComponentStateRead(ComponentStateBase):
    state: dict[str, Any]
    updated_at: datetime


class DeployInputs(SQLModel):
    src: str
    namespace: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def to_inputs(self) -> dict[str, Any]:
        inputs = dict(self.extra)
        inputs["src"] = self.src
        inputs["namespace"] = self.namespace
        return inputs
