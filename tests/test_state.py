from __future__ import annotations

import pytest

from knative_deployer.services.errors import NotFoundException
from knative_deployer.services.state import SqlStateStore


def test_load_unknown_component_is_empty(db_session):
    assert SqlStateStore(db_session).load("express") == {}


def test_save_replaces_whole_record(db_session):
    store = SqlStateStore(db_session)

    store.save("express", {"prefix": "express-abc123", "namespace": "express-abc123"})
    store.save("express", {"prefix": "express-abc123", "serviceUrl": "http://svc"})

    assert store.load("express") == {"prefix": "express-abc123", "serviceUrl": "http://svc"}
    assert [c.name for c in store.list()] == ["express"]


def test_loaded_record_is_a_copy(db_session):
    store = SqlStateStore(db_session)
    store.save("express", {"labels": {"a": "1"}})

    loaded = store.load("express")
    loaded["labels"]["b"] = "2"

    assert store.load("express") == {"labels": {"a": "1"}}


def test_clear_keeps_row_with_empty_state(db_session):
    store = SqlStateStore(db_session)
    store.save("express", {"prefix": "express-abc123"})

    store.clear("express")
    store.clear("never-deployed")

    assert store.get("express").state == {}
    with pytest.raises(NotFoundException):
        store.get("never-deployed")
