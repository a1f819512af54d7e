"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path
from typing import Any, Dict, Union

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from modulegate.core.rbac import ActorRole, CapabilityRegistry
from modulegate.db import models  # noqa: F401  registers tables on Base.metadata
from modulegate.db.base import Base
from modulegate.db.session import enable_sqlite_savepoints

from tests.clock import FakeClock
from tests.factories import (
    actor_for,
    create_capability,
    create_tenant,
    create_user,
    enable_access,
)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def modules_dir(tmp_path) -> Path:
    path = tmp_path / "modules"
    path.mkdir()
    return path


@pytest.fixture
def write_unit(modules_dir):
    """Write a configuration unit into the modules directory.

    Mappings are dumped as YAML (or JSON for ``module.json``); strings are
    written verbatim so malformed documents can be tested.
    """

    def _write(key: str, unit: Union[Dict[str, Any], str], filename: str = "module.yaml") -> Path:
        unit_dir = modules_dir / key
        unit_dir.mkdir(exist_ok=True)
        unit_file = unit_dir / filename
        if isinstance(unit, str):
            unit_file.write_text(unit)
        elif filename.endswith(".json"):
            unit_file.write_text(json.dumps(unit))
        else:
            unit_file.write_text(yaml.safe_dump(unit))
        return unit_file

    return _write


@pytest.fixture
def registry(modules_dir, clock):
    return CapabilityRegistry(str(modules_dir), cache_ttl=300, clock=clock)


# ---------------------------------------------------------------------------
# Scenario: one tenant with an owner and a member, plus an operator
# ---------------------------------------------------------------------------


@pytest.fixture
def tenant(db_session):
    return create_tenant(db_session, name="Acme", slug="acme")


@pytest.fixture
def owner(db_session, tenant):
    return create_user(db_session, tenant=tenant, role=ActorRole.TENANT_OWNER, email="owner@acme.test")


@pytest.fixture
def member(db_session, tenant):
    return create_user(db_session, tenant=tenant, role=ActorRole.MEMBER, email="member@acme.test")


@pytest.fixture
def operator(db_session):
    return create_user(db_session, role=ActorRole.OPERATOR, email="ops@platform.test")


@pytest.fixture
def owner_actor(owner):
    return actor_for(owner)


@pytest.fixture
def member_actor(member):
    return actor_for(member)


@pytest.fixture
def operator_actor(operator):
    return actor_for(operator)


@pytest.fixture
def invoicing(db_session):
    return create_capability(
        db_session,
        identifier="invoicing",
        name="Invoicing",
        actions=["read", "write", "delete"],
        default_actions=["read"],
    )


@pytest.fixture
def invoicing_enabled(db_session, tenant, invoicing):
    return enable_access(db_session, tenant=tenant, capability=invoicing)
