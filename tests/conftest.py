from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from port_allocator.core.clock import LogicalClock
from port_allocator.core.engine import PortEngine
from port_allocator.db import init_db
from port_allocator.models import Role
from port_allocator.settings import Settings

OWNER = "port-authority"
OPERATOR = "ops-desk"
HANDLER = "crane-gang-7"
OFFICER = "cbp-officer"
SHIPPER = "maersk-line"
STRANGER = "nobody"

START = 100


@pytest.fixture
def clock() -> LogicalClock:
    return LogicalClock(START)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        CONTRACT_OWNER=OWNER,
        BASE_WAIT_TIME=60,
        NEAR_TERM_WINDOW=144,
        MAX_CONTAINER_WEIGHT=30480,
        MAX_EQUIPMENT_UNITS=50,
    )


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def port(db_engine, clock, settings) -> PortEngine:
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    engine = PortEngine(factory, clock=clock, settings=settings)
    engine.grant_role(OWNER, OPERATOR, Role.PORT_OPERATOR)
    engine.grant_role(OWNER, HANDLER, Role.HANDLER)
    engine.grant_role(OWNER, OFFICER, Role.CUSTOMS_OFFICER)
    return engine


@pytest.fixture
def make_vessel(port, clock):
    def _make(caller: str = SHIPPER, **overrides) -> int:
        spec = {
            "name": "MV Test",
            "length": Decimal("200"),
            "beam": Decimal("30"),
            "draft": Decimal("10"),
            "cargo_capacity": Decimal("5000"),
            "vessel_class": "cargo",
            "requested_arrival": clock.now() + 1,
        }
        spec.update(overrides)
        return port.register_vessel(caller, **spec)

    return _make


@pytest.fixture
def make_berth(port):
    def _make(**overrides) -> int:
        spec = {
            "name": "B1",
            "max_length": Decimal("250"),
            "max_beam": Decimal("35"),
            "max_draft": Decimal("12"),
        }
        spec.update(overrides)
        return port.register_berth(OPERATOR, **spec)

    return _make


@pytest.fixture
def make_container(port):
    def _make(caller: str = SHIPPER, **overrides) -> int:
        spec = {
            "weight": Decimal("1000"),
            "cargo_type": "general",
            "container_type": "dry",
            "size": "40ft",
            "location": "Gate A",
            "destination": "Yard",
        }
        spec.update(overrides)
        return port.register_container(caller, **spec)

    return _make


@pytest.fixture
def cranes(port):
    port.update_equipment_inventory(OPERATOR, "crane", total=2, available=2, maintenance_count=0)
    return "crane"
