from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

from port_allocator.core.clock import LogicalClock
from port_allocator.core.engine import EntityLocks, PortEngine
from port_allocator.core.errors import Unauthorized
from port_allocator.models import Role


def _engine_with_gate(db_engine, clock, settings, gate):
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    return PortEngine(factory, clock=clock, settings=settings, gate_factory=lambda db: gate)


def test_engine_consults_injected_gate(db_engine, clock, settings):
    gate = MagicMock()
    gate.is_authorized.return_value = False
    port = _engine_with_gate(db_engine, clock, settings, gate)
    berth = {"name": "B9", "max_length": 100, "max_beam": 20, "max_draft": 8}

    with pytest.raises(Unauthorized):
        port.register_berth("harbour-master", **berth)
    gate.is_authorized.assert_called_with("harbour-master", Role.PORT_OPERATOR, None)
    assert port.get_berth(1) is None

    gate.is_authorized.return_value = True
    assert port.register_berth("harbour-master", **berth) == 1


def test_owner_check_skips_gate(db_engine, clock, settings):
    gate = MagicMock()
    gate.is_authorized.return_value = False
    port = _engine_with_gate(db_engine, clock, settings, gate)
    vessel_id = port.register_vessel(
        "shipper",
        name="MV Gate",
        length=100,
        beam=20,
        draft=8,
        cargo_capacity=900,
        vessel_class="tanker",
        requested_arrival=500,
    )

    assert port.add_to_queue("shipper", vessel_id) == 1
    gate.is_authorized.assert_not_called()
    assert port.get_vessel(vessel_id)["priority"] == 3


def test_logical_clock_only_moves_forward():
    clock = LogicalClock(5)
    assert clock.advance() == 6
    assert clock.advance(0) == 6
    with pytest.raises(ValueError):
        clock.advance(-1)
    with pytest.raises(ValueError):
        LogicalClock(-1)


def test_entity_locks_release_on_error():
    locks = EntityLocks()
    with pytest.raises(RuntimeError):
        with locks.hold(("berth", 1), ("vessel", 2), None):
            raise RuntimeError("boom")

    with locks.hold(("vessel", 2), ("berth", 1)):
        pass
