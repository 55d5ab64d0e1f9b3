from decimal import Decimal

import pytest

from port_allocator.core.errors import AlreadyExists, InvalidParameters, Unauthorized

from conftest import HANDLER, OPERATOR, OWNER, SHIPPER


def test_empty_port_capacity(port, clock):
    assert port.get_port_capacity() == {
        "total_capacity": 0,
        "current_load": 0,
        "available_capacity": 0,
        "utilization_percent": "0.00",
        "as_of": clock.now(),
    }


def test_capacity_follows_assignments(port, make_vessel, make_berth):
    b1 = make_berth()
    make_berth(name="B2")
    make_berth(name="B3")
    vessel_id = make_vessel()
    port.assign_berth(OPERATOR, vessel_id, b1)

    capacity = port.get_port_capacity()
    assert capacity["total_capacity"] == 3
    assert capacity["current_load"] == 1
    assert capacity["available_capacity"] == 2
    assert capacity["utilization_percent"] == "33.33"

    port.release_berth(OPERATOR, vessel_id)
    assert port.get_port_capacity()["current_load"] == 0


@pytest.mark.parametrize(
    "cargo_type, estimated, fits",
    [("container", "200.00", True), ("general", "250.00", False), ("liquid", "50.00", True)],
)
def test_turnaround_estimate(port, make_vessel, make_berth, cargo_type, estimated, fits):
    schedule_id = port.create_schedule(SHIPPER, make_vessel(), make_berth(), 110, 350)

    estimate = port.estimate_turnaround(schedule_id, cargo_type)

    assert estimate["scheduled_ticks"] == 240
    assert estimate["estimated_ticks"] == estimated
    assert estimate["fits_window"] is fits


def test_turnaround_for_unknown_schedule(port):
    assert port.estimate_turnaround(5) is None


class TestPerformanceMetrics:
    def test_record_and_read_back(self, port, clock):
        recorded = port.record_performance_metric(OPERATOR, "Crane Moves", Decimal("90"), Decimal("120"))
        assert recorded["efficiency_ratio"] == "75.00"
        assert recorded["period"] == clock.now()

        stored = port.get_performance_metric("crane moves", clock.now())
        assert stored["metric_name"] == "crane moves"
        assert Decimal(stored["value"]) == Decimal("90")
        assert port.get_performance_metric("crane moves", clock.now() + 1) is None

    def test_one_snapshot_per_period(self, port):
        port.record_performance_metric(OPERATOR, "berth_turns", 4, 5)
        with pytest.raises(AlreadyExists):
            port.record_performance_metric(OPERATOR, "berth_turns", 5, 5)

        port.advance_clock(OWNER, 1)
        assert port.record_performance_metric(OPERATOR, "berth_turns", 5, 5)["efficiency_ratio"] == "100.00"

    @pytest.mark.parametrize("value, target", [(10, 0), (-1, 10), ("abc", 10)])
    def test_rejects_bad_numbers(self, port, value, target):
        with pytest.raises(InvalidParameters):
            port.record_performance_metric(OPERATOR, "yard_moves", value, target)

    def test_requires_operator(self, port):
        with pytest.raises(Unauthorized):
            port.record_performance_metric(HANDLER, "yard_moves", 1, 1)


def test_equipment_utilization_lists_every_type(port, make_container, cranes):
    port.update_equipment_inventory(OPERATOR, "straddle carrier", 4, 4)
    port.create_operation(HANDLER, "unloading", make_container(), cranes)

    rows = port.get_equipment_utilization()
    assert [(r["equipment_type"], r["utilization_rate"]) for r in rows] == [
        ("crane", "50.00"),
        ("straddle-carrier", "0.00"),
    ]
