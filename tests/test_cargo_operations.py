from decimal import Decimal

import pytest

from port_allocator.core.errors import (
    AlreadyAssigned,
    AlreadyExists,
    CapacityExceeded,
    InvalidOperation,
    InvalidParameters,
    InvalidStatus,
    NotFound,
    ResourceOccupied,
    Unauthorized,
)

from conftest import HANDLER, OFFICER, OPERATOR, OWNER, SHIPPER, STRANGER


def test_hazardous_container_gets_top_priority(port, make_container):
    container = port.get_container(make_container(cargo_type="hazardous", container_type="reefer"))
    assert container["handling_priority"] == 10
    assert container["status"] == "arriving"
    assert container["owner"] == SHIPPER


@pytest.mark.parametrize("weight", ["0", "-5", "30480", "40000"])
def test_container_weight_bounds(port, make_container, weight):
    with pytest.raises(InvalidParameters):
        make_container(weight=Decimal(weight))


def test_container_vessel_must_exist(port, make_container):
    with pytest.raises(NotFound):
        make_container(vessel_id=42)


class TestOperations:
    def test_unloading_round_trip(self, port, clock, make_container, cranes):
        container_id = make_container()
        op_id = port.create_operation(HANDLER, "unloading", container_id, cranes)

        op = port.get_operation(op_id)
        assert op["status"] == "in-progress"
        assert op["equipment_unit"] == 1
        assert op["start_time"] == clock.now()
        assert port.get_container(container_id)["status"] == "unloading"
        crane = port.get_equipment_status(cranes)
        assert crane["available_units"] == 1
        assert crane["reserved_units"] == 1
        assert crane["utilization_rate"] == "50.00"

        port.advance_clock(OWNER, 100)
        assert port.complete_operation(HANDLER, op_id) == Decimal("100.00")

        done = port.get_operation(op_id)
        assert done["status"] == "completed"
        assert done["duration"] == 100
        assert done["end_time"] == clock.now()
        assert port.get_container(container_id)["status"] == "in-yard"
        assert port.get_equipment_status(cranes)["available_units"] == 2

    def test_completing_twice_changes_nothing(self, port, clock, make_container, cranes):
        op_id = port.create_operation(HANDLER, "loading", make_container(), cranes)
        port.advance_clock(OWNER, 60)
        assert port.complete_operation(HANDLER, op_id) == Decimal("200.00")
        before = port.get_operation(op_id)

        port.advance_clock(OWNER, 10)
        with pytest.raises(InvalidStatus):
            port.complete_operation(HANDLER, op_id)

        assert port.get_operation(op_id) == before
        assert port.get_equipment_status(cranes)["available_units"] == 2

    def test_only_the_starting_operator_completes(self, port, make_container, cranes):
        op_id = port.create_operation(HANDLER, "unloading", make_container(), cranes)
        with pytest.raises(Unauthorized):
            port.complete_operation(OPERATOR, op_id)
        assert port.get_operation(op_id)["status"] == "in-progress"

    def test_complete_unknown_operation(self, port):
        with pytest.raises(NotFound):
            port.complete_operation(HANDLER, 77)

    def test_loading_and_transfer_statuses(self, port, make_container, cranes):
        loading = make_container()
        transfer = make_container()
        load_op = port.create_operation(HANDLER, "loading", loading, cranes)
        move_op = port.create_operation(HANDLER, "TRANSFER", transfer, cranes)

        assert port.get_container(loading)["status"] == "loading"
        assert port.get_container(transfer)["status"] == "in-transit"
        assert {port.get_operation(load_op)["equipment_unit"], port.get_operation(move_op)["equipment_unit"]} == {1, 2}

        port.complete_operation(HANDLER, load_op)
        port.complete_operation(HANDLER, move_op)
        assert port.get_container(loading)["status"] == "loaded"
        assert port.get_container(transfer)["status"] == "transferred"

    def test_exhausted_equipment(self, port, make_container):
        port.update_equipment_inventory(OPERATOR, "reach stacker", total=1, available=1)
        first, second = make_container(), make_container()
        port.create_operation(HANDLER, "unloading", first, "reach_stacker")

        with pytest.raises(ResourceOccupied):
            port.create_operation(HANDLER, "unloading", second, "Reach Stacker")

        assert port.get_container(second)["status"] == "arriving"
        assert port.get_equipment_status("reach-stacker")["available_units"] == 0
        assert port.get_operation(2) is None

    def test_unregistered_equipment(self, port, make_container):
        with pytest.raises(NotFound):
            port.create_operation(HANDLER, "unloading", make_container(), "gantry")

    @pytest.mark.parametrize("op_type", ["stowing", "", None])
    def test_invalid_operation_type(self, port, make_container, cranes, op_type):
        container_id = make_container()
        with pytest.raises(InvalidOperation):
            port.create_operation(HANDLER, op_type, container_id, cranes)
        assert port.get_equipment_status(cranes)["available_units"] == 2

    def test_container_held_by_one_operation(self, port, make_container, cranes):
        container_id = make_container()
        port.create_operation(HANDLER, "unloading", container_id, cranes)
        with pytest.raises(AlreadyAssigned):
            port.create_operation(HANDLER, "loading", container_id, cranes)
        assert port.get_equipment_status(cranes)["available_units"] == 1

    def test_stranger_cannot_start_operation(self, port, make_container, cranes):
        with pytest.raises(Unauthorized):
            port.create_operation(STRANGER, "unloading", make_container(), cranes)


class TestEquipmentInventory:
    @pytest.mark.parametrize(
        "total, available, maintenance",
        [(-1, 0, 0), (2, 3, 0), (2, 1, 3), (2, -1, 0)],
    )
    def test_rejects_inconsistent_counts(self, port, total, available, maintenance):
        with pytest.raises(InvalidParameters):
            port.update_equipment_inventory(OPERATOR, "crane", total, available, maintenance)
        assert port.get_equipment_status("crane") is None

    @pytest.mark.parametrize(
        "total, available, maintenance",
        [("many", 1, 0), (2, 1.5, 0), (2, 1, None), (True, 1, 0)],
    )
    def test_rejects_non_integral_counts(self, port, total, available, maintenance):
        with pytest.raises(InvalidParameters):
            port.update_equipment_inventory(OPERATOR, "crane", total, available, maintenance)
        assert port.get_equipment_status("crane") is None

    def test_accepts_integral_strings(self, port):
        status = port.update_equipment_inventory(OPERATOR, "crane", "4", "3", "1")
        assert (status["total_units"], status["available_units"], status["maintenance_units"]) == (4, 3, 1)

    def test_total_above_limit(self, port):
        with pytest.raises(CapacityExceeded):
            port.update_equipment_inventory(OPERATOR, "crane", 51, 10)

    def test_requires_operator(self, port):
        with pytest.raises(Unauthorized):
            port.update_equipment_inventory(HANDLER, "crane", 2, 2)

    def test_running_operations_cap_availability(self, port, make_container, cranes):
        port.create_operation(HANDLER, "unloading", make_container(), cranes)

        with pytest.raises(InvalidParameters):
            port.update_equipment_inventory(OPERATOR, cranes, 2, 2)

        status = port.update_equipment_inventory(OPERATOR, cranes, 3, 2, 1)
        assert status["reserved_units"] == 1
        assert status["maintenance_units"] == 1
        assert port.get_equipment_utilization()[0]["total_units"] == 3


class TestTracking:
    def test_checkpoint_updates_container(self, port, make_container):
        container_id = make_container()
        assert port.track_cargo_movement(HANDLER, container_id, "gate-in", "Gate 3", "in_yard", notes="seal ok")

        container = port.get_container(container_id)
        assert container["status"] == "in-yard"
        assert container["location"] == "Gate 3"
        movements = port.get_cargo_movements(container_id)
        assert [(m["checkpoint"], m["recorded_by"], m["notes"]) for m in movements] == [
            ("gate-in", HANDLER, "seal ok")
        ]

    def test_duplicate_checkpoint(self, port, make_container):
        container_id = make_container()
        port.track_cargo_movement(SHIPPER, container_id, "gate-in", "Gate 3", "in-yard")
        with pytest.raises(AlreadyExists):
            port.track_cargo_movement(SHIPPER, container_id, "gate-in", "Gate 4", "loading")
        assert port.get_container(container_id)["location"] == "Gate 3"

    def test_unknown_status(self, port, make_container):
        container_id = make_container()
        with pytest.raises(InvalidStatus):
            port.track_cargo_movement(HANDLER, container_id, "gate-in", "Gate 3", "floating")
        assert port.get_cargo_movements(container_id) == []

    def test_stranger_cannot_track(self, port, make_container):
        with pytest.raises(Unauthorized):
            port.track_cargo_movement(STRANGER, make_container(), "gate-in", "Gate 3", "in-yard")

    def test_running_operation_holds_status(self, port, make_container, cranes):
        container_id = make_container()
        op_id = port.create_operation(HANDLER, "unloading", container_id, cranes)

        with pytest.raises(InvalidStatus):
            port.track_cargo_movement(HANDLER, container_id, "quay", "Berth 2", "departed")
        assert port.get_container(container_id)["status"] == "unloading"
        assert port.get_cargo_movements(container_id) == []

        # Same status is only a location update.
        assert port.track_cargo_movement(HANDLER, container_id, "quay", "Berth 2", "unloading")
        assert port.get_container(container_id)["location"] == "Berth 2"

        port.complete_operation(HANDLER, op_id)
        assert port.track_cargo_movement(HANDLER, container_id, "gate-out", "Gate 1", "departed")
        assert port.get_container(container_id)["status"] == "departed"


def test_bind_container_to_vessel(port, make_container, make_vessel):
    container_id = make_container()
    vessel_id = make_vessel()
    assert port.bind_container(HANDLER, container_id, vessel_id)
    assert port.get_container(container_id)["vessel_id"] == vessel_id

    with pytest.raises(NotFound):
        port.bind_container(HANDLER, container_id, 404)


def test_customs_clearance_is_officer_only(port, make_container):
    container_id = make_container()
    with pytest.raises(Unauthorized):
        port.record_customs_clearance(HANDLER, container_id, "DEC-1", True)

    record = port.record_customs_clearance(OFFICER, container_id, "DEC-1", False, notes="hold")
    assert record["cleared"] is False
    port.record_customs_clearance(OFFICER, container_id, "DEC-1", True)
    assert port.get_customs_clearance(container_id)["cleared"] is True
    assert port.get_customs_clearance(999) is None


def test_transport_log(port, make_container):
    container_id = make_container(destination="Chicago")
    transport_id = port.log_transport(HANDLER, container_id, "Rail", "BNSF", "")

    entry = port.get_transport(transport_id)
    assert entry["mode"] == "rail"
    assert entry["destination"] == "Chicago"
    with pytest.raises(InvalidParameters):
        port.log_transport(HANDLER, container_id, " ", "BNSF", "Chicago")
