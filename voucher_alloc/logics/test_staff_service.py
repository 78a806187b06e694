"""
DB-backed tests for the staff roster service (temporary SQLite file).
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from voucher_alloc.logics.core_utils import CoreUtils
from voucher_alloc.logics.db import DBManager
from voucher_alloc.logics.domain import StaffMember
from voucher_alloc.logics.exceptions import PersistenceException, StaffNotFoundException
from voucher_alloc.logics.staff_service import (
    delete_staff,
    list_staff,
    save_staff_ordering,
    update_staff_online,
    update_staff_warehouses,
    update_staff_weight,
    upsert_staff,
    upsert_staff_bulk,
)


@pytest.fixture
def core_utils(tmp_path):
    return CoreUtils(f"sqlite:///{tmp_path / 'staff.db'}")


@pytest.fixture
def seeded(core_utils):
    upsert_staff_bulk([
        StaffMember(code="nv1", name="An", weight_pct=100, warehouses=["W1"]),
        StaffMember(code="NV2", name="Binh", weight_pct=50),
        StaffMember(code="NV3", name="Chi", weight_pct=150, warehouses=["w2", "W3"]),
    ], core_utils)
    return core_utils


def codes(core_utils, **kwargs):
    return [m.code for m in list_staff(core_utils, **kwargs)]


class TestUpsert:

    def test_bulk_insert_keeps_input_order(self, seeded):
        staff = list_staff(seeded)
        assert [m.code for m in staff] == ["NV1", "NV2", "NV3"]
        assert staff[2].warehouses == ["W2", "W3"]
        assert staff[1].weight_pct == 50.0

    def test_bulk_skips_empty_codes(self, core_utils):
        assert upsert_staff_bulk([StaffMember(code="  "), StaffMember(code="A")], core_utils) == 1
        assert codes(core_utils) == ["A"]

    def test_bulk_with_nothing_usable(self, core_utils):
        assert upsert_staff_bulk([], core_utils) == 0

    def test_merge_preserves_stored_order(self, seeded):
        save_staff_ordering(["NV3", "NV1", "NV2"], seeded)
        upsert_staff_bulk([StaffMember(code="NV1", name="An Nguyen", weight_pct=80)], seeded)

        staff = list_staff(seeded)
        assert [m.code for m in staff] == ["NV3", "NV1", "NV2"]
        assert staff[1].name == "An Nguyen"
        assert staff[1].weight_pct == 80.0

    def test_single_upsert_inactive_is_hidden(self, seeded):
        upsert_staff(StaffMember(code="NV4"), seeded, active=False)
        assert "NV4" not in codes(seeded)
        assert "NV4" in codes(seeded, active_only=False)

    def test_single_upsert_requires_code(self, core_utils):
        with pytest.raises(ValueError):
            upsert_staff(StaffMember(code=""), core_utils)


class TestUpdates:

    def test_update_online(self, seeded):
        update_staff_online("nv2", False, seeded)
        member = next(m for m in list_staff(seeded) if m.code == "NV2")
        assert member.online is False

    def test_update_weight_coerces_invalid_values(self, seeded):
        update_staff_weight("NV1", -20, seeded)
        member = next(m for m in list_staff(seeded) if m.code == "NV1")
        assert member.weight_pct == 0.0

    def test_update_warehouses_normalizes(self, seeded):
        update_staff_warehouses("NV2", [" kho a ", "KHO A", "w9"], seeded)
        member = next(m for m in list_staff(seeded) if m.code == "NV2")
        assert member.warehouses == ["KHO A", "W9"]

    @pytest.mark.parametrize("update", [
        lambda cu: update_staff_online("NOPE", True, cu),
        lambda cu: update_staff_weight("NOPE", 100, cu),
        lambda cu: update_staff_warehouses("NOPE", [], cu),
        lambda cu: delete_staff("NOPE", cu),
    ])
    def test_unknown_code_raises_not_found(self, seeded, update):
        with pytest.raises(StaffNotFoundException):
            update(seeded)

    def test_delete(self, seeded):
        delete_staff("NV2", seeded)
        assert codes(seeded) == ["NV1", "NV3"]


class TestOrdering:

    def test_save_ordering_returns_missing(self, seeded):
        missing = save_staff_ordering(["NV2", "GHOST", "nv3", "NV1"], seeded)
        assert missing == ["GHOST"]
        assert codes(seeded) == ["NV2", "NV3", "NV1"]

    def test_empty_ordering_is_noop(self, seeded):
        assert save_staff_ordering([], seeded) == []
        assert codes(seeded) == ["NV1", "NV2", "NV3"]


class TestStorageFailures:

    def test_list_failure_is_wrapped(self, seeded):
        with patch.object(DBManager, "list_staff_records", side_effect=SQLAlchemyError("db down")):
            with pytest.raises(PersistenceException) as exc_info:
                list_staff(seeded)
        assert exc_info.value.context["operation"] == "list_staff"

    def test_ordering_failure_is_wrapped(self, seeded):
        with patch.object(DBManager, "save_staff_ordering", side_effect=SQLAlchemyError("locked")):
            with pytest.raises(PersistenceException):
                save_staff_ordering(["NV1"], seeded)
