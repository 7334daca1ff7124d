"""Tests for domain/models.py."""

import pytest

from dbclone_repair.domain import (
    ClonePlan,
    RepairOutcome,
    RepairReport,
    RepairStatus,
    RuntimeObservation,
)


RECORD = {
    "HostName": "SQLHOST01",
    "ImageID": 10,
    "ImageName": "Sales",
    "ImageLocation": r"\\fs01\images\Sales.vhdx",
    "CloneID": 1,
    "CloneLocation": r"D:\clones\Sales_dev.vhdx",
    "AccessPath": r"D:\clones\mount\Sales_dev",
    "SqlInstance": "SQLHOST01",
    "DatabaseName": "Sales_dev",
    "IsEnabled": 1,
}


class TestClonePlan:
    def test_from_record(self):
        plan = ClonePlan.from_record(RECORD)

        assert plan.clone_location == r"D:\clones\Sales_dev.vhdx"
        assert plan.is_enabled is True
        assert plan.clone_id == 1
        assert plan.label() == "Sales_dev@SQLHOST01"

    @pytest.mark.parametrize("value, expected", [("false", False), ("True", True), (0, False), ("1", True)])
    def test_is_enabled_coercion(self, value, expected):
        plan = ClonePlan.from_record({**RECORD, "IsEnabled": value})

        assert plan.is_enabled is expected

    def test_missing_required_column(self):
        record = dict(RECORD)
        del record["AccessPath"]

        with pytest.raises(KeyError):
            ClonePlan.from_record(record)

    def test_is_immutable(self):
        plan = ClonePlan.from_record(RECORD)

        with pytest.raises(AttributeError):
            plan.database_name = "other"


class TestRepairOutcome:
    def test_for_clone_carries_identity(self):
        plan = ClonePlan.from_record(RECORD)

        outcome = RepairOutcome.for_clone(plan, RepairStatus.REPAIRED, observation=RuntimeObservation())

        assert outcome.to_dict() == {
            "host_name": "SQLHOST01",
            "clone_location": r"D:\clones\Sales_dev.vhdx",
            "sql_instance": "SQLHOST01",
            "database_name": "Sales_dev",
            "status": "Repaired",
            "message": None,
        }
        assert not outcome.is_host_level
        assert not outcome.is_failure

    def test_for_host_is_failed_host_level(self):
        outcome = RepairOutcome.for_host("SQLHOST02", "store down")

        assert outcome.is_host_level
        assert outcome.is_failure
        assert outcome.label() == "(host)"

    def test_observation_is_ignored_in_equality(self):
        plan = ClonePlan.from_record(RECORD)
        first = RepairOutcome.for_clone(plan, RepairStatus.SKIPPED, "x", RuntimeObservation(image_reachable=False))
        second = RepairOutcome.for_clone(plan, RepairStatus.SKIPPED, "x")

        assert first == second


class TestRepairReport:
    def test_counts_and_summary(self):
        plan = ClonePlan.from_record(RECORD)
        report = RepairReport()
        report.extend(
            [
                RepairOutcome.for_clone(plan, RepairStatus.REPAIRED),
                RepairOutcome.for_clone(plan, RepairStatus.ALREADY_HEALTHY),
                RepairOutcome.for_host("SQLHOST02", "store down"),
            ]
        )

        assert report.counts() == {"Repaired": 1, "AlreadyHealthy": 1, "Skipped": 0, "Failed": 1}
        assert report.failed_hosts() == ["SQLHOST02"]
        assert not report.ok
        assert len(report) == 3
        assert report.summary_line().startswith("3 outcome(s): Repaired=1")

    def test_empty_report_is_ok(self):
        report = RepairReport()

        assert report.ok
        assert report.to_dict()["outcomes"] == []

    def test_cancelled_flag_in_summary(self):
        report = RepairReport(cancelled=True)

        assert report.summary_line().endswith("(cancelled)")
