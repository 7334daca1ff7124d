"""
Pytest configuration and shared fixtures for dbclone-repair tests.

This module provides fake collaborators for the repair engine. Each fake
records its calls so tests can assert on side effects (mount and attach call
counts) without touching disks or SQL Server.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from dbclone_repair.domain import ClonePlan
from dbclone_repair.services.repair import RepairEngine
from dbclone_repair.storage.exceptions import (
    ProbeError,
    StoreUnavailableError,
    UnreachableParentError,
)


# ==============================================================================
# Fake Collaborators
# ==============================================================================


class FakeStore:
    def __init__(self, plans_by_host=None, failing_hosts=()):
        self.plans_by_host: Dict[str, List[ClonePlan]] = plans_by_host or {}
        self.failing_hosts = set(failing_hosts)
        self.calls: List[str] = []

    def fetch_clone_plans(self, host_name):
        self.calls.append(host_name)
        if host_name in self.failing_hosts:
            raise StoreUnavailableError(host_name, "connection refused")
        return list(self.plans_by_host.get(host_name, []))


class FakeProbe:
    def __init__(self, attached=None, failing_instances=()):
        self.attached: Dict[str, Set[str]] = attached or {}
        self.failing_instances = set(failing_instances)
        self.calls: List[str] = []

    def list_attached_databases(self, sql_instance):
        self.calls.append(sql_instance)
        if sql_instance in self.failing_instances:
            raise ProbeError(sql_instance, "login timeout expired")
        return set(self.attached.get(sql_instance, set()))


class FakeMounter:
    def __init__(self, errors=None):
        self.errors: Dict[str, Exception] = errors or {}
        self.calls: List[str] = []

    def mount(self, clone_location, host_name=None):
        self.calls.append(clone_location)
        if clone_location in self.errors:
            raise self.errors[clone_location]
        return True


class FakeAttacher:
    """Attach fake that registers the database with the probe on success."""

    def __init__(self, probe: Optional[FakeProbe] = None, errors=None):
        self.probe = probe
        self.errors: Dict[str, Exception] = errors or {}
        self.calls: List[tuple] = []

    def attach(self, sql_instance, database_name, files):
        self.calls.append((sql_instance, database_name, list(files)))
        if database_name in self.errors:
            raise self.errors[database_name]
        if self.probe is not None:
            self.probe.attached.setdefault(sql_instance, set()).add(database_name)


# ==============================================================================
# Plan and Engine Fixtures
# ==============================================================================


@pytest.fixture
def make_plan(tmp_path):
    """Factory for ClonePlans whose access path is a real directory."""

    def _make_plan(
        host_name="H1",
        database_name="SalesClone",
        sql_instance="SQL01",
        image_location=None,
        is_enabled=True,
        files=("data/Sales.mdf", "data/Sales_1.ndf", "log/Sales_log.ldf"),
    ):
        access_path = tmp_path / host_name / database_name
        access_path.mkdir(parents=True, exist_ok=True)
        for relative in files:
            target = access_path / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"\x00" * 16)
        return ClonePlan(
            host_name=host_name,
            image_location=image_location or str(tmp_path / "images" / "Sales.vhdx"),
            clone_location=str(tmp_path / "clones" / f"{database_name}.vhdx"),
            access_path=str(access_path),
            sql_instance=sql_instance,
            database_name=database_name,
            is_enabled=is_enabled,
        )

    return _make_plan


@pytest.fixture
def unreachable_images() -> Set[str]:
    """Image locations the engine should treat as unreachable."""
    return set()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def mounter() -> FakeMounter:
    return FakeMounter()


@pytest.fixture
def attacher(probe) -> FakeAttacher:
    return FakeAttacher(probe=probe)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def engine(store, probe, mounter, attacher, unreachable_images) -> RepairEngine:
    def check_parent(image_location):
        if image_location in unreachable_images:
            raise UnreachableParentError(image_location)

    return RepairEngine(
        store,
        probe=probe,
        mounter=mounter,
        attacher=attacher,
        check_parent=check_parent,
    )


@pytest.fixture
def registry_dir(tmp_path) -> Path:
    """A JSON clone registry with two hosts, two images and three clones."""
    registry = tmp_path / "registry"
    registry.mkdir()
    (registry / "hosts.json").write_text(
        json.dumps(
            [
                {"HostID": 1, "HostName": "SQLHOST01"},
                {"HostID": 2, "HostName": "SQLHOST02"},
            ]
        )
    )
    (registry / "images.json").write_text(
        json.dumps(
            [
                {"ImageID": 10, "ImageName": "Sales", "ImageLocation": r"\\fs01\images\Sales.vhdx"},
                {"ImageID": 11, "ImageName": "Hr", "ImageLocation": r"\\fs01\images\Hr.vhdx"},
            ]
        )
    )
    (registry / "clones.json").write_text(
        json.dumps(
            [
                {
                    "CloneID": 3,
                    "HostID": 1,
                    "ImageID": 11,
                    "CloneLocation": r"D:\clones\Hr_dev.vhdx",
                    "AccessPath": r"D:\clones\mount\Hr_dev",
                    "SqlInstance": "SQLHOST01",
                    "DatabaseName": "Hr_dev",
                    "IsEnabled": False,
                },
                {
                    "CloneID": 1,
                    "HostID": 1,
                    "ImageID": 10,
                    "CloneLocation": r"D:\clones\Sales_dev.vhdx",
                    "AccessPath": r"D:\clones\mount\Sales_dev",
                    "SqlInstance": "SQLHOST01",
                    "DatabaseName": "Sales_dev",
                    "IsEnabled": True,
                },
                {
                    "CloneID": 2,
                    "HostID": 2,
                    "ImageID": 10,
                    "CloneLocation": r"E:\clones\Sales_qa.vhdx",
                    "AccessPath": r"E:\clones\mount\Sales_qa",
                    "SqlInstance": "SQLHOST02\\QA",
                    "DatabaseName": "Sales_qa",
                    "IsEnabled": 1,
                },
            ]
        )
    )
    return registry
