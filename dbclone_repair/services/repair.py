"""Repair reconciliation engine.

For each host, the registered clones are fetched from the metadata store and
each one is brought back into conformance:

    1. parent image reachable?      no  -> Skipped ("parent unreachable")
    2. mount the differencing disk  err -> Failed (already mounted is fine)
    3. database present?            yes -> AlreadyHealthy
    4. discover files under the clone's access path
    5. attach from those files      ok  -> Repaired, err -> Failed

Every clone yields exactly one RepairOutcome. Errors are converted into
outcomes at the granularity of one clone, or of one host when its clone plans
cannot be fetched, and the run always continues. Only an invalid invocation
raises out of ``repair()``.

Hosts run sequentially unless ``parallel_hosts`` > 1. Repairs that target the
same SQL Server instance are always serialized.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from dbclone_repair.config.settings import StoreConfig
from dbclone_repair.domain import (
    ClonePlan,
    RepairOutcome,
    RepairReport,
    RepairStatus,
    RuntimeObservation,
)
from dbclone_repair.logging import EventLogger, LoggerFactory
from dbclone_repair.storage.discovery import list_database_files
from dbclone_repair.storage.exceptions import (
    AttachError,
    InvalidInvocationError,
    MountError,
    ProbeError,
    StoreUnavailableError,
    UnreachableParentError,
)
from dbclone_repair.storage.instance_lock import instance_operation
from dbclone_repair.storage.mount import DiskMounter
from dbclone_repair.storage.validation import validate_parent_reachable

from .metadata_store import create_metadata_store
from .protocols import DatabaseAttach, DiskMount, MetadataStore, RuntimeProbe
from .sql_instance import SqlInstanceClient


PARENT_UNREACHABLE = "parent unreachable"
CLONE_DISABLED = "clone disabled"


def normalize_hostnames(hostnames: Iterable[str] | str) -> list[str]:
    """Strip and de-duplicate host names, keeping the caller's order.

    Raises:
        InvalidInvocationError: If no usable host name is given
    """
    if isinstance(hostnames, str):
        hostnames = [hostnames]
    result: list[str] = []
    seen: set[str] = set()
    for name in hostnames or []:
        if name is None or not str(name).strip():
            raise InvalidInvocationError("host names must not be blank")
        name = str(name).strip()
        if name.lower() in seen:
            continue
        seen.add(name.lower())
        result.append(name)
    if not result:
        raise InvalidInvocationError("at least one host name is required")
    return result


def _is_present(database_name: str, attached: Iterable[str]) -> bool:
    wanted = database_name.lower()
    return any(name.lower() == wanted for name in attached)


class RepairEngine:
    """Reconciles registered clone state with runtime state, host by host."""

    def __init__(
        self,
        store: MetadataStore,
        probe: RuntimeProbe,
        mounter: DiskMount,
        attacher: DatabaseAttach,
        *,
        list_files: Callable[[str], list[str]] = list_database_files,
        check_parent: Callable[[str], None] = validate_parent_reachable,
        parallel_hosts: int = 1,
    ):
        self.store = store
        self.probe = probe
        self.mounter = mounter
        self.attacher = attacher
        self.list_files = list_files
        self.check_parent = check_parent
        self.parallel_hosts = max(1, int(parallel_hosts))
        self.log = LoggerFactory.for_repair()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def repair(
        self,
        hostnames: Iterable[str] | str,
        cancel_event: Optional[threading.Event] = None,
    ) -> RepairReport:
        """Repair every registered clone of the given hosts.

        Args:
            hostnames: Non-empty set of host names
            cancel_event: Checked between hosts and between clones; when set,
                the run stops and the outcomes collected so far are returned

        Returns:
            RepairReport with outcomes ordered by host, then clone

        Raises:
            InvalidInvocationError: If no usable host name is given
        """
        hosts = normalize_hostnames(hostnames)
        report = RepairReport()

        if self.parallel_hosts > 1 and len(hosts) > 1:
            workers = min(self.parallel_hosts, len(hosts))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(
                    executor.map(lambda host: self.repair_host(host, cancel_event), hosts)
                )
            for outcomes in results:
                report.extend(outcomes)
        else:
            for host in hosts:
                if _cancelled(cancel_event):
                    break
                report.extend(self.repair_host(host, cancel_event))

        report.cancelled = _cancelled(cancel_event)
        if report.cancelled:
            self.log.warning("Repair cancelled, returning partial results")
        EventLogger.log_run_summary(self.log, report)
        return report

    def repair_host(
        self, host_name: str, cancel_event: Optional[threading.Event] = None
    ) -> list[RepairOutcome]:
        """Repair all clones of one host. Never raises for per-item failures."""
        if _cancelled(cancel_event):
            return []

        try:
            plans = list(self.store.fetch_clone_plans(host_name))
        except StoreUnavailableError as error:
            EventLogger.log_host_fetch_failed(self.log, host_name, str(error))
            return [RepairOutcome.for_host(host_name, str(error))]
        except Exception as error:
            self.log.exception(f"Unexpected error fetching clones for {host_name}")
            return [RepairOutcome.for_host(host_name, f"unexpected error: {error}")]

        self.log.info(f"Repairing {len(plans)} clone(s) on {host_name}")
        outcomes: list[RepairOutcome] = []
        for plan in plans:
            if _cancelled(cancel_event):
                break
            try:
                outcome = self.repair_clone(plan)
            except Exception as error:
                self.log.exception(f"Unexpected error repairing {plan.label()}")
                outcome = RepairOutcome.for_clone(
                    plan, RepairStatus.FAILED, f"unexpected error: {error}"
                )
            EventLogger.log_clone_outcome(self.log, outcome)
            outcomes.append(outcome)
        return outcomes

    def repair_clone(self, plan: ClonePlan) -> RepairOutcome:
        """Run the per-clone repair sequence and return its outcome."""
        observation = RuntimeObservation()

        if not plan.is_enabled:
            return RepairOutcome.for_clone(
                plan, RepairStatus.SKIPPED, CLONE_DISABLED, observation
            )

        try:
            self.check_parent(plan.image_location)
        except UnreachableParentError as error:
            observation.image_reachable = False
            self.log.warning(f"{error}, skipping {plan.label()}")
            return RepairOutcome.for_clone(
                plan, RepairStatus.SKIPPED, PARENT_UNREACHABLE, observation
            )
        observation.image_reachable = True

        with instance_operation(plan.sql_instance):
            return self._converge(plan, observation)

    # ------------------------------------------------------------------
    # Internal steps
    # ------------------------------------------------------------------

    def _converge(self, plan: ClonePlan, observation: RuntimeObservation) -> RepairOutcome:
        try:
            self.mounter.mount(plan.clone_location, host_name=plan.host_name)
        except MountError as error:
            observation.disk_mounted = False
            return RepairOutcome.for_clone(plan, RepairStatus.FAILED, str(error), observation)
        observation.disk_mounted = True

        try:
            attached = self.probe.list_attached_databases(plan.sql_instance)
        except ProbeError as error:
            return RepairOutcome.for_clone(plan, RepairStatus.FAILED, str(error), observation)

        observation.database_attached = _is_present(plan.database_name, attached)
        if observation.database_attached:
            return RepairOutcome.for_clone(
                plan, RepairStatus.ALREADY_HEALTHY, observation=observation
            )

        try:
            files = self.list_files(plan.access_path)
        except OSError as error:
            return RepairOutcome.for_clone(
                plan, RepairStatus.FAILED, f"file discovery failed: {error}", observation
            )
        if not files:
            return RepairOutcome.for_clone(
                plan,
                RepairStatus.FAILED,
                f"no database files found under {plan.access_path}",
                observation,
            )
        observation.discovered_files = list(files)
        self.log.debug(f"Attaching {plan.label()} from {len(files)} file(s)")

        try:
            self.attacher.attach(plan.sql_instance, plan.database_name, list(files))
        except AttachError as error:
            return RepairOutcome.for_clone(plan, RepairStatus.FAILED, str(error), observation)

        observation.database_attached = True
        return RepairOutcome.for_clone(plan, RepairStatus.REPAIRED, observation=observation)


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def build_engine(config: Optional[StoreConfig], parallel_hosts: int = 1) -> RepairEngine:
    """Wire the concrete adapters for a store configuration.

    Raises:
        InvalidInvocationError: If no usable configuration is available
    """
    if config is None:
        raise InvalidInvocationError("no store configuration available")
    store = create_metadata_store(config)
    sql = SqlInstanceClient(config)
    return RepairEngine(
        store,
        probe=sql,
        mounter=DiskMounter(shell=config.mount_shell),
        attacher=sql,
        parallel_hosts=parallel_hosts,
    )
