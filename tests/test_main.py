"""Tests for the command line entry point."""

import json
import signal

import pytest

from conftest import FakeMounter

from dbclone_repair import main
from dbclone_repair.logging import logger


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(
        "dbclone_repair.config.settings.SETTINGS_PATH", tmp_path / "settings.json"
    )
    yield
    logger.remove()


@pytest.fixture
def fake_build_engine(mocker, engine):
    return mocker.patch("dbclone_repair.main.build_engine", return_value=engine)


def _base_args(tmp_path, registry_dir):
    return [
        "--store-mode",
        "file",
        "--store-path",
        str(registry_dir),
        "--log-dir",
        str(tmp_path / "logs"),
    ]


def test_clean_run_exits_zero(tmp_path, registry_dir, store, make_plan, fake_build_engine, capsys):
    store.plans_by_host["H1"] = [make_plan()]

    code = main.main(["H1", *_base_args(tmp_path, registry_dir)])

    assert code == main.EXIT_OK
    out = capsys.readouterr().out
    assert "Repaired" in out
    assert "1 outcome(s)" in out
    config = fake_build_engine.call_args.args[0]
    assert config.mode == "file"
    assert config.path == registry_dir


def test_failures_exit_one_and_json_output(
    tmp_path, registry_dir, store, fake_build_engine, capsys
):
    store.failing_hosts.add("H2")

    code = main.main(["H2", "--json", *_base_args(tmp_path, registry_dir)])

    assert code == main.EXIT_FAILURES
    payload = json.loads(capsys.readouterr().out)
    assert payload["ok"] is False
    assert payload["outcomes"][0]["host_name"] == "H2"
    assert payload["outcomes"][0]["status"] == "Failed"


def test_missing_store_configuration_exits_two(tmp_path, capsys):
    code = main.main(["H1", "--log-dir", str(tmp_path / "logs")])

    assert code == main.EXIT_INVALID
    assert "store_server" in capsys.readouterr().err


def test_blank_host_exits_two(tmp_path, registry_dir, capsys):
    code = main.main([" ", *_base_args(tmp_path, registry_dir)])

    assert code == main.EXIT_INVALID


def test_no_hosts_is_an_argparse_error(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main.main(["--log-dir", str(tmp_path / "logs")])
    assert excinfo.value.code == 2


def test_sql_username_disables_trusted_connection(tmp_path, mocker, fake_build_engine):
    mocker.patch.dict("os.environ", {"DBCLONE_REPAIR_SQL_PASSWORD": "pw"})

    main.main(
        [
            "H1",
            "--store-server",
            "REGISTRY01",
            "--store-database",
            "dbclone",
            "--sql-username",
            "repair",
            "--parallel",
            "3",
            "--log-dir",
            str(tmp_path / "logs"),
        ]
    )

    config = fake_build_engine.call_args.args[0]
    assert config.trusted_connection is False
    assert config.username == "repair"
    assert fake_build_engine.call_args.kwargs["parallel_hosts"] == 3


def test_format_report_lines(engine, store, make_plan):
    store.plans_by_host["H1"] = [make_plan()]
    report = engine.repair(["H1"])

    lines = main.format_report(report)

    assert len(lines) == 2
    assert lines[0].startswith("H1")
    assert "SalesClone@SQL01" in lines[0]


class InterruptingMounter(FakeMounter):
    """Delivers Ctrl-C while the first clone is being mounted."""

    def mount(self, clone_location, host_name=None):
        if not self.calls:
            signal.raise_signal(signal.SIGINT)
        return super().mount(clone_location, host_name)


def test_interrupt_prints_partial_report(
    tmp_path, registry_dir, store, make_plan, engine, attacher, fake_build_engine, capsys
):
    engine.mounter = InterruptingMounter()
    store.plans_by_host["H1"] = [
        make_plan(database_name="A"),
        make_plan(database_name="B"),
    ]

    code = main.main(["H1", *_base_args(tmp_path, registry_dir)])

    assert code == main.EXIT_FAILURES
    out = capsys.readouterr().out
    assert "A@SQL01" in out
    assert "B@SQL01" not in out
    assert "1 outcome(s): Repaired=1" in out
    assert "(cancelled)" in out
    assert [call[1] for call in attacher.calls] == ["A"]
    assert signal.getsignal(signal.SIGINT) is signal.default_int_handler


def test_interrupt_json_report_is_marked_cancelled(
    tmp_path, registry_dir, store, make_plan, engine, fake_build_engine, capsys
):
    engine.mounter = InterruptingMounter()
    store.plans_by_host["H1"] = [make_plan(database_name="A")]

    code = main.main(["H1", "--json", *_base_args(tmp_path, registry_dir)])

    assert code == main.EXIT_FAILURES
    payload = json.loads(capsys.readouterr().out)
    assert payload["cancelled"] is True
    assert [o["status"] for o in payload["outcomes"]] == ["Repaired"]


@pytest.mark.parametrize("value", ["many", 0, -2, True])
def test_bad_parallel_setting_exits_two(tmp_path, registry_dir, value, capsys):
    (tmp_path / "settings.json").write_text(json.dumps({"parallel_hosts": value}))

    code = main.main(["H1", *_base_args(tmp_path, registry_dir)])

    assert code == main.EXIT_INVALID
    assert "parallel_hosts" in capsys.readouterr().err
