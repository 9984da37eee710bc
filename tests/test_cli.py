import logging

import pandas as pd
import pytest

from pano_decom import cli
from pano_decom.errors import DecomError


@pytest.fixture
def run_env(monkeypatch, tmp_path, make_store):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "hosts.csv").write_text("8.8.8.8\n10.10.10.10\n", encoding="utf-8")

    fake = make_store(["branch-1"])
    fake.objects["branch-1"] = {"old-branch-gw": "10.10.10.10/32"}
    fake.connect = lambda: None

    monkeypatch.setattr(cli, "PanoramaPolicyStore", lambda **kwargs: fake)
    monkeypatch.setattr(cli, "probe", lambda host, count, timeout: host == "8.8.8.8")
    monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: "pw")
    yield fake, tmp_path
    logging.getLogger("pano_decom").handlers.clear()


def feed_input(monkeypatch, *answers):
    it = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(it))


class TestChooseScope:
    def test_requested_scope(self):
        assert cli.choose_scope(["dg", "shared"], "dg") == "dg"
        assert cli.choose_scope(["dg", "shared"], "all") == "all"

    def test_unknown_requested_scope(self):
        with pytest.raises(DecomError):
            cli.choose_scope(["dg", "shared"], "nope")

    def test_menu(self, monkeypatch):
        feed_input(monkeypatch, "3")
        assert cli.choose_scope(["dg", "shared"], None) == "all"

    @pytest.mark.parametrize("answer", ["0", "4", "x"])
    def test_menu_invalid(self, monkeypatch, answer):
        feed_input(monkeypatch, answer)
        with pytest.raises(DecomError):
            cli.choose_scope(["dg", "shared"], None)


def test_main_removes_after_confirmation(monkeypatch, run_env):
    fake, tmp_path = run_env
    feed_input(monkeypatch, "DELETE")

    rc = cli.main(["hosts.csv", "--panorama", "pano", "--username", "admin", "--scope", "branch-1"])

    assert rc == 0
    assert fake.objects["branch-1"] == {}
    [report] = tmp_path.glob("pano_pano_decom_outcomes_*.csv")
    df = pd.read_csv(report)
    assert list(df["stage"]) == ["address-group-ref", "security-rule", "nat-rule", "object-deletion"]
    assert set(df["status"]) == {"OK"}
    assert list(tmp_path.glob("pano_pano_decom_candidates_*.csv"))


def test_main_without_confirmation_changes_nothing(monkeypatch, run_env):
    fake, _ = run_env
    feed_input(monkeypatch, "no")

    rc = cli.main(["hosts.csv", "--panorama", "pano", "--username", "admin", "--scope", "all"])

    assert rc == 0
    assert "old-branch-gw" in fake.objects["branch-1"]
    assert not [c for c in fake.calls if c[0].startswith(("edit_", "delete_"))]


def test_main_prompts_for_missing_values(monkeypatch, run_env):
    fake, _ = run_env
    feed_input(monkeypatch, "pano", "admin", "1")

    rc = cli.main(["hosts.csv", "--yes"])

    assert rc == 0
    assert fake.objects["branch-1"] == {}


def test_main_fatal_error_exit_code(monkeypatch, run_env):
    fake, _ = run_env
    fake.fail_list = True

    rc = cli.main(["hosts.csv", "--panorama", "pano", "--username", "admin", "--yes"])

    assert rc == 1


def test_main_missing_hosts_file(run_env):
    assert cli.main(["missing.csv", "--panorama", "pano", "--username", "admin", "--yes"]) == 1


@pytest.mark.parametrize(
    "flags, message",
    [
        (["--count", "0"], "--count"),
        (["--count", "-3"], "--count"),
        (["--timeout", "0"], "--timeout"),
        (["--timeout", "-1.5"], "--timeout"),
        (["--workers", "0"], "--workers"),
    ],
)
def test_main_rejects_settings_that_send_nothing(run_env, flags, message):
    fake, _ = run_env

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["hosts.csv", "--panorama", "pano", "--username", "admin", "--yes"] + flags)

    assert message in str(excinfo.value)
    assert fake.calls == []


def test_main_verbose_logs_debug(monkeypatch, run_env):
    _, tmp_path = run_env

    rc = cli.main(["hosts.csv", "--panorama", "pano", "--username", "admin", "--scope", "branch-1", "--yes", "-v"])

    assert rc == 0
    assert logging.getLogger("pano_decom").level == logging.DEBUG
    [log_file] = tmp_path.glob("pano_decom_*.log")
    assert "Logging initialized at DEBUG" in log_file.read_text(encoding="utf-8")


def test_main_default_log_level_is_info(monkeypatch, run_env):
    feed_input(monkeypatch, "no")

    cli.main(["hosts.csv", "--panorama", "pano", "--username", "admin", "--scope", "all"])

    assert logging.getLogger("pano_decom").level == logging.INFO
