"""CLI tests with the network check replaced by a fake."""

from __future__ import annotations

import json

import pytest
import yaml
from typer.testing import CliRunner

import kubeconfig_pruner.cli as cli
from kubeconfig_pruner.kubeconfig import REDACTED, write_yaml

runner = CliRunner()


class FakeProber:
    reachable = {"alive"}
    created: list[FakeProber] = []

    def __init__(self, timeout: float, exec_timeout: float) -> None:
        self.timeout = timeout
        self.exec_timeout = exec_timeout
        FakeProber.created.append(self)

    async def __call__(self, target) -> bool:
        return target.name in self.reachable


@pytest.fixture
def kubeconfig(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "KubeProber", FakeProber)
    path = tmp_path / "config"
    write_yaml(
        path,
        {
            "apiVersion": "v1",
            "kind": "Config",
            "current-context": "alive",
            "clusters": [
                {"name": "c-alive", "cluster": {"server": "https://alive"}},
                {"name": "c-dead", "cluster": {"server": "https://dead"}},
                {"name": "c-orphan", "cluster": {"server": "https://orphan"}},
            ],
            "users": [
                {"name": "u-alive", "user": {"token": "secret"}},
                {"name": "u-dead", "user": {"token": "secret"}},
            ],
            "contexts": [
                {"name": "alive", "context": {"cluster": "c-alive", "user": "u-alive"}},
                {"name": "dead", "context": {"cluster": "c-dead", "user": "u-dead"}},
            ],
        },
    )
    return path


def _invoke(path, *args):
    return runner.invoke(
        cli.app,
        ["--kubeconfig", str(path), "--ignore-file", str(path.parent / "none.ignore"), "--quiet", *args],
    )


def test_prints_kept_config_redacted(kubeconfig):
    result = _invoke(kubeconfig)

    assert result.exit_code == 0
    document = yaml.safe_load(result.stdout)
    assert [c["name"] for c in document["contexts"]] == ["alive"]
    assert {c["name"] for c in document["clusters"]} == {"c-alive", "c-orphan"}
    assert document["users"][0]["user"]["token"] == REDACTED
    assert document["current-context"] == "alive"


def test_print_removed_raw_with_cleanup(kubeconfig):
    result = _invoke(kubeconfig, "--print-removed", "--raw", "--clusters", "--users")

    assert result.exit_code == 0
    document = yaml.safe_load(result.stdout)
    assert [c["name"] for c in document["contexts"]] == ["dead"]
    assert {c["name"] for c in document["clusters"]} == {"c-dead", "c-orphan"}
    assert document["users"][0]["user"]["token"] == "secret"


def test_ignore_flag_keeps_context(kubeconfig):
    result = _invoke(kubeconfig, "--ignore", "dead", "-o", "name")

    assert result.exit_code == 0
    assert result.stdout.split() == ["alive", "dead"]


def test_json_output(kubeconfig):
    result = _invoke(kubeconfig, "-o", "json")

    assert result.exit_code == 0
    assert json.loads(result.stdout)["kind"] == "Config"


def test_empty_result_prints_nothing(kubeconfig, monkeypatch):
    monkeypatch.setattr(FakeProber, "reachable", {"alive", "dead"})

    result = _invoke(kubeconfig, "--print-removed")

    assert result.exit_code == 0
    assert result.stdout == ""


def test_write_backs_up_and_overwrites(kubeconfig, monkeypatch, tmp_path):
    backups: list = []

    def fake_backup(path):
        backups.append(path)
        return tmp_path / "config.bak"

    monkeypatch.setattr(cli, "backup_file", fake_backup)

    result = _invoke(kubeconfig, "--write")

    assert result.exit_code == 0
    assert backups == [kubeconfig]
    written = yaml.safe_load(kubeconfig.read_text())
    assert [c["name"] for c in written["contexts"]] == ["alive"]
    assert written["users"][0]["user"]["token"] == "secret"


def test_missing_kubeconfig_fails(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "KubeProber", FakeProber)

    result = _invoke(tmp_path / "missing")

    assert result.exit_code == 1


def test_unknown_output_format_fails(kubeconfig):
    result = _invoke(kubeconfig, "-o", "table")

    assert result.exit_code == 1


def test_timeouts_reach_the_http_client(kubeconfig, monkeypatch):
    monkeypatch.setattr(FakeProber, "created", [])

    result = _invoke(kubeconfig, "--timeout", "3", "--exec-timeout", "45")

    assert result.exit_code == 0
    assert [(p.timeout, p.exec_timeout) for p in FakeProber.created] == [(3, 45)]
