import os

import pytest

from kubeconfig_pruner.config import (
    DEFAULT_TIMEOUT_SECONDS,
    EXEC_TIMEOUT_SECONDS,
    ENV_EXEC_TIMEOUT,
    ENV_MAX_WORKERS,
    ENV_TIMEOUT,
    MAX_WORKERS,
    PruneOptions,
    build_options,
    resolve_kubeconfig_path,
)
from kubeconfig_pruner.kubeconfig import DEFAULT_KUBECONFIG


class TestResolveKubeconfigPath:
    def test_defaults_to_home_config(self, monkeypatch):
        monkeypatch.delenv("KUBECONFIG", raising=False)
        assert resolve_kubeconfig_path() == DEFAULT_KUBECONFIG

    def test_env_overrides_default(self, monkeypatch, tmp_path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        monkeypatch.setenv("KUBECONFIG", f"{first}{os.pathsep}{second}")

        assert resolve_kubeconfig_path() == first

    def test_cli_overrides_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("KUBECONFIG", str(tmp_path / "env"))

        assert resolve_kubeconfig_path(str(tmp_path / "cli")) == tmp_path / "cli"


class TestBuildOptions:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv(ENV_TIMEOUT, raising=False)
        monkeypatch.delenv(ENV_MAX_WORKERS, raising=False)

        options = build_options()

        assert options.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
        assert options.max_workers == MAX_WORKERS
        assert options.cleanup_clusters is False
        assert options.cleanup_users is False

    def test_env_then_cli(self, monkeypatch):
        monkeypatch.setenv(ENV_TIMEOUT, "4")
        monkeypatch.setenv(ENV_MAX_WORKERS, "7")

        assert build_options().timeout_seconds == 4
        assert build_options().max_workers == 7
        assert build_options(timeout_seconds=2, max_workers=3).timeout_seconds == 2

    def test_bad_env_value(self, monkeypatch):
        monkeypatch.setenv(ENV_TIMEOUT, "soon")

        with pytest.raises(ValueError, match=ENV_TIMEOUT):
            build_options()

    def test_rejects_invalid_values(self):
        with pytest.raises(ValueError):
            PruneOptions(timeout_seconds=0)
        with pytest.raises(ValueError):
            PruneOptions(max_workers=0)


def test_exec_timeout_from_env_and_cli(monkeypatch):
    monkeypatch.setenv(ENV_EXEC_TIMEOUT, "60")

    assert build_options().exec_timeout_seconds == 60
    assert build_options(exec_timeout_seconds=5).exec_timeout_seconds == 5

    monkeypatch.delenv(ENV_EXEC_TIMEOUT)
    assert build_options().exec_timeout_seconds == EXEC_TIMEOUT_SECONDS
    with pytest.raises(ValueError):
        PruneOptions(exec_timeout_seconds=0)
