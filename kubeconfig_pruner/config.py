"""Run options and kubeconfig path resolution.

Precedence: CLI args → environment variables → defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from kubeconfig_pruner.kubeconfig import DEFAULT_KUBECONFIG

DEFAULT_TIMEOUT_SECONDS = 10
MAX_WORKERS = 25
PROGRESS_INTERVAL_SECONDS = 3.0
EXEC_TIMEOUT_SECONDS = 30

ENV_TIMEOUT = "KUBECONFIG_PRUNER_TIMEOUT"
ENV_MAX_WORKERS = "KUBECONFIG_PRUNER_MAX_WORKERS"
ENV_EXEC_TIMEOUT = "KUBECONFIG_PRUNER_EXEC_TIMEOUT"


@dataclass(frozen=True)
class PruneOptions:
    """Immutable inputs for a single prune run."""

    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    cleanup_clusters: bool = False
    cleanup_users: bool = False
    print_removed: bool = False
    print_raw: bool = False
    ignore_contexts: frozenset[str] = frozenset()
    max_workers: int = MAX_WORKERS
    progress_interval: float = PROGRESS_INTERVAL_SECONDS
    exec_timeout_seconds: int = EXEC_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.timeout_seconds < 1:
            raise ValueError("timeout must be >= 1 second")
        if self.max_workers < 1:
            raise ValueError("max workers must be >= 1")
        if self.progress_interval <= 0:
            raise ValueError("progress interval must be > 0")
        if self.exec_timeout_seconds < 1:
            raise ValueError("exec timeout must be >= 1 second")


def resolve_kubeconfig_path(cli_path: str | Path | None = None) -> Path:
    """Pick the kubeconfig to prune: ~/.kube/config → $KUBECONFIG → --kubeconfig."""
    if cli_path:
        return Path(cli_path).expanduser()

    env_value = os.environ.get("KUBECONFIG", "")
    # Only the first entry of a path list is used; merging is not supported.
    for entry in env_value.split(os.pathsep):
        if entry.strip():
            return Path(entry.strip()).expanduser()

    return DEFAULT_KUBECONFIG


def _env_int(key: str) -> int | None:
    val = os.environ.get(key)
    if val is None or not val.strip():
        return None
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {val!r}") from exc


def build_options(
    *,
    timeout_seconds: int | None = None,
    max_workers: int | None = None,
    exec_timeout_seconds: int | None = None,
    cleanup_clusters: bool = False,
    cleanup_users: bool = False,
    print_removed: bool = False,
    print_raw: bool = False,
    ignore_contexts: frozenset[str] = frozenset(),
) -> PruneOptions:
    """Merge CLI values over environment variables over defaults."""
    if timeout_seconds is None:
        timeout_seconds = _env_int(ENV_TIMEOUT)
    if max_workers is None:
        max_workers = _env_int(ENV_MAX_WORKERS)
    if exec_timeout_seconds is None:
        exec_timeout_seconds = _env_int(ENV_EXEC_TIMEOUT)

    return PruneOptions(
        timeout_seconds=DEFAULT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds,
        cleanup_clusters=cleanup_clusters,
        cleanup_users=cleanup_users,
        print_removed=print_removed,
        print_raw=print_raw,
        ignore_contexts=frozenset(ignore_contexts),
        max_workers=MAX_WORKERS if max_workers is None else max_workers,
        exec_timeout_seconds=(
            EXEC_TIMEOUT_SECONDS if exec_timeout_seconds is None else exec_timeout_seconds
        ),
    )
