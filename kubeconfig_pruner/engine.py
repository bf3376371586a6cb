"""Concurrent reachability probing and keep/remove partitioning.

Workers only produce ``ProbeOutcome`` values on a single result queue. The
``Partitioner`` is the only writer of the kept/removed documents.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Collection
from dataclasses import dataclass

from kubeconfig_pruner.config import MAX_WORKERS, PROGRESS_INTERVAL_SECONDS, PruneOptions
from kubeconfig_pruner.kubeconfig import (
    AuthEntry,
    ClusterEntry,
    KubeConfig,
    MissingReferenceError,
)
from kubeconfig_pruner.probe import ClientBuildError, Prober, ProbeTarget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing a single context."""

    context_name: str
    reachable: bool


@dataclass
class PartitionResult:
    kept: KubeConfig
    removed: KubeConfig

    def selected(self, print_removed: bool = False) -> KubeConfig:
        return self.removed if print_removed else self.kept


class ProgressTracker:
    """Counts finished probes. Used for progress logging only."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.completed = 0

    def mark_done(self) -> None:
        self.completed += 1

    @property
    def finished(self) -> bool:
        return self.completed >= self.total

    async def report_every(self, interval: float) -> None:
        while not self.finished:
            await asyncio.sleep(interval)
            if self.finished:
                break
            logger.info("Finished testing %d of %d connections...", self.completed, self.total)


async def _probe_one(
    raw: KubeConfig,
    prober: Prober,
    ignore: Collection[str],
    name: str,
) -> bool:
    if name in ignore:
        logger.debug("Context %s is ignored; keeping it without a probe", name)
        return True

    try:
        context, cluster, user = raw.resolve_context(name)
        return await prober(ProbeTarget(context=context, cluster=cluster, user=user))
    except (MissingReferenceError, ClientBuildError) as exc:
        logger.info("%s", exc)
        return False
    except Exception:
        logger.warning("Probe for context %s failed unexpectedly", name, exc_info=True)
        return False


async def _probe_worker(
    raw: KubeConfig,
    prober: Prober,
    ignore: Collection[str],
    work: asyncio.Queue[str],
    results: asyncio.Queue[ProbeOutcome],
    tracker: ProgressTracker,
) -> None:
    while True:
        try:
            name = work.get_nowait()
        except asyncio.QueueEmpty:
            return
        reachable = await _probe_one(raw, prober, ignore, name)
        tracker.mark_done()
        await results.put(ProbeOutcome(context_name=name, reachable=reachable))


async def schedule_probes(
    raw: KubeConfig,
    prober: Prober,
    ignore: Collection[str] = frozenset(),
    max_workers: int = MAX_WORKERS,
    progress_interval: float = PROGRESS_INTERVAL_SECONDS,
) -> AsyncIterator[ProbeOutcome]:
    """Probe every context once and yield outcomes in completion order.

    Args:
        raw: Source kubeconfig. Never mutated.
        prober: Async callable deciding whether a context is reachable.
        ignore: Context names treated as reachable without probing.
        max_workers: Upper bound on concurrent probes.
        progress_interval: Seconds between progress log lines.

    Yields:
        Exactly one ProbeOutcome per context in ``raw``.
    """
    total = len(raw.contexts)
    if total == 0:
        return

    work: asyncio.Queue[str] = asyncio.Queue()
    for name in raw.contexts:
        work.put_nowait(name)
    results: asyncio.Queue[ProbeOutcome] = asyncio.Queue()
    tracker = ProgressTracker(total)

    workers = [
        asyncio.create_task(_probe_worker(raw, prober, ignore, work, results, tracker))
        for _ in range(min(total, max_workers))
    ]
    reporter = asyncio.create_task(tracker.report_every(progress_interval))

    try:
        for _ in range(total):
            yield await results.get()
    finally:
        reporter.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reporter
        for task in workers:
            if not task.done():
                task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    logger.info("Finished testing %d connections...", tracker.completed)


def find_zombie_clusters(raw: KubeConfig) -> dict[str, ClusterEntry]:
    """Clusters not referenced by any context, whatever its probe outcome."""
    used = {ctx.cluster for ctx in raw.contexts.values()}
    return {name: cluster for name, cluster in raw.clusters.items() if name not in used}


def find_zombie_users(raw: KubeConfig) -> dict[str, AuthEntry]:
    """Users not referenced by any context, whatever its probe outcome."""
    used = {ctx.user for ctx in raw.contexts.values()}
    return {name: user for name, user in raw.auth_infos.items() if name not in used}


class Partitioner:
    """Routes contexts and their referenced entries into kept or removed."""

    def __init__(self, raw: KubeConfig) -> None:
        self._raw = raw
        self._kept = raw.empty_like()
        self._removed = raw.empty_like()

    def add(self, outcome: ProbeOutcome) -> None:
        target = self._kept if outcome.reachable else self._removed
        context = self._raw.contexts[outcome.context_name]
        target.contexts[context.name] = context

        user = self._raw.auth_infos.get(context.user)
        if user is not None:
            target.auth_infos[user.name] = user
        cluster = self._raw.clusters.get(context.cluster)
        if cluster is not None:
            target.clusters[cluster.name] = cluster

    def add_zombies(self, cleanup_clusters: bool = False, cleanup_users: bool = False) -> None:
        cluster_target = self._removed if cleanup_clusters else self._kept
        cluster_target.clusters.update(find_zombie_clusters(self._raw))

        user_target = self._removed if cleanup_users else self._kept
        user_target.auth_infos.update(find_zombie_users(self._raw))

    def _ordered(self, partial: KubeConfig) -> KubeConfig:
        raw = self._raw
        current = raw.current_context if raw.current_context in partial.contexts else ""
        return KubeConfig(
            contexts={k: v for k, v in raw.contexts.items() if k in partial.contexts},
            clusters={k: v for k, v in raw.clusters.items() if k in partial.clusters},
            auth_infos={k: v for k, v in raw.auth_infos.items() if k in partial.auth_infos},
            preferences=raw.preferences,
            extensions=raw.extensions,
            current_context=current,
        )

    def result(self) -> PartitionResult:
        """Kept and removed documents, in the source document's order."""
        return PartitionResult(kept=self._ordered(self._kept), removed=self._ordered(self._removed))


async def partition_contexts(
    raw: KubeConfig,
    prober: Prober,
    options: PruneOptions,
) -> PartitionResult:
    partitioner = Partitioner(raw)
    async for outcome in schedule_probes(
        raw,
        prober,
        ignore=options.ignore_contexts,
        max_workers=options.max_workers,
        progress_interval=options.progress_interval,
    ):
        partitioner.add(outcome)

    partitioner.add_zombies(
        cleanup_clusters=options.cleanup_clusters,
        cleanup_users=options.cleanup_users,
    )
    return partitioner.result()


def prune_kubeconfig(raw: KubeConfig, prober: Prober, options: PruneOptions) -> PartitionResult:
    """Probe every context in ``raw`` and split it into kept and removed documents."""
    return asyncio.run(partition_contexts(raw, prober, options))
