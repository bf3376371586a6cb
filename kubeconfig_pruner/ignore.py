"""Loader for the ignore-list of contexts that are never probed."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from kubeconfig_pruner.kubeconfig import DEFAULT_KUBE_DIR, KubeconfigError

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_FILE = DEFAULT_KUBE_DIR / "config-cleanup.ignore"


def parse_ignore_document(data: object) -> frozenset[str]:
    """Extract context names from a ConfigMap-shaped document.

    Names are read from ``data.contexts`` as a whitespace-delimited string.
    """
    if data is None:
        return frozenset()
    if not isinstance(data, dict):
        raise KubeconfigError("ignore file root must be a mapping (dict)")

    section = data.get("data") or {}
    if not isinstance(section, dict):
        raise KubeconfigError("ignore file 'data' must be a mapping")

    contexts = section.get("contexts")
    if contexts is None:
        return frozenset()
    if not isinstance(contexts, str):
        raise KubeconfigError("ignore file 'data.contexts' must be a string")
    return frozenset(contexts.split())


def load_ignore_file(path: Path = DEFAULT_IGNORE_FILE) -> frozenset[str]:
    """Load ignored context names. A missing file means nothing is ignored."""
    if not path.exists():
        logger.debug("No ignore file at %s", path)
        return frozenset()

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise KubeconfigError(f"Invalid ignore file {path}: {exc}") from exc

    names = parse_ignore_document(data)
    logger.debug("Loaded %d ignored contexts from %s", len(names), path)
    return names
