from __future__ import annotations

import copy
import datetime as dt
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import yaml  # PyYAML
except ImportError as exc:  # pragma: no cover - handled in CLI
    raise RuntimeError("PyYAML is required. Install with: pip install PyYAML") from exc

logger = logging.getLogger(__name__)

DEFAULT_KUBE_DIR = Path.home() / ".kube"
DEFAULT_BACKUP_DIR = DEFAULT_KUBE_DIR / "config_backup"
DEFAULT_KUBECONFIG = DEFAULT_KUBE_DIR / "config"

DATA_OMITTED = "DATA+OMITTED"
REDACTED = "REDACTED"


class KubeconfigError(ValueError):
    """Raised when a kubeconfig (or ignore file) has an unusable shape."""


class MissingReferenceError(KubeconfigError):
    """Raised when a context points at a cluster or user that does not exist."""


@dataclass(frozen=True)
class ContextRef:
    name: str
    cluster: str
    user: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ClusterEntry:
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    # Directory that relative certificate paths are resolved against.
    base_dir: Path | None = field(default=None, compare=False)


@dataclass(frozen=True)
class AuthEntry:
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    # Directory that relative certificate and token paths are resolved against.
    base_dir: Path | None = field(default=None, compare=False)


@dataclass
class KubeConfig:
    """In-memory kubeconfig keyed by entry name.

    The same shape is used for the source document and for the kept/removed
    documents produced by a prune run.
    """

    contexts: dict[str, ContextRef] = field(default_factory=dict)
    clusters: dict[str, ClusterEntry] = field(default_factory=dict)
    auth_infos: dict[str, AuthEntry] = field(default_factory=dict)
    preferences: dict[str, Any] = field(default_factory=dict)
    extensions: list[Any] = field(default_factory=list)
    current_context: str = ""

    def empty_like(self) -> KubeConfig:
        return KubeConfig(preferences=self.preferences, extensions=self.extensions)

    def is_empty(self) -> bool:
        return not self.contexts and not self.clusters and not self.auth_infos

    def resolve_context(self, name: str) -> tuple[ContextRef, ClusterEntry, AuthEntry]:
        """Return a context together with the entries it references.

        Raises:
            MissingReferenceError: if the user or cluster entry is missing.
        """
        context = self.contexts[name]
        user = self.auth_infos.get(context.user)
        if user is None:
            raise MissingReferenceError(f"authInfo not found for context: {name}")
        cluster = self.clusters.get(context.cluster)
        if cluster is None:
            raise MissingReferenceError(f"cluster not found for context: {name}")
        return context, cluster, user


def load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise KubeconfigError(f"kubeconfig root must be a mapping (dict): {path}")
    return data


def write_yaml(path: Path, data: dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(
            data,
            handle,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )


def backup_file(path: Path, backup_dir: Path = DEFAULT_BACKUP_DIR) -> Path:
    backup_dir.mkdir(parents=True, exist_ok=True)
    timestamp = dt.datetime.now().strftime("%Y%m%d%H%M%S")
    backup_path = backup_dir / f"{path.name}.bak.{timestamp}"
    shutil.copy2(path, backup_path)
    return backup_path


def _named_items(document: dict[str, Any], section: str, body_key: str) -> dict[str, dict]:
    items = document.get(section)
    if items is None:
        return {}
    if not isinstance(items, list):
        raise KubeconfigError(f"'{section}' must be a list")

    named: dict[str, dict] = {}
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise KubeconfigError(f"{section}[{idx}] must be a mapping")
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise KubeconfigError(f"{section}[{idx}] has no name")
        body = item.get(body_key) or {}
        if not isinstance(body, dict):
            raise KubeconfigError(f"{section}[{idx}].{body_key} must be a mapping")
        if name in named:
            logger.warning("Duplicate %s entry '%s'; the last one wins", section, name)
        named[name] = body
    return named


def parse_kubeconfig(document: dict[str, Any], base_dir: Path | None = None) -> KubeConfig:
    """Convert a kubeconfig document in kubectl's list form into a KubeConfig.

    ``base_dir`` is the directory of the file the document came from. Relative
    file references in cluster and user entries are resolved against it.
    """
    preferences = document.get("preferences") or {}
    if not isinstance(preferences, dict):
        raise KubeconfigError("'preferences' must be a mapping")
    extensions = document.get("extensions") or []
    if not isinstance(extensions, list):
        raise KubeconfigError("'extensions' must be a list")
    current_context = document.get("current-context") or ""

    contexts: dict[str, ContextRef] = {}
    for name, body in _named_items(document, "contexts", "context").items():
        cluster = body.get("cluster")
        user = body.get("user")
        contexts[name] = ContextRef(
            name=name,
            cluster=cluster if isinstance(cluster, str) else "",
            user=user if isinstance(user, str) else "",
            data=body,
        )

    clusters = {
        name: ClusterEntry(name=name, data=body, base_dir=base_dir)
        for name, body in _named_items(document, "clusters", "cluster").items()
    }
    auth_infos = {
        name: AuthEntry(name=name, data=body, base_dir=base_dir)
        for name, body in _named_items(document, "users", "user").items()
    }

    return KubeConfig(
        contexts=contexts,
        clusters=clusters,
        auth_infos=auth_infos,
        preferences=preferences,
        extensions=extensions,
        current_context=str(current_context),
    )


def load_kubeconfig(path: Path) -> KubeConfig:
    return parse_kubeconfig(load_yaml(path), base_dir=path.expanduser().resolve().parent)


def to_document(config: KubeConfig) -> dict[str, Any]:
    """Serialise a KubeConfig back into kubectl's list form."""
    document: dict[str, Any] = {
        "apiVersion": "v1",
        "clusters": [{"name": c.name, "cluster": c.data} for c in config.clusters.values()],
        "contexts": [{"name": c.name, "context": c.data} for c in config.contexts.values()],
        "current-context": config.current_context,
        "kind": "Config",
        "preferences": config.preferences,
        "users": [{"name": u.name, "user": u.data} for u in config.auth_infos.values()],
    }
    if config.extensions:
        document["extensions"] = config.extensions
    return document


def _replace_present(data: dict[str, Any], keys: tuple[str, ...], placeholder: str) -> None:
    for key in keys:
        if data.get(key):
            data[key] = placeholder


def redact(config: KubeConfig) -> KubeConfig:
    """Return a copy with certificate data and secrets masked, like `kubectl config view`."""
    clusters: dict[str, ClusterEntry] = {}
    for name, cluster in config.clusters.items():
        data = copy.deepcopy(cluster.data)
        _replace_present(data, ("certificate-authority-data",), DATA_OMITTED)
        clusters[name] = ClusterEntry(name=name, data=data, base_dir=cluster.base_dir)

    auth_infos: dict[str, AuthEntry] = {}
    for name, user in config.auth_infos.items():
        data = copy.deepcopy(user.data)
        _replace_present(data, ("client-certificate-data",), DATA_OMITTED)
        _replace_present(data, ("client-key-data", "token", "password"), REDACTED)
        auth_infos[name] = AuthEntry(name=name, data=data, base_dir=user.base_dir)

    return KubeConfig(
        contexts=dict(config.contexts),
        clusters=clusters,
        auth_infos=auth_infos,
        preferences=config.preferences,
        extensions=config.extensions,
        current_context=config.current_context,
    )
