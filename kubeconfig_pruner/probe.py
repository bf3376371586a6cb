"""Reachability probe against a cluster's API server.

Each probe builds a one-shot httpx client from the context's cluster and user
entries and asks the server for ``/version``. Any 2xx answer means the context
is reachable. The probe never retries.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import os
import ssl
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from kubeconfig_pruner.config import EXEC_TIMEOUT_SECONDS
from kubeconfig_pruner.kubeconfig import AuthEntry, ClusterEntry, ContextRef

logger = logging.getLogger(__name__)

DEFAULT_EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"
VERSION_PATH = "/version"


class ClientBuildError(Exception):
    """Raised when a usable client cannot be built from a context's entries."""


@dataclass(frozen=True)
class ProbeTarget:
    """A context together with the cluster and user entries it references."""

    context: ContextRef
    cluster: ClusterEntry
    user: AuthEntry

    @property
    def name(self) -> str:
        return self.context.name


Prober = Callable[[ProbeTarget], Awaitable[bool]]


@dataclass
class ClientSettings:
    server: str
    ssl_context: ssl.SSLContext
    headers: dict[str, str] = field(default_factory=dict)
    auth: httpx.Auth | None = None
    proxy: str | None = None
    extensions: dict[str, Any] = field(default_factory=dict)


def _decode_data(value: Any, key: str) -> str:
    # Block scalars wrap base64 across lines; line breaks are not part of the data.
    encoded = "".join(str(value).split())
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ClientBuildError(f"invalid base64 in {key}: {exc}") from exc


def resolve_path(path: Any, base_dir: Path | None = None) -> Path:
    """Resolve a file reference from a kubeconfig entry.

    Relative paths are relative to the kubeconfig's own directory, as kubectl
    resolves them, not to the current working directory.
    """
    resolved = Path(str(path)).expanduser()
    if base_dir is not None and not resolved.is_absolute():
        resolved = base_dir / resolved
    return resolved


def _read_file(path: Any, key: str, base_dir: Path | None = None) -> str:
    try:
        return resolve_path(path, base_dir).read_text(encoding="utf-8")
    except OSError as exc:
        raise ClientBuildError(f"cannot read {key} {path}: {exc}") from exc


def _pem_from(
    data: dict[str, Any],
    data_key: str,
    file_key: str,
    base_dir: Path | None = None,
) -> str | None:
    if data.get(data_key):
        return _decode_data(data[data_key], data_key)
    if data.get(file_key):
        return _read_file(data[file_key], file_key, base_dir)
    return None


def build_ssl_context(
    cluster: ClusterEntry,
    user: AuthEntry,
    client_cert: str | None = None,
    client_key: str | None = None,
) -> ssl.SSLContext:
    """Build the TLS context a kubectl client would use for this cluster.

    Reads certificate files and loads CA stores, so callers on the event loop
    run it in a worker thread. ``client_cert``/``client_key`` override the
    user entry's own certificate (exec plugins can return one).
    """
    if client_cert is None or client_key is None:
        client_cert = _pem_from(user.data, "client-certificate-data", "client-certificate", user.base_dir)
        client_key = _pem_from(user.data, "client-key-data", "client-key", user.base_dir)

    try:
        if cluster.data.get("insecure-skip-tls-verify"):
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        else:
            ca_pem = _pem_from(
                cluster.data,
                "certificate-authority-data",
                "certificate-authority",
                cluster.base_dir,
            )
            ctx = ssl.create_default_context(cadata=ca_pem)

        if client_cert and client_key:
            with tempfile.TemporaryDirectory() as tmp:
                cert_path = Path(tmp) / "client.crt"
                key_path = Path(tmp) / "client.key"
                cert_path.write_text(client_cert, encoding="utf-8")
                key_path.write_text(client_key, encoding="utf-8")
                ctx.load_cert_chain(cert_path, key_path)
    except (ssl.SSLError, OSError) as exc:
        raise ClientBuildError(f"invalid TLS material: {exc}") from exc
    return ctx


async def run_exec_plugin(spec: dict[str, Any], timeout: float = EXEC_TIMEOUT_SECONDS) -> dict:
    """Run an exec credential plugin and return its ExecCredential status."""
    command = spec.get("command")
    if not command:
        raise ClientBuildError("exec plugin has no command")

    args = [str(arg) for arg in spec.get("args") or []]
    env = dict(os.environ)
    for item in spec.get("env") or []:
        if isinstance(item, dict) and item.get("name"):
            env[str(item["name"])] = str(item.get("value", ""))
    env["KUBERNETES_EXEC_INFO"] = json.dumps(
        {
            "apiVersion": spec.get("apiVersion", DEFAULT_EXEC_API_VERSION),
            "kind": "ExecCredential",
            "spec": {"interactive": False},
        }
    )

    try:
        proc = await asyncio.create_subprocess_exec(
            str(command),
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except OSError as exc:
        raise ClientBuildError(f"cannot start exec plugin {command}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise ClientBuildError(f"exec plugin {command} timed out after {timeout}s") from exc

    if proc.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise ClientBuildError(f"exec plugin {command} exited {proc.returncode}: {detail}")

    try:
        credential = json.loads(stdout)
    except json.JSONDecodeError as exc:
        raise ClientBuildError(f"exec plugin {command} returned invalid JSON") from exc

    status = credential.get("status") if isinstance(credential, dict) else None
    if not isinstance(status, dict):
        raise ClientBuildError(f"exec plugin {command} returned no status")
    return status


async def build_client_settings(
    target: ProbeTarget,
    exec_timeout: float = EXEC_TIMEOUT_SECONDS,
) -> ClientSettings:
    """Translate a context's cluster/user entries into httpx client settings.

    Raises:
        ClientBuildError: if the entries cannot produce a working client.
    """
    cluster = target.cluster.data
    user = target.user.data

    server = cluster.get("server")
    if not isinstance(server, str) or not server.strip():
        raise ClientBuildError(f"cluster {target.cluster.name} has no server")

    headers: dict[str, str] = {}
    auth: httpx.Auth | None = None
    client_cert: str | None = None
    client_key: str | None = None

    token: str | None = None
    if user.get("token"):
        token = str(user["token"])
    elif user.get("tokenFile"):
        token_text = await asyncio.to_thread(
            _read_file, user["tokenFile"], "tokenFile", target.user.base_dir
        )
        token = token_text.strip()
    elif isinstance(user.get("exec"), dict):
        status = await run_exec_plugin(user["exec"], exec_timeout)
        token = status.get("token")
        if status.get("clientCertificateData") and status.get("clientKeyData"):
            client_cert = status["clientCertificateData"]
            client_key = status["clientKeyData"]
    elif isinstance(user.get("auth-provider"), dict):
        provider_config = user["auth-provider"].get("config") or {}
        token = provider_config.get("id-token") or provider_config.get("access-token")

    if token:
        headers["Authorization"] = f"Bearer {token}"
    elif user.get("username") and user.get("password"):
        auth = httpx.BasicAuth(str(user["username"]), str(user["password"]))

    extensions: dict[str, Any] = {}
    if cluster.get("tls-server-name"):
        extensions["sni_hostname"] = str(cluster["tls-server-name"])

    ssl_context = await asyncio.to_thread(
        build_ssl_context, target.cluster, target.user, client_cert, client_key
    )

    return ClientSettings(
        server=server.strip(),
        ssl_context=ssl_context,
        headers=headers,
        auth=auth,
        proxy=cluster.get("proxy-url") or None,
        extensions=extensions,
    )


class KubeProber:
    """Probe callable handed to the scheduler.

    Args:
        timeout: Upper bound in seconds for the ``/version`` request.
        transport: Optional httpx transport, used by tests.
        exec_timeout: Upper bound in seconds for exec credential plugins.
    """

    def __init__(
        self,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
        exec_timeout: float = EXEC_TIMEOUT_SECONDS,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._exec_timeout = exec_timeout

    async def __call__(self, target: ProbeTarget) -> bool:
        settings = await build_client_settings(target, self._exec_timeout)

        client_kwargs: dict[str, Any] = {
            "base_url": settings.server,
            "headers": settings.headers,
            "auth": settings.auth,
            "verify": settings.ssl_context,
            "timeout": httpx.Timeout(self._timeout),
        }
        if settings.proxy:
            client_kwargs["proxy"] = settings.proxy
        if self._transport is not None:
            client_kwargs["transport"] = self._transport

        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                async with asyncio.timeout(self._timeout):
                    resp = await client.get(VERSION_PATH, extensions=settings.extensions)
        except (httpx.HTTPError, TimeoutError) as exc:
            logger.debug("Context %s unreachable: %s", target.name, str(exc) or type(exc).__name__)
            return False

        if not resp.is_success:
            logger.debug("Context %s answered %s on %s", target.name, resp.status_code, VERSION_PATH)
            return False
        return True
