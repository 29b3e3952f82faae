"""Controller that makes a klusterlet re-bootstrap when its hub credentials go stale.

It watches the bootstrap hub kubeconfig secret and the hub kubeconfig secret of each
klusterlet. When the bootstrap secret points to another hub server or carries another
CA, or when the hub client certificate has expired, the hub kubeconfig secret and the
agent deployments are deleted so the agents bootstrap again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from .kubeconfig import KubeconfigError, cluster_from_secret, is_certificate_expired

logger = logging.getLogger(__name__)

BOOTSTRAP_HUB_KUBECONFIG = "bootstrap-hub-kubeconfig"
HUB_KUBECONFIG = "hub-kubeconfig-secret"
TLS_CERT_FILE = "tls.crt"
DEFAULT_KLUSTERLET_NAMESPACE = "open-cluster-management-agent"
DEFAULT_QUEUE_KEY = "key"
SYNC_INTERVAL = timedelta(minutes=5)


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""


@dataclass
class Secret:
    """A named, namespaced map of byte values."""

    name: str
    namespace: str
    data: dict[str, bytes] = field(default_factory=dict)


@dataclass
class Klusterlet:
    """A klusterlet and the namespace its agents run in (empty means the default)."""

    name: str
    namespace: str = ""


class Recorder:
    """Keeps the events a controller emits, as (kind, reason, message) tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, str]] = []

    def event(self, reason: str, message: str) -> None:
        logger.info("Event %s: %s", reason, message)
        self.events.append(("Normal", reason, message))

    def warning(self, reason: str, message: str) -> None:
        logger.warning("Warning %s: %s", reason, message)
        self.events.append(("Warning", reason, message))


class InMemoryCluster:
    """Holds secrets, deployments and klusterlets, recording every deletion as an action."""

    def __init__(
        self,
        secrets: Iterable[Secret] = (),
        deployments: Iterable[tuple[str, str]] = (),
        klusterlets: Iterable[Klusterlet] = (),
    ) -> None:
        self.secrets = {(s.namespace, s.name): s for s in secrets}
        self.deployments = set(deployments)
        self.klusterlets = list(klusterlets)
        self.actions: list[tuple[str, str, str, str]] = []

    def get_secret(self, namespace: str, name: str) -> Secret:
        try:
            return self.secrets[(namespace, name)]
        except KeyError:
            raise NotFoundError(f'secrets "{name}" not found in namespace "{namespace}"') from None

    def delete_secret(self, namespace: str, name: str) -> None:
        self.actions.append(("delete", "secrets", namespace, name))
        if self.secrets.pop((namespace, name), None) is None:
            raise NotFoundError(f'secrets "{name}" not found in namespace "{namespace}"')

    def delete_deployment(self, namespace: str, name: str) -> None:
        self.actions.append(("delete", "deployments", namespace, name))
        try:
            self.deployments.remove((namespace, name))
        except KeyError:
            raise NotFoundError(f'deployments "{name}" not found in namespace "{namespace}"') from None

    def list_klusterlets(self) -> list[Klusterlet]:
        return list(self.klusterlets)


@dataclass
class SyncContext:
    """The key being reconciled, the work queue, and where events go."""

    queue_key: str = ""
    recorder: Recorder = field(default_factory=Recorder)
    queue: list[str] = field(default_factory=list)

    def enqueue(self, key: str) -> None:
        self.queue.append(key)


def klusterlet_namespace(klusterlet: Klusterlet) -> str:
    """The namespace the klusterlet's agents run in."""
    return klusterlet.namespace or DEFAULT_KLUSTERLET_NAMESPACE


def find_klusterlet_by_namespace(klusterlets: Iterable[Klusterlet], namespace: str) -> Klusterlet | None:
    """The first klusterlet whose agents run in ``namespace``, if any."""
    return next((k for k in klusterlets if klusterlet_namespace(k) == namespace), None)


def bootstrap_secret_queue_key(klusterlets: Iterable[Klusterlet], obj: Any) -> str:
    """Map a changed secret to ``namespace/klusterlet`` if it is a bootstrap secret, else ``""``."""
    name = getattr(obj, "name", None)
    namespace = getattr(obj, "namespace", None)
    if name != BOOTSTRAP_HUB_KUBECONFIG or namespace is None:
        return ""
    klusterlet = find_klusterlet_by_namespace(klusterlets, namespace)
    if klusterlet is None:
        return ""
    return f"{namespace}/{klusterlet.name}"


def is_hub_kubeconfig_secret_expired(secret: Secret, now: datetime | None = None) -> bool:
    """Tell whether the client certificate held by the hub kubeconfig secret has expired."""
    if TLS_CERT_FILE not in secret.data:
        raise KubeconfigError(f'there is no "{TLS_CERT_FILE}"')
    return is_certificate_expired(secret.data[TLS_CERT_FILE], now)


def _split_key(key: str) -> tuple[str, str]:
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected key format: {key!r}")


class BootstrapController:
    """Reloads klusterlet agents when the bootstrap secret changes or the hub cert expires."""

    def __init__(
        self,
        cluster: InMemoryCluster,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.cluster = cluster
        self.clock = clock

    def sync(self, context: SyncContext) -> None:
        key = context.queue_key
        if not key:
            return
        logger.debug("Reconciling klusterlet kubeconfig secrets %r", key)

        try:
            namespace, name = _split_key(key)
        except ValueError:
            return

        if namespace == "" and name == DEFAULT_QUEUE_KEY:
            for klusterlet in self.cluster.list_klusterlets():
                context.enqueue(f"{klusterlet_namespace(klusterlet)}/{klusterlet.name}")
            return

        try:
            bootstrap_secret = self.cluster.get_secret(namespace, BOOTSTRAP_HUB_KUBECONFIG)
        except NotFoundError:
            return

        try:
            bootstrap = cluster_from_secret(bootstrap_secret)
        except KubeconfigError as exc:
            context.recorder.warning(
                "BadBootstrapSecret",
                f"unable to load hub kubeconfig from secret {namespace}/{BOOTSTRAP_HUB_KUBECONFIG}: {exc}",
            )
            return

        try:
            hub_secret = self.cluster.get_secret(namespace, HUB_KUBECONFIG)
        except NotFoundError:
            # not bootstrapped yet
            return

        try:
            hub = cluster_from_secret(hub_secret)
        except KubeconfigError as exc:
            context.recorder.warning(
                "BadHubKubeConfigSecret",
                f"unable to load hub kubeconfig from secret {namespace}/{BOOTSTRAP_HUB_KUBECONFIG}: {exc}",
            )
            return

        if (
            bootstrap.server != hub.server
            or bootstrap.certificate_authority_data != hub.certificate_authority_data
        ):
            reason = f"the bootstrap secret {namespace}/{BOOTSTRAP_HUB_KUBECONFIG} is changed"
            self.reload_agents(context, namespace, name, reason)
            return

        try:
            expired = is_hub_kubeconfig_secret_expired(hub_secret, self.clock())
        except KubeconfigError as exc:
            context.recorder.warning(
                "BadHubKubeConfigSecret",
                f"the hub kubeconfig secret {namespace}/{HUB_KUBECONFIG} is invalid: {exc}",
            )
            return

        if expired:
            reason = f"the hub kubeconfig secret {namespace}/{HUB_KUBECONFIG} is expired"
            self.reload_agents(context, namespace, name, reason)

    def reload_agents(self, context: SyncContext, namespace: str, klusterlet_name: str, reason: str) -> None:
        """Delete the hub kubeconfig secret and both agent deployments, in that order."""
        self.cluster.delete_secret(namespace, HUB_KUBECONFIG)
        context.recorder.event(
            "HubKubeconfigSecretDeleted",
            f"the hub kubeconfig secret {namespace}/{HUB_KUBECONFIG} is deleted due to {reason}",
        )
        for agent in ("registration", "work"):
            deployment = f"{klusterlet_name}-{agent}-agent"
            self.cluster.delete_deployment(namespace, deployment)
            context.recorder.event(
                "KlusterletAgentDeploymentDeleted",
                f"the deployment {namespace}/{deployment} is deleted due to {reason}",
            )