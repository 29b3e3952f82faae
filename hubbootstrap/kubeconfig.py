"""Reading hub kubeconfigs and checking client certificate expiry."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

import yaml
from cryptography import x509

_PEM_CERTIFICATE = re.compile(
    rb"-----BEGIN CERTIFICATE-----\r?\n(.*?)-----END CERTIFICATE-----",
    re.DOTALL,
)


class KubeconfigError(ValueError):
    """Raised when a kubeconfig or certificate cannot be used."""


@dataclass(frozen=True)
class Cluster:
    """The connection details of one cluster entry in a kubeconfig."""

    server: str = ""
    certificate_authority_data: bytes = b""
    insecure_skip_tls_verify: bool = False


def _named_entries(config: Mapping[str, Any], section: str, field: str) -> dict[str, Mapping[str, Any]]:
    entries = config.get(section) or []
    if not isinstance(entries, list):
        raise KubeconfigError(f"{section} in kubeconfig must be a list")
    result: dict[str, Mapping[str, Any]] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise KubeconfigError(f"invalid entry in {section} of kubeconfig")
        body = entry.get(field) or {}
        if not isinstance(body, Mapping):
            raise KubeconfigError(f"invalid {field} in {section} of kubeconfig")
        result[str(entry.get("name", ""))] = body
    return result


def _decode_ca(value: Any) -> bytes:
    if not value:
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, TypeError, ValueError) as exc:
        raise KubeconfigError(f"invalid certificate-authority-data: {exc}") from exc


def load_current_cluster(data: bytes | str) -> Cluster:
    """Return the cluster that the current context of a kubeconfig points to."""
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise KubeconfigError(f"kubeconfig is not valid text: {exc}") from exc
    try:
        config = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise KubeconfigError(f"unable to parse kubeconfig: {exc}") from exc
    if config is None:
        config = {}
    if not isinstance(config, Mapping):
        raise KubeconfigError("kubeconfig must be a mapping")

    contexts = _named_entries(config, "contexts", "context")
    clusters = _named_entries(config, "clusters", "cluster")

    current_context = contexts.get(str(config.get("current-context") or ""))
    if current_context is None:
        raise KubeconfigError("unable to get current-context in kubeconfig")

    cluster_name = str(current_context.get("cluster") or "")
    cluster = clusters.get(cluster_name)
    if cluster is None:
        raise KubeconfigError(f'unable to get current cluster "{cluster_name}" in kubeconfig')

    return Cluster(
        server=str(cluster.get("server") or ""),
        certificate_authority_data=_decode_ca(cluster.get("certificate-authority-data")),
        insecure_skip_tls_verify=bool(cluster.get("insecure-skip-tls-verify", False)),
    )


def cluster_from_secret(secret: Any) -> Cluster:
    """Load the current cluster from the ``kubeconfig`` entry of a secret's data."""
    data = getattr(secret, "data", None) or {}
    if "kubeconfig" not in data:
        raise KubeconfigError("unable to get kubeconfig in secret")
    return load_current_cluster(data["kubeconfig"])


def _not_after(cert: x509.Certificate) -> datetime:
    value = getattr(cert, "not_valid_after_utc", None)
    if value is None:
        value = cert.not_valid_after.replace(tzinfo=timezone.utc)
    return value


def _parse_certificates(cert_data: bytes) -> list[x509.Certificate]:
    certs = []
    for body in _PEM_CERTIFICATE.findall(cert_data):
        try:
            der = base64.b64decode(b"".join(body.split()), validate=True)
            certs.append(x509.load_der_x509_certificate(der))
        except (binascii.Error, ValueError) as exc:
            raise KubeconfigError(f"failed to parse cert: {exc}") from exc
    if not certs:
        raise KubeconfigError("failed to parse cert: data does not contain any valid certificates")
    return certs


def is_certificate_expired(cert_data: bytes | str, now: datetime | None = None) -> bool:
    """Tell whether any certificate in the PEM data has passed its expiry time."""
    if isinstance(cert_data, str):
        cert_data = cert_data.encode("ascii", errors="replace")
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return any(now > _not_after(cert) for cert in _parse_certificates(cert_data))