# hubbootstrap

`hubbootstrap` holds the reconciliation logic that decides when a managed cluster's
agents must bootstrap against the hub again. For one klusterlet it compares the
bootstrap kubeconfig secret with the hub kubeconfig secret. It reloads the agents in
two cases:

* the bootstrap kubeconfig points at a different hub server, or carries different
  `certificate-authority-data`, than the current hub kubeconfig;
* a client certificate in the hub kubeconfig secret's `tls.crt` entry has expired.

To reload, it deletes the `hub-kubeconfig-secret` secret and then the
`<klusterlet>-registration-agent` and `<klusterlet>-work-agent` deployments. It records
an event after each deletion.

## Installation

```
pip install hubbootstrap
```

For development, with the test dependencies:

```
pip install -e ".[test]"
pytest
```

## Kubeconfig helpers

`hubbootstrap.kubeconfig` reads the cluster that a kubeconfig's current context points at:

```python
from datetime import datetime, timezone

from hubbootstrap.kubeconfig import (
    Cluster,
    KubeconfigError,
    cluster_from_secret,
    is_certificate_expired,
    load_current_cluster,
)

cluster = load_current_cluster(kubeconfig_bytes)   # bytes or str, YAML or JSON
print(cluster.server, cluster.certificate_authority_data, cluster.insecure_skip_tls_verify)

expired = is_certificate_expired(pem_bytes, datetime.now(timezone.utc))
```

* `Cluster` is a frozen dataclass. Its `certificate_authority_data` holds the decoded
  bytes of the base64 value in the kubeconfig.
* `cluster_from_secret(secret)` reads the `kubeconfig` entry of `secret.data`.
* `is_certificate_expired(cert_data, now=None)` is true when any PEM certificate in
  `cert_data` has a not-after time earlier than `now`. `now` defaults to the current
  time, and a naive `now` is taken as UTC.

Each of these raises `KubeconfigError`, a `ValueError`, for bad or incomplete input: a
missing `kubeconfig` key, unparsable YAML, an unknown current context or cluster, invalid
`certificate-authority-data`, or PEM data with no valid certificate.

## The controller

`hubbootstrap.controller` holds the controller and an in-memory store it works on:

```python
from hubbootstrap.controller import (
    BootstrapController,
    InMemoryCluster,
    Klusterlet,
    Recorder,
    Secret,
    SyncContext,
)

cluster = InMemoryCluster(
    secrets=[
        Secret("bootstrap-hub-kubeconfig", "agent-ns", {"kubeconfig": bootstrap}),
        Secret("hub-kubeconfig-secret", "agent-ns", {"kubeconfig": hub, "tls.crt": cert_pem}),
    ],
    deployments=[("agent-ns", "klusterlet-registration-agent"),
                 ("agent-ns", "klusterlet-work-agent")],
    klusterlets=[Klusterlet("klusterlet", namespace="agent-ns")],
)
recorder = Recorder()
controller = BootstrapController(cluster)
controller.sync(SyncContext("agent-ns/klusterlet", recorder))

print(cluster.actions)    # ("delete", "secrets" | "deployments", namespace, name) tuples
print(recorder.events)    # ("Normal" | "Warning", reason, message) tuples
```

How `BootstrapController.sync` treats a `SyncContext`:

* An empty queue key does nothing. A key with more than one `/` is ignored.
* The resync key `"key"` has no namespace. For it, the controller calls
  `SyncContext.enqueue` with `namespace/name` for every klusterlet, and goes no further.
* If there is no bootstrap secret or no hub kubeconfig secret, the controller does
  nothing.
* An unreadable kubeconfig, or a hub secret with a missing or invalid `tls.crt`, records
  a warning (`BadBootstrapSecret` or `BadHubKubeConfigSecret`) and returns without
  raising.
* `BootstrapController` takes an optional `clock` callable, which gives the time used
  for the expiry check.

`reload_agents` performs the deletions on its own. `InMemoryCluster.delete_secret` and
`delete_deployment` record the action first. They then raise `NotFoundError` when the
object does not exist.

Other helpers:

* `klusterlet_namespace(klusterlet)` gives the klusterlet's namespace. When it has none,
  this is `open-cluster-management-agent`.
* `find_klusterlet_by_namespace(klusterlets, namespace)` gives the first klusterlet whose
  agents run in that namespace, or `None`.
* `bootstrap_secret_queue_key(klusterlets, obj)` maps a changed `bootstrap-hub-kubeconfig`
  secret to `namespace/klusterlet-name`. It gives `""` for any other object, or when no
  klusterlet owns the namespace.
* `is_hub_kubeconfig_secret_expired(secret, now=None)` checks the secret's `tls.crt`.

## What it does not do

The package does not connect to a Kubernetes API server. It does not watch secrets and
has no resync timer: `SYNC_INTERVAL` is only a constant. It provides no command-line
program. Callers decide when to call `sync`, and work on objects in an `InMemoryCluster`.