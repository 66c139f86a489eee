# camelsource

Turn a CamelSource description into a Camel K Integration that sends its
events to a sink, and reconcile existing Integrations against it. Resources
are plain dictionaries in the usual Kubernetes shape (`apiVersion`, `kind`,
`metadata`, `spec`, `status`).

## Install

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Flows

`camelsource.flow.marshal_camel_flows(flows)` renders a list of flow
mappings as a YAML block document with keys sorted (digit runs compared by
value) and no anchors. A value YAML cannot represent raises `TypeError`.

```python
from camelsource.flow import marshal_camel_flows

marshal_camel_flows([{"from": {"uri": "timer:tick"}}])
# '- from:\n    uri: timer:tick\n'
```

## Building an Integration

`camelsource.integration.make_integration` takes a `CamelArguments` and
returns the Integration resource as a dictionary:

```python
from camelsource.integration import CamelArguments, make_integration

owner = {"metadata": {"name": "my-source", "namespace": "default", "uid": "abc-123"}}
args = CamelArguments(
    name="my-source",
    namespace="default",
    owner=owner,
    source={"flow": {"from": {"uri": "timer:tick"}}},
    sink_url="http://sink.default.svc.cluster.local",
    overrides={"a": "b"},
)
integration = make_integration(args)
```

The result has:

- `apiVersion` `camel.apache.org/v1` and `kind` `Integration`;
- `generateName` set to `<name>-`, the namespace, and one owner reference
  built by `controller_ref(owner)`: the owner's `apiVersion` and `kind`
  (defaulting to `sources.knative.dev/v1alpha1` and `CamelSource`), name and
  uid, with `controller` and `blockOwnerDeletion` set;
- a copy of the source's `integration` spec, if given, with the `flow`, if
  given, appended to `sources` as `flow.yaml` with the `knative-source`
  interceptor;
- a `knative` trait whose configuration is the JSON text made by
  `make_camel_environment(sink_url, overrides)`: one `sink` endpoint service
  whose metadata holds `camel.endpoint.kind`, `knative.apiVersion`,
  `knative.kind` and a `ce.override.ce-<key>` entry per override. A
  `source` override of `camel-source:<namespace>/<name>` is added when none
  is given; the caller's overrides are not modified.

A source with neither an `integration` nor a `flow` raises `ValueError`, as
does an invalid sink URL.

## Reconciling

`camelsource.reconciler.Reconciler(sink_resolver, client)` needs:

- `sink_resolver(destination, source)`, a callable returning the sink URI
  for the source's `spec.sink` (with a missing namespace filled in from the
  source), raising if it cannot;
- `client`, an object with `list_integrations(namespace)`,
  `create_integration(integration)` and `update_integration(integration)`.

`reconcile_kind(source)` updates the source in place:

1. initialises the `Ready`, `Deployed` and `SinkProvided` conditions and
   records `observedGeneration`;
2. raises `ValueError` if `spec.sink` is missing, and re-raises any
   resolver error after marking the sink not found; otherwise stores
   `sinkUri`;
3. looks for an Integration controlled by the source (`is_controlled_by`
   compares the controlling owner reference's uid). If there is none it
   creates one and returns a `Deployed` event; if its spec no longer
   contains the expected one (`deep_derivative`, which ignores fields unset
   in the expected spec) it updates it and returns an `IntegrationUpdated`
   event;
4. marks the source deployed once its Integration's phase is `Running` and
   returns the event from `new_reconciled_normal(namespace, name)`.

Events are `Event` objects with a `type` (`EventType.NORMAL` or
`EventType.WARNING`), a `reason` and a `message`. `Event` is an exception:
a failed create is raised as an `IntegrationBlocked` warning and a failed
update as an `IntegrationNeedsUpdate` warning.

## What this package does not do

It has no Kubernetes client, informers, work queue or command to run as a
controller. Watching resources, resolving addressables and talking to the
cluster are left to the caller through the sink resolver and client passed
to `Reconciler`.