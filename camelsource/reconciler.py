"""Reconciliation of CamelSource resources into Camel K Integrations."""

from __future__ import annotations

import copy
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from .integration import CamelArguments, make_integration

logger = logging.getLogger(__name__)

INTEGRATION_PHASE_RUNNING = "Running"

CONDITION_READY = "Ready"
CONDITION_DEPLOYED = "Deployed"
CONDITION_SINK_PROVIDED = "SinkProvided"
_DEPENDENT_CONDITIONS = (CONDITION_DEPLOYED, CONDITION_SINK_PROVIDED)


class EventType(str, enum.Enum):
    """Kind of event reported by a reconciliation."""

    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass
class Event(Exception):
    """An event produced by reconciliation; warnings are raised as errors."""

    type: EventType
    reason: str
    message: str

    def __str__(self) -> str:
        return self.message


class NotFoundError(LookupError):
    """Raised when no Integration is controlled by the source."""


class IntegrationClient(Protocol):
    """Access to Integration resources in the cluster."""

    def list_integrations(self, namespace: str) -> list[dict[str, Any]]: ...

    def create_integration(self, integration: dict[str, Any]) -> dict[str, Any]: ...

    def update_integration(self, integration: dict[str, Any]) -> dict[str, Any]: ...


SinkResolver = Callable[[dict[str, Any], dict[str, Any]], str]


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def new_reconciled_normal(namespace: str, name: str) -> Event:
    """Event reporting that a CamelSource was reconciled."""
    return Event(
        EventType.NORMAL,
        "CamelSourceReconciled",
        f"CamelSource reconciled: {_quote(f'{namespace}/{name}')}",
    )


def deep_derivative(expected: Any, actual: Any) -> bool:
    """Compare only the fields that are set in ``expected``.

    Unset values (None, empty strings, empty mappings and lists) in
    ``expected`` match anything; lists match element-wise on a prefix.
    """
    if expected is None:
        return True
    if isinstance(expected, Mapping):
        if not expected:
            return True
        if not isinstance(actual, Mapping) or len(expected) > len(actual):
            return False
        return all(
            key in actual and deep_derivative(value, actual[key])
            for key, value in expected.items()
        )
    if isinstance(expected, (list, tuple)):
        if not expected:
            return True
        if not isinstance(actual, (list, tuple)) or len(expected) > len(actual):
            return False
        return all(deep_derivative(e, a) for e, a in zip(expected, actual))
    if isinstance(expected, str):
        return expected == "" or expected == actual
    return expected == actual


def is_controlled_by(obj: Mapping[str, Any], owner: Mapping[str, Any]) -> bool:
    """Whether ``obj`` has a controlling owner reference to ``owner``."""
    refs = (obj.get("metadata") or {}).get("ownerReferences") or []
    controller = next((ref for ref in refs if ref.get("controller")), None)
    if controller is None:
        return False
    return controller.get("uid", "") == (owner.get("metadata") or {}).get("uid", "")


# Status handling -----------------------------------------------------------


def _conditions(status: dict[str, Any]) -> dict[str, dict[str, Any]]:
    return {c["type"]: c for c in status.get("conditions") or []}


def _store(status: dict[str, Any], conditions: dict[str, dict[str, Any]]) -> None:
    status["conditions"] = [conditions[key] for key in sorted(conditions)]


def _recompute_ready(conditions: dict[str, dict[str, Any]]) -> None:
    deps = [conditions.get(t, {"type": t, "status": "Unknown"}) for t in _DEPENDENT_CONDITIONS]
    failed = next((c for c in deps if c["status"] == "False"), None)
    unknown = next((c for c in deps if c["status"] == "Unknown"), None)
    if failed is not None:
        ready = {"type": CONDITION_READY, "status": "False"}
        source = failed
    elif unknown is not None:
        ready = {"type": CONDITION_READY, "status": "Unknown"}
        source = unknown
    else:
        conditions[CONDITION_READY] = {"type": CONDITION_READY, "status": "True"}
        return
    for key in ("reason", "message"):
        if source.get(key):
            ready[key] = source[key]
    conditions[CONDITION_READY] = ready


def _set_condition(
    status: dict[str, Any],
    kind: str,
    state: str,
    reason: str = "",
    message: str = "",
    severity: str = "",
) -> None:
    conditions = _conditions(status)
    condition: dict[str, Any] = {"type": kind, "status": state}
    if reason:
        condition["reason"] = reason
    if message:
        condition["message"] = message
    if severity:
        condition["severity"] = severity
    conditions[kind] = condition
    _recompute_ready(conditions)
    _store(status, conditions)


def _initialize_conditions(status: dict[str, Any]) -> None:
    conditions = _conditions(status)
    for kind in (CONDITION_READY, *_DEPENDENT_CONDITIONS):
        conditions.setdefault(kind, {"type": kind, "status": "Unknown"})
    _recompute_ready(conditions)
    _store(status, conditions)


def _mark_sink(status: dict[str, Any], uri: str) -> None:
    status["sinkUri"] = uri
    if uri:
        _set_condition(status, CONDITION_SINK_PROVIDED, "True")
    else:
        _set_condition(
            status, CONDITION_SINK_PROVIDED, "False", "SinkEmpty", "Sink has resolved to empty."
        )


def _mark_sink_warn_ref_deprecated(status: dict[str, Any], uri: str) -> None:
    status["sinkUri"] = uri
    _set_condition(
        status,
        CONDITION_SINK_PROVIDED,
        "True",
        "DestinationRefDeprecated",
        "Using deprecated object ref fields when specifying spec.sink; use spec.sink.ref instead.",
        "Warning",
    )


def _mark_no_sink(status: dict[str, Any], reason: str, message: str) -> None:
    _set_condition(status, CONDITION_SINK_PROVIDED, "False", reason, message)


def _mark_deploying(status: dict[str, Any], reason: str, message: str) -> None:
    _set_condition(status, CONDITION_DEPLOYED, "Unknown", reason, message)


def _mark_deployed(status: dict[str, Any]) -> None:
    _set_condition(status, CONDITION_DEPLOYED, "True")


def _display_name(integration: Mapping[str, Any]) -> str:
    metadata = integration.get("metadata") or {}
    return metadata.get("name") or f"{metadata.get('generateName', '')}*"


# Reconciler ----------------------------------------------------------------


class Reconciler:
    """Drives a CamelSource towards a running Integration."""

    def __init__(self, sink_resolver: SinkResolver, client: IntegrationClient) -> None:
        self._sink_resolver = sink_resolver
        self._client = client

    def reconcile_kind(self, source: dict[str, Any]) -> Event:
        """Reconcile ``source`` in place, updating its status.

        Returns the normal event describing the outcome; raises warning
        events and any error met on the way.
        """
        status = source.setdefault("status", {})
        metadata = source.get("metadata") or {}
        _initialize_conditions(status)
        status["observedGeneration"] = metadata.get("generation", 0)

        sink = (source.get("spec") or {}).get("sink")
        if sink is None:
            _mark_no_sink(status, "SinkMissing", "")
            raise ValueError("spec.sink missing")

        namespace = metadata.get("namespace", "")
        dest = copy.deepcopy(dict(sink))
        ref = dest.get("ref")
        if ref is not None:
            if not ref.get("namespace"):
                ref["namespace"] = namespace
        elif dest.get("name") and not dest.get("namespace"):
            dest["namespace"] = namespace

        try:
            sink_uri = self._sink_resolver(dest, source)
        except Exception:
            _mark_no_sink(status, "NotFound", "")
            raise

        if dest.get("apiVersion") and dest.get("kind") and dest.get("name"):
            _mark_sink_warn_ref_deprecated(status, sink_uri)
        else:
            _mark_sink(status, sink_uri)

        integration, event = self._reconcile_integration(source, sink_uri)
        if event is not None:
            return event
        if (
            integration is not None
            and (integration.get("status") or {}).get("phase") == INTEGRATION_PHASE_RUNNING
        ):
            _mark_deployed(status)

        return new_reconciled_normal(namespace, metadata.get("name", ""))

    def _arguments(self, source: dict[str, Any], sink_uri: str) -> CamelArguments:
        metadata = source.get("metadata") or {}
        spec = source.get("spec") or {}
        overrides = None
        ce_overrides = spec.get("ceOverrides")
        if ce_overrides is not None:
            overrides = {
                key.lower(): value
                for key, value in (ce_overrides.get("extensions") or {}).items()
            }
        return CamelArguments(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            owner=source,
            source=spec.get("source") or {},
            sink_url=sink_uri,
            overrides=overrides,
        )

    def _reconcile_integration(
        self, source: dict[str, Any], sink_uri: str
    ) -> tuple[dict[str, Any] | None, Event | None]:
        status = source["status"]
        args = self._arguments(source, sink_uri)

        try:
            integration = self._get_integration(source)
        except NotFoundError:
            try:
                integration = self._client.create_integration(make_integration(args))
            except Exception as err:
                raise Event(EventType.WARNING, "IntegrationBlocked", f"waiting for {err}") from err
            # Nothing more to do until the new Integration reports a status.
            name = _display_name(integration)
            _mark_deploying(status, "Deploying", f"Created integration {name}")
            return integration, Event(
                EventType.NORMAL, "Deployed", f"Created integration {_quote(name)}"
            )

        expected = make_integration(args)
        # The live spec carries defaulted fields, so only compare what is set.
        if deep_derivative(expected["spec"], integration.get("spec")):
            return integration, None

        metadata = integration.get("metadata") or {}
        logger.info(
            "Integration %r in namespace %r has changed and needs to be updated",
            metadata.get("name", ""),
            metadata.get("namespace", ""),
        )
        integration["spec"] = expected["spec"]
        name = _display_name(integration)
        try:
            self._client.update_integration(integration)
        except Exception as err:
            _mark_deploying(
                status, "IntegrationNeedsUpdate", f"Attempting to update integration {name}"
            )
            raise Event(
                EventType.WARNING,
                "IntegrationNeedsUpdate",
                f"Failed to update integration {_quote(name)}",
            ) from err
        _mark_deploying(status, "IntegrationUpdated", f"Updated integration {name}")
        return None, Event(
            EventType.NORMAL, "IntegrationUpdated", f"Updated integration {_quote(name)}"
        )

    def _get_integration(self, source: dict[str, Any]) -> dict[str, Any]:
        namespace = (source.get("metadata") or {}).get("namespace", "")
        for item in self._client.list_integrations(namespace):
            if is_controlled_by(item, source):
                return item
        raise NotFoundError("integration not found")