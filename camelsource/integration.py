"""Construction of Camel K Integration resources for a CamelSource."""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlsplit

from .flow import marshal_camel_flows

CAMEL_API_VERSION = "camel.apache.org/v1"
SOURCE_API_VERSION = "sources.knative.dev/v1alpha1"
SOURCE_KIND = "CamelSource"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass
class CamelArguments:
    """Inputs for building an Integration.

    ``owner`` is the owning resource as a mapping with ``metadata`` (and
    optionally ``apiVersion`` and ``kind``); ``source`` is the origin spec
    with optional ``integration`` and ``flow`` entries.
    """

    name: str
    namespace: str
    owner: Mapping[str, Any]
    source: Mapping[str, Any]
    sink_url: str
    overrides: dict[str, str] | None = None


def controller_ref(owner: Mapping[str, Any]) -> dict[str, Any]:
    """Build a controlling owner reference pointing at ``owner``."""
    metadata = owner.get("metadata") or {}
    return {
        "apiVersion": owner.get("apiVersion") or SOURCE_API_VERSION,
        "kind": owner.get("kind") or SOURCE_KIND,
        "name": metadata.get("name", ""),
        "uid": metadata.get("uid", ""),
        "controller": True,
        "blockOwnerDeletion": True,
    }


def _check_url(raw: str) -> None:
    if _CONTROL_CHARS.search(raw):
        raise ValueError(f"invalid control character in URL {raw!r}")
    if raw.startswith(":"):
        raise ValueError(f"missing protocol scheme in URL {raw!r}")
    head, _, fragment = raw.partition("#")
    head = head.partition("?")[0]
    if _BAD_ESCAPE.search(head) or _BAD_ESCAPE.search(fragment):
        raise ValueError(f"invalid URL escape in {raw!r}")
    urlsplit(raw)


def _encode_json(value: Any) -> str:
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def make_camel_environment(sink_url: str, overrides: Mapping[str, str] | None) -> str:
    """Serialise the Knative environment with a single sink endpoint.

    Raises ValueError when ``sink_url`` is not a valid URL.
    """
    _check_url(sink_url)
    metadata = {
        "camel.endpoint.kind": "sink",
        "knative.apiVersion": "",
        "knative.kind": "",
    }
    for key, value in (overrides or {}).items():
        metadata["ce.override.ce-" + key] = value
    service = {
        "type": "endpoint",
        "name": "sink",
        "url": sink_url,
        "metadata": dict(sorted(metadata.items())),
    }
    return _encode_json({"services": [service]})


def make_integration(args: CamelArguments) -> dict[str, Any]:
    """Build the Integration resource for the given arguments.

    Raises ValueError when neither an integration nor a flow is given.
    """
    integration_spec = args.source.get("integration")
    flow = args.source.get("flow")
    if integration_spec is None and flow is None:
        raise ValueError("empty sources")

    overrides = dict(args.overrides or {})
    overrides.setdefault("source", f"camel-source:{args.namespace}/{args.name}")
    environment = make_camel_environment(args.sink_url, overrides)

    spec: dict[str, Any] = (
        copy.deepcopy(dict(integration_spec)) if integration_spec is not None else {}
    )

    if flow is not None:
        spec["sources"] = [
            *(spec.get("sources") or []),
            {
                "name": "flow.yaml",
                "content": marshal_camel_flows([flow]),
                "interceptors": ["knative-source"],
            },
        ]

    traits = dict(spec.get("traits") or {})
    traits["knative"] = {"configuration": {"configuration": environment}}
    spec["traits"] = traits

    return {
        "apiVersion": CAMEL_API_VERSION,
        "kind": "Integration",
        "metadata": {
            "generateName": args.name + "-",
            "namespace": args.namespace,
            "ownerReferences": [controller_ref(args.owner)],
        },
        "spec": spec,
    }