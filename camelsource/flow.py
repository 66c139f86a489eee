"""YAML serialisation of Camel flow definitions."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

import yaml

_NUMBER_RUN = re.compile(r"([0-9]+)")


def _natural_key(key: Any) -> tuple:
    """Order mapping keys with digit runs compared by value."""
    if isinstance(key, bool):
        return (2, repr(key))
    if isinstance(key, (int, float)):
        return (0, key)
    if isinstance(key, str):
        parts = tuple(
            (0, int(part)) if part[0] in "0123456789" else (1, part)
            for part in _NUMBER_RUN.split(key)
            if part
        )
        return (1, parts)
    return (2, repr(key))


def _detach(value: Any) -> Any:
    """Rebuild containers so no object is shared and no YAML anchors appear."""
    if isinstance(value, Mapping):
        return {key: _detach(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_detach(item) for item in value]
    return value


class _FlowDumper(yaml.SafeDumper):
    def represent_sorted_dict(self, data: Mapping[Any, Any]) -> yaml.Node:
        items = sorted(data.items(), key=lambda item: _natural_key(item[0]))
        return self.represent_mapping("tag:yaml.org,2002:map", items)


_FlowDumper.add_representer(dict, _FlowDumper.represent_sorted_dict)


def marshal_camel_flows(flows: Iterable[Mapping[str, Any]]) -> str:
    """Render a list of flows as a YAML document with sorted keys.

    Raises TypeError when a flow holds a value YAML cannot represent.
    """
    try:
        return yaml.dump(
            [_detach(flow) for flow in flows],
            Dumper=_FlowDumper,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
    except yaml.YAMLError as err:
        raise TypeError(f"cannot marshal camel flows: {err}") from err