from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class DiscoveryRoute:
    path: str
    methods: List[str] = field(default_factory=list)


@dataclass
class Empty:
    kind: str = "empty"


@dataclass
class Discovery:
    """API route listing, e.g. the WordPress REST index."""

    routes: List[DiscoveryRoute]
    namespace: Optional[str] = None
    schema: Dict[str, Any] = field(default_factory=dict)
    kind: str = "discovery"


@dataclass
class Scalar:
    """
    A single non-array value.

    `rows` holds the value as a one-row sequence when it is an object, so
    column derivation works the same as for Tabular; for primitives it is
    empty.
    """

    value: Any
    rows: List[Any] = field(default_factory=list)
    kind: str = "scalar"


@dataclass
class Tabular:
    rows: List[Any]
    unwrapped: bool = False   # True when rows came from the "data" envelope
    kind: str = "tabular"


Classification = Union[Empty, Discovery, Scalar, Tabular]


def classify(raw_data: Any) -> Classification:
    """
    Decide the shape of a decoded JSON payload.

    Evaluated in order:
      1. Discovery  object with a "routes" object
      2. Empty      [] or {}
      3. Tabular    object with a "data" array (one level of unwrapping)
      4. Tabular    array
      5. Scalar     anything else (objects become a one-row sequence)
    """
    is_object = isinstance(raw_data, dict)

    if is_object and isinstance(raw_data.get("routes"), dict):
        namespace = raw_data.get("namespace")
        return Discovery(
            routes=_discovery_routes(raw_data["routes"]),
            namespace=namespace if isinstance(namespace, str) else None,
            schema=raw_data,
        )

    if isinstance(raw_data, list) and not raw_data:
        return Empty()
    if is_object and not raw_data:
        return Empty()

    if is_object and isinstance(raw_data.get("data"), list):
        return Tabular(rows=list(raw_data["data"]), unwrapped=True)

    if isinstance(raw_data, list):
        return Tabular(rows=list(raw_data))

    return Scalar(value=raw_data, rows=[raw_data] if is_object else [])


def _discovery_routes(routes: Dict[str, Any]) -> List[DiscoveryRoute]:
    result: List[DiscoveryRoute] = []
    for path, spec in routes.items():
        methods = spec.get("methods") if isinstance(spec, dict) else None
        if not isinstance(methods, list):
            methods = []
        result.append(DiscoveryRoute(path=path, methods=[str(m) for m in methods]))
    return result


def row_sequence(classification: Classification) -> List[Any]:
    """Rows that feed column derivation; empty for Empty and Discovery."""
    if isinstance(classification, (Tabular, Scalar)):
        return classification.rows
    return []


def union_keys(rows: List[Any]) -> List[str]:
    """Own keys across all object rows, in first-seen order. Non-objects contribute none."""
    seen: Dict[str, None] = {}
    for row in rows:
        if isinstance(row, dict):
            for key in row:
                seen.setdefault(key, None)
    return list(seen)
