"""Compile model-produced architecture JSON into a Mermaid `graph TD` diagram.

The JSON is untrusted. Only the top-level shape is checked strictly; broken
nested entries fall back to default ids/labels, and edges pointing at
undeclared components are dropped.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from gitguide.errors import InvalidDiagramDataError

logger = logging.getLogger(__name__)

DEFAULT_STYLE = "classDef default fill:#1f2937,stroke:#3b82f6,stroke-width:2px,color:#fff;"

_ID_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_]")
_LEADING_FENCE_RE = re.compile(r"^```[A-Za-z]*\s*")
_TRAILING_FENCE_RE = re.compile(r"\s*```\s*$")


def _sanitize_node_id(raw: object) -> str:
    """Reduce an id to [A-Za-z0-9_]; empty ids become ``node``."""
    value = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    return _ID_UNSAFE_RE.sub("_", value) or "node"


def _sanitize_label(raw: object, default: str) -> str:
    """Labels are double-quoted in the output, so swap embedded quotes."""
    if raw is None or raw == "":
        return default.replace('"', "'")
    return str(raw).replace('"', "'")


def _as_dict(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_diagram_json(text: str) -> Any:
    """Decode the model's reply, tolerating a ```json fence around it."""
    cleaned = _TRAILING_FENCE_RE.sub("", _LEADING_FENCE_RE.sub("", text.strip())).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse diagram JSON: %.200s", text)
        raise InvalidDiagramDataError("AI returned invalid JSON") from e


def compile_diagram(data: Any, include_edge_labels: bool = False) -> str:
    """Compile a DiagramSpec-shaped dict to Mermaid text.

    Edge labels are accepted in the input but only emitted when
    ``include_edge_labels`` is set.
    """
    if not isinstance(data, dict) or not isinstance(data.get("modules"), list):
        raise InvalidDiagramDataError("Invalid diagram data structure")

    lines: list[str] = ["graph TD"]
    declared: set[str] = set()

    for module in data["modules"]:
        module = _as_dict(module)
        lines.append(f'    subgraph "{_sanitize_label(module.get("label"), "Module")}"')

        components = module.get("components")
        for component in components if isinstance(components, list) else []:
            component = _as_dict(component)
            base_id = _sanitize_node_id(component.get("id"))
            node_id = base_id
            suffix = 2
            while node_id in declared:
                node_id = f"{base_id}_{suffix}"
                suffix += 1
            if node_id != base_id:
                logger.debug("Duplicate component id %r renamed to %r", base_id, node_id)
            declared.add(node_id)

            label = _sanitize_label(component.get("label"), node_id)
            lines.append(f'        {node_id}["{label}"]')

        lines.append("    end")

    relationships = data.get("relationships")
    for rel in relationships if isinstance(relationships, list) else []:
        rel = _as_dict(rel)
        source = _ID_UNSAFE_RE.sub("_", str(rel.get("from") or ""))
        target = _ID_UNSAFE_RE.sub("_", str(rel.get("to") or ""))
        if source not in declared or target not in declared:
            logger.debug("Dropping edge %r -> %r: undeclared endpoint", source, target)
            continue

        style = rel.get("type", rel.get("kind"))
        arrow = "-.->" if style == "dotted" else "-->"
        label = rel.get("label")
        if include_edge_labels and label:
            lines.append(f'    {source} {arrow}|"{_sanitize_label(label, "")}"| {target}')
        else:
            lines.append(f"    {source} {arrow} {target}")

    return "\n".join(lines) + "\n\n    " + DEFAULT_STYLE


def parse_and_compile(text: str) -> str:
    """Parse a raw model reply and compile it; used as the structured-output parser."""
    return compile_diagram(parse_diagram_json(text))
