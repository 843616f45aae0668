"""Placement of the prompt-routing node in the primary flow document.

The prompt router is an opaque component; this module only guarantees that
its node exists and is the first entry under ``nodes:``, routing to whatever
node was first before it.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import List

from cardflow.core.emit import sidecar_path
from cardflow.core.exception import FlowIOError, PromptNodeError
from cardflow.core.spec import ComponentSourceSpec, NodeResolveSpec, ResolveSidecarSpec

log = logging.getLogger("cardflow.core.prompt")

PROMPT_NODE = "prompt2flow"
PROMPT_COMPONENT = "ai.greentic.component-prompt2flow"
PROMPT_OPERATION = "handle_message"
_NODES_SECTION = re.compile(r"^nodes:[ \t]*\n", re.MULTILINE)


def _nodes_body_start(contents: str, flow_path: Path | str) -> int:
    m = _NODES_SECTION.search(contents)
    if m is None:
        raise PromptNodeError(f"flow {flow_path} missing nodes section")
    return m.end()


def extract_node_order(contents: str, flow_path: Path | str) -> List[str]:
    """Names of the top-level nodes (2-space indented keys under ``nodes:``), in order."""
    start = _nodes_body_start(contents, flow_path)

    nodes: List[str] = []
    for line in contents[start:].splitlines():
        if not line.strip():
            continue
        indent = len(line) - len(line.lstrip(" "))
        if indent < 2:
            break
        if indent != 2:
            continue
        stripped = line.strip()
        if stripped.startswith("-"):
            continue
        if stripped.endswith(":"):
            nodes.append(stripped[:-1])
            continue
        break

    if not nodes:
        raise PromptNodeError(f"flow {flow_path} has no nodes")
    return nodes


def prompt_node_snippet(first_node: str, config_path: str) -> str:
    return (
        f"  {PROMPT_NODE}:\n"
        f"    routing:\n"
        f"    - to: {first_node}\n"
        f"    component.exec:\n"
        f"      component: {PROMPT_COMPONENT}\n"
        f"      operation: {PROMPT_OPERATION}\n"
        f"      input:\n"
        f"        config_path: {config_path}\n"
        f"\n"
    )


def insert_prompt_node(contents: str, flow_path: Path | str, *, config_path: str) -> str:
    """Return ``contents`` with the prompt node first; no-op when it already is."""
    nodes = extract_node_order(contents, flow_path)
    if nodes[0] == PROMPT_NODE:
        return contents
    if PROMPT_NODE in nodes:
        index = nodes.index(PROMPT_NODE)
        raise PromptNodeError(
            f"{PROMPT_NODE} node '{PROMPT_NODE}' exists in {flow_path} but is not the first node "
            f"(index={index}): move it to the start or regenerate with --prompt"
        )

    insert_at = _nodes_body_start(contents, flow_path)
    return contents[:insert_at] + prompt_node_snippet(nodes[0], config_path) + contents[insert_at:]


def ensure_prompt_node(flow_path: Path, *, config_path: str = "assets/config/prompt2flow.json") -> bool:
    """Rewrite the flow file so the prompt node comes first. Returns True if the file changed."""
    try:
        contents = flow_path.read_text(encoding="utf-8")
    except OSError as e:
        raise FlowIOError(f"failed to read {flow_path}: {e}") from e

    updated = insert_prompt_node(contents, flow_path, config_path=config_path)
    if updated == contents:
        return False
    try:
        flow_path.write_text(updated, encoding="utf-8")
    except OSError as e:
        raise FlowIOError(f"failed to write {flow_path}: {e}") from e
    log.info("inserted %s node into %s", PROMPT_NODE, flow_path)
    return True


def extend_sidecar_with_prompt(flow_path: Path, *, component_ref: str) -> None:
    path = sidecar_path(flow_path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise FlowIOError(f"failed to read {path}: {e}") from e

    sidecar = ResolveSidecarSpec.model_validate(raw)
    if PROMPT_NODE in sidecar.nodes:
        return
    sidecar.nodes[PROMPT_NODE] = NodeResolveSpec(source=ComponentSourceSpec(kind="oci", ref=component_ref))
    try:
        path.write_text(sidecar.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
    except OSError as e:
        raise FlowIOError(f"failed to write {path}: {e}") from e
