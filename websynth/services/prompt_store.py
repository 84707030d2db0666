"""Prompt catalog: dotted keys into ``prompts/prompts.json``, rendered with ``string.Template``.

An entry is either a string or a list of lines joined with newlines. The file
is re-read whenever its mtime changes, so prompts can be edited on a running
server.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
_cache: tuple[int, dict[str, Any]] | None = None


def _catalog() -> dict[str, Any]:
    global _cache
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _cache is None or _cache[0] != mtime_ns:
        payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"{PROMPTS_PATH.name} must hold a JSON object")
        _cache = (mtime_ns, payload)
    return _cache[1]


def get_template(key: str) -> Template:
    node: Any = _catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    if isinstance(node, list) and all(isinstance(line, str) for line in node):
        node = "\n".join(node)
    if not isinstance(node, str):
        raise TypeError(f"Prompt key '{key}' names a section, not a prompt")
    return Template(node)


def render_prompt(key: str, **values: Any) -> str:
    template = get_template(key)
    missing = sorted(set(template.get_identifiers()) - values.keys())
    if missing:
        raise KeyError(f"Prompt '{key}' needs values for: {', '.join(missing)}")
    return template.substitute(values)
