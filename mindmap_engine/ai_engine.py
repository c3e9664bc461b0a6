"""
Mind Map — AI Engine
=====================
Turns validated text into a canonical MindmapTree:
  1. One call to the structuring oracle (Gemini or Groq)
  2. Robust JSON extraction from the raw response
  3. Payload normalization (nested, flat level-tagged, or bare root)
  4. Structural validation through MindmapTree

Every outcome is a SynthesisResult. There is no automatic retry: a failed
attempt is reported with its cause and the caller decides what to do next.
"""

import json
import re
import time
import logging
import asyncio
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import DeadlineExceeded
from groq import APITimeoutError

from mindmap_engine.core.config import Settings, settings
from mindmap_engine.schemas.mindmap import MindmapTree, build_tree_from_flat, color_for_level
from mindmap_engine.schemas.results import ErrorKind, SynthesisResult
from mindmap_engine.services.oracle_service import (
    OracleConfigurationError,
    StructuringOracle,
    build_oracle,
)

logger = logging.getLogger(__name__)

_TIMEOUT_ERRORS = (asyncio.TimeoutError, TimeoutError, APITimeoutError, DeadlineExceeded)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON RECOVERY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def clean_and_parse_json(raw_text: str) -> Dict[str, Any]:
    """
    Robust JSON extractor:
    1. Strip markdown code fences (```json ... ```)
    2. Extract first { ... } block
    3. Parse with json.loads
    Raises ValueError on failure with diagnostic info.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Empty AI response received")

    cleaned = raw_text.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", cleaned, re.DOTALL)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    if not cleaned.startswith("{"):
        brace_match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if brace_match:
            cleaned = brace_match.group(0)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed. Raw (first 500 chars): {raw_text[:500]}")
        raise ValueError(f"AI returned invalid JSON: {e}")

    if not isinstance(parsed, dict):
        raise ValueError(f"AI returned JSON {type(parsed).__name__}, expected an object")
    return parsed


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PAYLOAD NORMALIZATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _node_id(raw: Dict[str, Any]) -> Optional[str]:
    value = raw.get("id")
    return None if value is None else str(value)


def _node_text(raw: Dict[str, Any]) -> Any:
    # "label" is the older field name for the node text
    return raw["text"] if "text" in raw else raw.get("label")


def _normalize_node(raw: Any, level: int) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError(f"Node at level {level} is not an object")

    declared = raw.get("level")
    if declared is not None and declared != level:
        raise ValueError(
            f"Node '{raw.get('id')}' declares level {declared} but sits at level {level}"
        )

    children = raw.get("children") or []
    if not isinstance(children, list):
        raise ValueError(f"Node '{raw.get('id')}' has non-list children")

    # x / y are left for the layout collaborator
    return {
        "id": _node_id(raw),
        "text": _node_text(raw),
        "description": raw.get("description") or None,
        "level": level,
        "color": raw.get("color") or color_for_level(level),
        "children": [_normalize_node(child, level + 1) for child in children],
    }


def _flat_entry(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError("Flat node entry is not an object")
    if raw.get("children"):
        raise ValueError(f"Flat node '{raw.get('id')}' must not carry children")
    level = raw.get("level")
    if not isinstance(level, int):
        raise ValueError(f"Flat node '{raw.get('id')}' has no integer level")
    return {
        "id": _node_id(raw),
        "text": _node_text(raw),
        "level": level,
        "description": raw.get("description") or None,
        "color": raw.get("color") or color_for_level(level),
    }


def parse_mindmap_payload(payload: Dict[str, Any]) -> MindmapTree:
    """
    Accepts {title, root}, {title, nodes: [root]}, {title, nodes: [flat...]},
    {root_node} or a bare root node. Raises ValueError (including pydantic's
    ValidationError) when the structure breaks a tree invariant.
    """
    title = str(payload.get("title") or "").strip()

    if "root" in payload:
        root_raw = payload["root"]
    elif "root_node" in payload:
        root_raw = payload["root_node"]
    elif "nodes" in payload:
        nodes = payload["nodes"]
        if not isinstance(nodes, list) or not nodes:
            raise ValueError("Response contains no nodes")
        if len(nodes) > 1:
            entries: List[Dict[str, Any]] = [_flat_entry(n) for n in nodes]
            return build_tree_from_flat(title or str(entries[0]["text"] or ""), entries)
        root_raw = nodes[0]
    elif "id" in payload and ("text" in payload or "label" in payload):
        root_raw = payload
    else:
        raise ValueError("Response does not contain a mind map")

    root = _normalize_node(root_raw, 0)
    return MindmapTree.model_validate({"title": title or root["text"] or "", "root": root})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SYNTHESIZER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class MindmapSynthesizer:
    """Validated text → SynthesisResult. One oracle call per attempt."""

    def __init__(self, oracle: Optional[StructuringOracle] = None, config: Settings = settings):
        self._oracle = oracle
        self.config = config

    def _fail(self, kind: ErrorKind, message: str, timed_out: bool = False) -> SynthesisResult:
        logger.warning(f"[MINDMAP] ✗ {kind.value}: {message[:200]}")
        return SynthesisResult(success=False, error=message, kind=kind, timed_out=timed_out)

    async def synthesize(self, text: str) -> SynthesisResult:
        if not text or not text.strip():
            return self._fail(
                ErrorKind.INPUT_POLICY,
                "Please provide text content to generate a mind map.",
            )

        # Credential first: a missing key must never reach the network.
        if not self.config.oracle_api_key:
            name = self.config.oracle_api_key_name
            return self._fail(
                ErrorKind.CONFIGURATION,
                f"{name} not found. Please add {name} to your .env file.",
            )

        if self._oracle is None:
            try:
                self._oracle = build_oracle(self.config)
            except OracleConfigurationError as e:
                return self._fail(ErrorKind.CONFIGURATION, str(e))

        logger.info(f"[MINDMAP] Starting generation via {self._oracle.name} ({len(text)} chars)...")
        start = time.perf_counter()

        try:
            raw = await self._oracle.structure(text)
        except _TIMEOUT_ERRORS as e:
            return self._fail(
                ErrorKind.ORACLE,
                f"AI processing timed out: {str(e) or type(e).__name__}",
                timed_out=True,
            )
        except Exception as e:
            return self._fail(ErrorKind.ORACLE, f"AI processing failed: {e}")

        # RecursionError: pathologically deep nesting from the model
        try:
            payload = clean_and_parse_json(raw)
        except (ValueError, RecursionError) as e:
            return self._fail(ErrorKind.ORACLE, f"AI processing failed: {e}")

        try:
            tree = parse_mindmap_payload(payload)
        except (ValueError, RecursionError) as e:
            return self._fail(ErrorKind.STRUCTURAL, f"AI returned an invalid mind map: {e}")

        stats = tree.stats()
        logger.info(
            f"[MINDMAP] ✓ '{tree.title}' — {stats.total_nodes} nodes, "
            f"{stats.main_topics} main topics, depth {stats.max_depth} — "
            f"{time.perf_counter() - start:.1f}s"
        )
        return SynthesisResult(success=True, tree=tree)
