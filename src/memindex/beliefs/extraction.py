"""Parse extracted-belief payloads and merge them into the belief store.

Accepted payloads (raw text, typically a model's output):

  {"beliefs": [{"predicate": "prefers", "object": "pnpm", "confidence": 0.9, ...}]}
  [{"predicate": "prefers", "object": "pnpm", "confidence": 0.9}]

either of which may be wrapped in a ```json fenced block. Each entry may also
carry ``subject``, ``context`` and ``project_scope``; a ``strength`` key is
ignored because strength is derived from confidence.
"""

from __future__ import annotations

import json
import re
from typing import Any

from memindex.beliefs.store import BeliefObservation, BeliefStore, DEFAULT_SUBJECT
from memindex.exceptions import MalformedInputError

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)

# Scope values meaning "no particular project"
_GLOBAL_SCOPES = frozenset({"", "unknown", "null", "none", "global"})


def parse_belief_payload(raw: str) -> list[BeliefObservation]:
    """Turn a belief payload into validated observations.

    Raises:
        MalformedInputError: If the payload is not JSON of an accepted shape or
            any entry is invalid.
    """
    text = raw.strip()
    fence = _FENCE_RE.search(text)
    if fence:
        text = fence.group(1).strip()
    if not text:
        raise MalformedInputError("Belief payload is empty")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedInputError(f"Belief payload is not valid JSON: {exc}") from exc

    if isinstance(parsed, dict):
        entries = parsed.get("beliefs")
        if not isinstance(entries, list):
            raise MalformedInputError("Belief payload object must have a 'beliefs' array")
    elif isinstance(parsed, list):
        entries = parsed
    else:
        raise MalformedInputError(
            f"Belief payload must be an object or array, got {type(parsed).__name__}"
        )

    observations = [_to_observation(i, entry) for i, entry in enumerate(entries)]
    for observation in observations:
        observation.validate()
    return observations


def import_beliefs(
    store: BeliefStore,
    raw: str,
    source_ref: str | None = None,
    project: str | None = None,
    timestamp=None,
) -> list[str]:
    """Parse *raw* and upsert every belief in one transaction.

    Nothing is written if any entry is malformed. When *project* is given it is
    recorded as seen.

    Returns:
        Ids of the upserted beliefs, in payload order.
    """
    observations = parse_belief_payload(raw)
    ids = store.upsert_beliefs(observations, source_ref, timestamp)
    if project:
        store.touch_project(project, timestamp)
    return ids


def _to_observation(index: int, entry: Any) -> BeliefObservation:
    if not isinstance(entry, dict):
        raise MalformedInputError(f"Belief #{index} must be an object")
    for key in ("predicate", "object", "confidence"):
        if key not in entry or entry[key] is None:
            raise MalformedInputError(f"Belief #{index} is missing '{key}'")
    if not isinstance(entry["object"], str) or not isinstance(entry["predicate"], str):
        raise MalformedInputError(f"Belief #{index}: predicate and object must be strings")

    scope = entry.get("project_scope")
    if scope is not None and str(scope).strip().lower() in _GLOBAL_SCOPES:
        scope = None

    return BeliefObservation(
        predicate=entry["predicate"],
        object=entry["object"],
        confidence=entry["confidence"],
        subject=entry.get("subject") or DEFAULT_SUBJECT,
        context=entry.get("context"),
        project_scope=scope,
    )
