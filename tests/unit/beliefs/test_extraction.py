"""Tests for belief payload parsing and import."""

from __future__ import annotations

import json

import pytest

from memindex.beliefs.extraction import import_beliefs, parse_belief_payload
from memindex.beliefs.store import BeliefStore
from memindex.exceptions import MalformedInputError


@pytest.fixture
def store(tmp_db):
    return BeliefStore(tmp_db)


PAYLOAD = {
    "beliefs": [
        {"predicate": "prefers", "object": "pnpm", "confidence": 0.9, "strength": "strong"},
        {
            "predicate": "uses",
            "object": "poetry",
            "confidence": 0.6,
            "project_scope": "demo",
            "context": "python packaging",
        },
    ]
}


def test_parse_object_payload():
    observations = parse_belief_payload(json.dumps(PAYLOAD))
    assert [(o.predicate, o.object) for o in observations] == [
        ("prefers", "pnpm"),
        ("uses", "poetry"),
    ]
    assert observations[1].project_scope == "demo"
    assert observations[1].context == "python packaging"


def test_parse_bare_list():
    raw = json.dumps([{"predicate": "avoids", "object": "sudo pip", "confidence": 0.8}])
    assert parse_belief_payload(raw)[0].predicate == "avoids"


def test_parse_fenced_payload():
    raw = "Here you go:\n```json\n" + json.dumps(PAYLOAD) + "\n```\n"
    assert len(parse_belief_payload(raw)) == 2


@pytest.mark.parametrize("scope", ["unknown", "", "null", "None", "GLOBAL", None])
def test_global_scope_aliases(scope):
    raw = json.dumps(
        [{"predicate": "prefers", "object": "tabs", "confidence": 0.5, "project_scope": scope}]
    )
    assert parse_belief_payload(raw)[0].project_scope is None


def test_empty_list_is_valid():
    assert parse_belief_payload('{"beliefs": []}') == []


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json",
        '"just a string"',
        '{"items": []}',
        '{"beliefs": {"predicate": "prefers"}}',
        '["prefers pnpm"]',
        '[{"predicate": "prefers", "object": "pnpm"}]',
        '[{"predicate": "prefers", "object": null, "confidence": 0.5}]',
        '[{"predicate": "prefers", "object": 42, "confidence": 0.5}]',
        '[{"predicate": "wants", "object": "pnpm", "confidence": 0.5}]',
        '[{"predicate": "prefers", "object": "pnpm", "confidence": 3}]',
    ],
)
def test_malformed_payloads(raw):
    with pytest.raises(MalformedInputError):
        parse_belief_payload(raw)


def test_import_writes_beliefs(store):
    ids = import_beliefs(store, json.dumps(PAYLOAD), "session-7.json")
    assert len(ids) == 2
    belief = store.get_belief(ids[0])
    assert belief.provenance == ["session-7.json"]
    assert store.get_belief(ids[1]).project_scope == "demo"


def test_import_touches_project(store):
    import_beliefs(store, json.dumps(PAYLOAD), "s", project="demo")
    assert store.get_project("demo") is not None


def test_import_twice_confirms(store):
    ids = import_beliefs(store, json.dumps(PAYLOAD), "s1")
    import_beliefs(store, json.dumps(PAYLOAD), "s2")
    belief = store.get_belief(ids[0])
    assert belief.times_confirmed == 2
    assert belief.provenance == ["s1", "s2"]


def test_invalid_entry_rejects_whole_payload(store):
    payload = {
        "beliefs": [
            {"predicate": "prefers", "object": "pnpm", "confidence": 0.9},
            {"predicate": "prefers", "object": "yarn", "confidence": 9},
        ]
    }
    with pytest.raises(MalformedInputError):
        import_beliefs(store, json.dumps(payload), "s1", project="demo")
    assert store.stats()["beliefs"] == 0
    assert store.get_project("demo") is None
