"""Recall composer: one plain-text briefing from beliefs, solutions and memories.

Sections, in order (empty ones are omitted):
  Project, Global preferences, Project preferences, Global lessons,
  Project lessons, Known errors and solutions, Workflow, Relevant memories.

Belief entries render as ``<predicate> <object> [scope] (confidence%, strength)``.
"""

from __future__ import annotations

from dataclasses import dataclass

from memindex.beliefs.solutions import SolutionLog
from memindex.beliefs.store import BeliefStore
from memindex.db.models import BeliefNode
from memindex.rag.retriever import SearchResult

PREFERENCE_PREDICATES = ("prefers", "uses", "avoids", "dislikes")
LESSON_PREDICATES = ("believes", "pattern")
WORKFLOW_PREDICATES = ("workflow",)


@dataclass
class RecallConfig:
    max_entries: int = 10  # per section
    max_memories: int = 5
    snippet_lines: int = 3


def compose_recall(
    store: BeliefStore,
    solutions: SolutionLog | None = None,
    project: str | None = None,
    memories: list[SearchResult] | None = None,
    config: RecallConfig | None = None,
) -> str:
    """Render the briefing for *project* (or globally when None)."""
    config = config or RecallConfig()
    n = config.max_entries
    sections: list[tuple[str, list[str]]] = []

    if project:
        sections.append(("Project", [_project_line(store, project)]))

    sections.append(
        ("Global preferences", _beliefs(store, PREFERENCE_PREDICATES, None, n))
    )
    if project:
        sections.append(
            ("Project preferences", _beliefs(store, PREFERENCE_PREDICATES, project, n))
        )
    sections.append(("Global lessons", _beliefs(store, LESSON_PREDICATES, None, n)))
    if project:
        sections.append(("Project lessons", _beliefs(store, LESSON_PREDICATES, project, n)))

    if solutions is not None:
        sections.append(
            (
                "Known errors and solutions",
                [
                    f"- {s.error} -> {s.solution} "
                    f"({s.success_rate:.0%} success, {s.times_applied} tries)"
                    for s in solutions.known_solutions(limit=n)
                ],
            )
        )

    workflow = store.query_beliefs(
        predicate=WORKFLOW_PREDICATES,
        project_scope=project,
        global_only=project is None,
        limit=n,
    )
    sections.append(("Workflow", [format_belief(b) for b in workflow]))

    if memories:
        sections.append(
            (
                "Relevant memories",
                [_memory_entry(m, config.snippet_lines) for m in memories[: config.max_memories]],
            )
        )

    blocks = [
        f"## {title}\n" + "\n".join(entries) for title, entries in sections if entries
    ]
    if not blocks:
        return ""
    return "# Memory recall\n\n" + "\n\n".join(blocks) + "\n"


def format_belief(belief: BeliefNode) -> str:
    return (
        f"- {belief.predicate} {belief.object} [{belief.scope_label}] "
        f"({belief.confidence:.0%}, {belief.strength})"
    )


def _beliefs(
    store: BeliefStore, predicates: tuple[str, ...], project: str | None, limit: int
) -> list[str]:
    if project is None:
        rows = store.query_beliefs(predicate=predicates, global_only=True, limit=limit)
    else:
        rows = store.query_beliefs(
            predicate=predicates, project_scope=project, project_only=True, limit=limit
        )
    return [format_belief(b) for b in rows]


def _project_line(store: BeliefStore, project: str) -> str:
    node = store.get_project(project)
    if node is None:
        return f"- {project} (no sessions recorded)"
    return (
        f"- {node.name} ({node.session_count} sessions, "
        f"last seen {node.last_seen[:10]})"
    )


def _memory_entry(result: SearchResult, max_lines: int) -> str:
    lines = [line for line in result.snippet.splitlines() if line.strip()][:max_lines]
    body = "\n".join(f"  {line}" for line in lines)
    header = f"- {result.path}:{result.start_line}-{result.end_line} ({result.score:.2f})"
    return f"{header}\n{body}" if body else header
