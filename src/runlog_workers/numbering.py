"""Session numbering: dense sequence numbers and training-week indices.

Pure functions over one owner's already-loaded entries. The async
orchestration (load, lock, write) lives in renumbering.py.

Ordering rules:
- completed entries first, by (entry_date, creation order); the counter starts
  at 1 and never resets across week boundaries
- training weeks are ordinals of ISO weeks that contain a completed entry
- a planned entry linked from a completed entry shares that entry's numbers
  and takes no counter slot
- unlinked dated planned entries continue the counter by (planned date,
  creation order); their week is the matching completed week, or one past the
  last completed week when no completed entry shares their ISO week
- undated planned entries come last, in creation order, with no week

Creation order is created_at ascending (missing timestamps first), then the
order entries were passed in. Running the plan on already-numbered entries
yields no updates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date

from .dates import iso_week_tuple
from .entries import NumberingAssignment, NumberingUpdate, TrainingEntry
from .errors import NumberingInvariantError

logger = logging.getLogger(__name__)


def _creation_key(entry: TrainingEntry, position: int) -> tuple[float, int]:
    created = entry.created_at.timestamp() if entry.created_at is not None else float("-inf")
    return (created, position)


def _check_population(entries: Sequence[TrainingEntry]) -> None:
    owners = {e.owner_id for e in entries}
    if len(owners) > 1:
        raise NumberingInvariantError(
            f"Numbering input mixes owners: {sorted(owners)}",
        )
    seen: set[str] = set()
    for entry in entries:
        if entry.id in seen:
            raise NumberingInvariantError(
                f"Duplicate entry id in numbering input: {entry.id}",
                owner_id=entry.owner_id,
            )
        seen.add(entry.id)


def _resolve_links(
    completed: Sequence[TrainingEntry],
    planned_ids: set[str],
    completed_ids: set[str],
) -> dict[str, TrainingEntry]:
    """Map linked planned entry id -> the completed entry that owns it."""
    links: dict[str, TrainingEntry] = {}
    for entry in completed:
        plan_id = entry.linked_plan_id
        if plan_id is None:
            continue
        if plan_id in completed_ids:
            raise NumberingInvariantError(
                f"Entry {entry.id} links to completed entry {plan_id}",
                owner_id=entry.owner_id,
            )
        if plan_id not in planned_ids:
            logger.warning(
                "Entry %s links to unknown planned entry %s; link ignored",
                entry.id,
                plan_id,
                extra={"runlog_owner_id": entry.owner_id},
            )
            continue
        if plan_id in links:
            raise NumberingInvariantError(
                f"Planned entry {plan_id} is linked by both "
                f"{links[plan_id].id} and {entry.id}",
                owner_id=entry.owner_id,
            )
        links[plan_id] = entry
    return links


def compute_numbering(entries: Iterable[TrainingEntry]) -> list[NumberingAssignment]:
    """Compute the target numbering for every entry, in input order."""
    population = list(entries)
    if not population:
        return []
    _check_population(population)

    position = {e.id: i for i, e in enumerate(population)}
    completed = sorted(
        (e for e in population if e.is_completed),
        key=lambda e: (e.entry_date, *_creation_key(e, position[e.id])),
    )
    planned = [e for e in population if not e.is_completed]
    links = _resolve_links(
        completed,
        planned_ids={e.id for e in planned},
        completed_ids={e.id for e in completed},
    )

    assignments: dict[str, NumberingAssignment] = {}
    week_table: dict[tuple[int, int], int] = {}
    counter = 0

    for entry in completed:
        week = week_table.setdefault(iso_week_tuple(entry.entry_date), len(week_table) + 1)
        counter += 1
        assignments[entry.id] = NumberingAssignment(
            entry_id=entry.id,
            sequence_number=counter,
            training_week=week,
        )

    for plan_id, owner_entry in links.items():
        source = assignments[owner_entry.id]
        assignments[plan_id] = NumberingAssignment(
            entry_id=plan_id,
            sequence_number=source.sequence_number,
            training_week=source.training_week,
        )

    unlinked = [e for e in planned if e.id not in links]
    dated = sorted(
        (e for e in unlinked if e.effective_date is not None),
        key=lambda e: (e.effective_date, *_creation_key(e, position[e.id])),
    )
    undated = sorted(
        (e for e in unlinked if e.effective_date is None),
        key=lambda e: _creation_key(e, position[e.id]),
    )

    open_week = len(week_table) + 1
    for entry in dated:
        counter += 1
        assignments[entry.id] = NumberingAssignment(
            entry_id=entry.id,
            sequence_number=counter,
            training_week=week_table.get(iso_week_tuple(entry.effective_date), open_week),
        )

    for entry in undated:
        counter += 1
        assignments[entry.id] = NumberingAssignment(
            entry_id=entry.id,
            sequence_number=counter,
            training_week=None,
        )

    return [assignments[e.id] for e in population]


def diff_numbering(
    entries: Iterable[TrainingEntry],
    assignments: Iterable[NumberingAssignment],
) -> list[NumberingUpdate]:
    """Return only the assignments that change an entry's stored numbering."""
    stored = {e.id: (e.sequence_number, e.training_week) for e in entries}
    updates: list[NumberingUpdate] = []
    for assignment in assignments:
        target = (assignment.sequence_number, assignment.training_week)
        if stored.get(assignment.entry_id) == target:
            continue
        updates.append(
            NumberingUpdate(
                entry_id=assignment.entry_id,
                sequence_number=assignment.sequence_number,
                training_week=assignment.training_week,
            )
        )
    return updates


def plan_renumbering(entries: Iterable[TrainingEntry]) -> list[NumberingUpdate]:
    """Minimal set of numbering updates for one owner's entries."""
    population = list(entries)
    return diff_numbering(population, compute_numbering(population))


def preview_position(
    entries: Iterable[TrainingEntry],
    new_date: date,
) -> tuple[int, int]:
    """Where a new completed entry dated ``new_date`` would land.

    Returns ``(sequence_number, training_week)``. Same-day entries that already
    exist keep their numbers; the new entry goes after them.
    """
    completed_dates = [e.entry_date for e in entries if e.is_completed and e.entry_date]
    sequence_number = 1 + sum(1 for d in completed_dates if d <= new_date)

    weeks = {iso_week_tuple(d) for d in completed_dates}
    weeks.add(iso_week_tuple(new_date))
    training_week = sorted(weeks).index(iso_week_tuple(new_date)) + 1
    return sequence_number, training_week
