"""Tests for lesson and section ordering.

Sections are compared as (title, order) pairs so a failure shows the
whole resulting sequence.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
from prometheus_client import REGISTRY

from courseflow.core.errors import (
    AuthorizationError,
    BusinessLogicError,
    NotFoundError,
    ValidationError,
)
from courseflow.models.course import LessonDraft
from courseflow.models.lesson_content import TextContent
from courseflow.repos.registry import Repos
from courseflow.services import order_sequencer
from tests.conftest import instructor, orders, principal, seed_course, text_draft


def _reorders(operation: str) -> float:
    value = REGISTRY.get_sample_value(
        "lesson_reorders_total", labels={"operation": operation}
    )
    return value if value is not None else 0.0


def _is_dense(items) -> bool:
    return sorted(i.order for i in items) == list(range(1, len(items) + 1))


# ---- delete / insert scenario ----


def test_delete_middle_lesson_closes_the_gap(repos: Repos) -> None:
    owner = instructor()
    _course, _sections, lessons = seed_course(owner)
    l1, l2, l3 = lessons[0]

    result = asyncio.run(order_sequencer.delete_lesson(repos, owner, l2.id))

    assert orders(result) == [("L1", 1), ("L3", 2)]


def test_insert_at_desired_order_shifts_later_lessons(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner)
    section = sections[0]

    async def _run():
        await order_sequencer.delete_lesson(repos, owner, lessons[0][1].id)
        return await order_sequencer.insert_lesson(
            repos, owner, section.id, text_draft("L4"), desired_order=2
        )

    result = asyncio.run(_run())

    assert orders(result) == [("L1", 1), ("L4", 2), ("L3", 3)]


def test_insert_without_order_appends(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner)

    result = asyncio.run(
        order_sequencer.insert_lesson(repos, owner, sections[0].id, text_draft("L4"))
    )

    assert orders(result)[-1] == ("L4", 4)
    assert _is_dense(result)


def test_insert_past_the_end_is_clamped(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner)

    result = asyncio.run(
        order_sequencer.insert_lesson(
            repos, owner, sections[0].id, text_draft("L4"), desired_order=99
        )
    )

    assert orders(result)[-1] == ("L4", 4)


def test_insert_rejects_order_below_one(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner)

    with pytest.raises(ValidationError):
        asyncio.run(
            order_sequencer.insert_lesson(
                repos, owner, sections[0].id, text_draft("L4"), desired_order=0
            )
        )


def test_insert_into_empty_section(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner, lessons_per_section=0)

    result = asyncio.run(
        order_sequencer.insert_lesson(
            repos, owner, sections[0].id, text_draft("First"), desired_order=5
        )
    )

    assert orders(result) == [("First", 1)]


def test_insert_requires_course_owner(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner)

    with pytest.raises(AuthorizationError):
        asyncio.run(
            order_sequencer.insert_lesson(
                repos, principal(), sections[0].id, text_draft("Nope")
            )
        )


def test_admin_can_edit_any_course(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner)
    admin = principal(roles={"admin"})

    result = asyncio.run(
        order_sequencer.insert_lesson(repos, admin, sections[0].id, text_draft("L4"))
    )

    assert len(result) == 4


def test_insert_unknown_section_is_not_found(repos: Repos) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(
            order_sequencer.insert_lesson(repos, instructor(), uuid.uuid4(), text_draft())
        )


# ---- move ----


def test_move_within_section(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner, lessons_per_section=5)
    l2 = lessons[0][1]

    result = asyncio.run(
        order_sequencer.move_lesson(repos, owner, l2.id, sections[0].id, new_order=4)
    )

    assert orders(result) == [("L1", 1), ("L3", 2), ("L4", 3), ("L2", 4), ("L5", 5)]


def test_move_to_front_within_section(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner)
    l3 = lessons[0][2]

    result = asyncio.run(
        order_sequencer.move_lesson(repos, owner, l3.id, sections[0].id, new_order=1)
    )

    assert orders(result) == [("L3", 1), ("L1", 2), ("L2", 3)]


def test_move_across_sections_keeps_both_dense(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner, sections=2)
    moved = lessons[0][0]

    async def _run():
        destination = await order_sequencer.move_lesson(
            repos, owner, moved.id, sections[1].id, new_order=2
        )
        source = await order_sequencer.list_lessons(repos, sections[0].id)
        return source, destination

    source, destination = asyncio.run(_run())

    assert orders(source) == [("L2", 1), ("L3", 2)]
    assert orders(destination) == [("L1", 1), ("L1", 2), ("L2", 3), ("L3", 4)]
    assert destination[1].id == moved.id
    assert destination[1].section_id == sections[1].id


def test_move_without_order_appends_to_destination(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner, sections=2)

    result = asyncio.run(
        order_sequencer.move_lesson(repos, owner, lessons[0][2].id, sections[1].id)
    )

    assert result[-1].id == lessons[0][2].id
    assert result[-1].order == 4


def test_move_rejects_wrong_source_section(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner, sections=2)

    with pytest.raises(ValidationError):
        asyncio.run(
            order_sequencer.move_lesson(
                repos,
                owner,
                lessons[0][0].id,
                sections[0].id,
                new_order=2,
                from_section_id=sections[1].id,
            )
        )


def test_move_rejects_other_course(repos: Repos) -> None:
    owner = instructor()
    _course, _sections, lessons = seed_course(owner)
    _other, other_sections, _ = seed_course(owner)

    with pytest.raises(ValidationError):
        asyncio.run(
            order_sequencer.move_lesson(
                repos, owner, lessons[0][0].id, other_sections[0].id
            )
        )


def test_move_rejects_order_below_one_without_touching_orders(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner)

    with pytest.raises(ValidationError):
        asyncio.run(
            order_sequencer.move_lesson(
                repos, owner, lessons[0][0].id, sections[0].id, new_order=0
            )
        )

    result = asyncio.run(order_sequencer.list_lessons(repos, sections[0].id))
    assert orders(result) == [("L1", 1), ("L2", 2), ("L3", 3)]


# ---- batch reorder ----


def test_reorder_full_permutation(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner)
    l1, l2, l3 = lessons[0]

    result = asyncio.run(
        order_sequencer.reorder_lessons(
            repos, owner, sections[0].id, [(l1.id, 3), (l2.id, 1), (l3.id, 2)]
        )
    )

    assert orders(result) == [("L2", 1), ("L3", 2), ("L1", 3)]


def test_reorder_partial_batch_swap(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner)
    l1, l2, _l3 = lessons[0]

    result = asyncio.run(
        order_sequencer.reorder_lessons(
            repos, owner, sections[0].id, [(l1.id, 2), (l2.id, 1)]
        )
    )

    assert orders(result) == [("L2", 1), ("L1", 2), ("L3", 3)]


@pytest.mark.parametrize(
    "build",
    [
        lambda ls: [],
        lambda ls: [(ls[0].id, 1), (ls[0].id, 2)],
        lambda ls: [(ls[0].id, 2), (ls[1].id, 2)],
        lambda ls: [(ls[0].id, 5)],
        lambda ls: [(uuid.uuid4(), 1)],
    ],
    ids=["empty", "duplicate-id", "duplicate-order", "gap", "foreign-id"],
)
def test_reorder_rejects_invalid_batches(repos: Repos, build) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner)

    with pytest.raises(ValidationError):
        asyncio.run(
            order_sequencer.reorder_lessons(
                repos, owner, sections[0].id, build(lessons[0])
            )
        )

    result = asyncio.run(order_sequencer.list_lessons(repos, sections[0].id))
    assert orders(result) == [("L1", 1), ("L2", 2), ("L3", 3)]


def test_reorder_counts_metric(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner)
    l1, l2, _ = lessons[0]
    before = _reorders("reorder")

    asyncio.run(
        order_sequencer.reorder_lessons(
            repos, owner, sections[0].id, [(l1.id, 2), (l2.id, 1)]
        )
    )

    assert _reorders("reorder") - before == 1


def test_concurrent_inserts_stay_dense(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner)

    async def _run():
        await asyncio.gather(
            *(
                order_sequencer.insert_lesson(
                    repos, owner, sections[0].id, text_draft(f"N{i}"), desired_order=2
                )
                for i in range(5)
            )
        )
        return await order_sequencer.list_lessons(repos, sections[0].id)

    result = asyncio.run(_run())

    assert len(result) == 8
    assert _is_dense(result)


def test_mixed_operations_keep_density(repos: Repos) -> None:
    owner = instructor()
    _course, sections, lessons = seed_course(owner, sections=2, lessons_per_section=4)
    first, second = sections

    async def _run():
        await order_sequencer.delete_lesson(repos, owner, lessons[0][0].id)
        await order_sequencer.insert_lesson(
            repos, owner, first.id, text_draft("X"), desired_order=3
        )
        await order_sequencer.move_lesson(
            repos, owner, lessons[1][3].id, first.id, new_order=1
        )
        await order_sequencer.move_lesson(repos, owner, lessons[0][2].id, second.id)
        current = await order_sequencer.list_lessons(repos, first.id)
        await order_sequencer.reorder_lessons(
            repos, owner, first.id, [(current[0].id, 2), (current[1].id, 1)]
        )
        return (
            await order_sequencer.list_lessons(repos, first.id),
            await order_sequencer.list_lessons(repos, second.id),
        )

    first_lessons, second_lessons = asyncio.run(_run())

    assert _is_dense(first_lessons)
    assert _is_dense(second_lessons)
    assert len(first_lessons) + len(second_lessons) == 8


def test_list_lessons_can_hide_invisible(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner, lessons_per_section=1)
    hidden = LessonDraft(title="Hidden", content=TextContent(body="..."), is_visible=False)

    async def _run():
        await order_sequencer.insert_lesson(repos, owner, sections[0].id, hidden)
        return (
            await order_sequencer.list_lessons(repos, sections[0].id),
            await order_sequencer.list_lessons(
                repos, sections[0].id, include_hidden=False
            ),
        )

    everything, visible = asyncio.run(_run())

    assert [le.title for le in everything] == ["L1", "Hidden"]
    assert [le.title for le in visible] == ["L1"]


# ---- sections ----


def test_create_section_at_position_shifts_others(repos: Repos) -> None:
    owner = instructor()
    course, _sections, _lessons = seed_course(owner, sections=2, lessons_per_section=0)

    result = asyncio.run(
        order_sequencer.create_section(repos, owner, course.id, "Intro", desired_order=1)
    )

    assert orders(result) == [("Intro", 1), ("S1", 2), ("S2", 3)]


def test_create_section_appends_by_default(repos: Repos) -> None:
    owner = instructor()
    course, _sections, _lessons = seed_course(owner, sections=2, lessons_per_section=0)

    result = asyncio.run(order_sequencer.create_section(repos, owner, course.id, "Wrap-up"))

    assert orders(result) == [("S1", 1), ("S2", 2), ("Wrap-up", 3)]


def test_create_section_rejects_blank_title(repos: Repos) -> None:
    owner = instructor()
    course, _sections, _lessons = seed_course(owner)

    with pytest.raises(ValidationError):
        asyncio.run(order_sequencer.create_section(repos, owner, course.id, "   "))


def test_delete_empty_section_renumbers(repos: Repos) -> None:
    owner = instructor()
    course, sections, _lessons = seed_course(owner, sections=3, lessons_per_section=0)

    result = asyncio.run(order_sequencer.delete_section(repos, owner, sections[0].id))

    assert orders(result) == [("S2", 1), ("S3", 2)]


def test_delete_section_with_lessons_is_refused(repos: Repos) -> None:
    owner = instructor()
    _course, sections, _lessons = seed_course(owner)

    with pytest.raises(BusinessLogicError) as excinfo:
        asyncio.run(order_sequencer.delete_section(repos, owner, sections[0].id))

    assert excinfo.value.meta == {"lesson_count": 3}


def test_reorder_sections(repos: Repos) -> None:
    owner = instructor()
    course, sections, _lessons = seed_course(owner, sections=3, lessons_per_section=0)
    s1, s2, s3 = sections

    result = asyncio.run(
        order_sequencer.reorder_sections(
            repos, owner, course.id, [(s3.id, 1), (s1.id, 2), (s2.id, 3)]
        )
    )

    assert orders(result) == [("S3", 1), ("S1", 2), ("S2", 3)]


def test_reorder_sections_rejects_gaps(repos: Repos) -> None:
    owner = instructor()
    course, sections, _lessons = seed_course(owner, sections=2, lessons_per_section=0)

    with pytest.raises(ValidationError):
        asyncio.run(
            order_sequencer.reorder_sections(repos, owner, course.id, [(sections[0].id, 3)])
        )
