"""Dense 1..N ordering of lessons within a section and sections within a course.

Every mutation runs as one routine under the parent's lock (section for
lessons, course for sections), so two concurrent inserts can never compute
the same "next order" from a stale read.  Positions are moved with the
repo's bulk shift primitive, never by touching rows one at a time.

Lesson moves are delete-from-source then insert-into-destination: the
source is renumbered first, then the destination makes room.
"""

from __future__ import annotations

import logging
from uuid import UUID

from courseflow.core.errors import BusinessLogicError, ValidationError
from courseflow.core.metrics import LESSON_REORDERS
from courseflow.models.course import Lesson, LessonDraft, Section
from courseflow.models.principal import Principal
from courseflow.repos.registry import Repos
from courseflow.services.access import (
    check_owner_or_admin,
    load_course,
    load_lesson,
    load_section,
)

logger = logging.getLogger(__name__)


def _target_order(desired: int | None, current_count: int) -> int:
    """Resolve a requested slot against a parent holding ``current_count`` rows.

    None appends.  Anything past the end is clamped to the end so the
    sequence stays dense.
    """
    if desired is None:
        return current_count + 1
    if desired < 1:
        raise ValidationError("order must be >= 1", meta={"order": desired})
    return min(desired, current_count + 1)


def _validate_batch(pairs: list[tuple[UUID, int]], current_ids: set[UUID]) -> None:
    if not pairs:
        raise ValidationError("reorder batch is empty")

    ids = [item_id for item_id, _ in pairs]
    orders = [order for _, order in pairs]
    if len(set(ids)) != len(ids):
        raise ValidationError("duplicate ids in reorder batch")
    if len(set(orders)) != len(orders):
        raise ValidationError("duplicate order values in reorder batch")

    foreign = [str(i) for i in ids if i not in current_ids]
    if foreign:
        raise ValidationError(
            "ids do not belong to this parent", meta={"foreign_ids": foreign}
        )


def _merged_orders(
    current: dict[UUID, int], pairs: list[tuple[UUID, int]]
) -> dict[UUID, int]:
    """Overlay the batch on the current orders; the result must be 1..N."""
    merged = dict(current)
    merged.update(dict(pairs))
    if sorted(merged.values()) != list(range(1, len(merged) + 1)):
        raise ValidationError(
            "reorder would leave gaps or duplicates",
            meta={"expected": f"1..{len(merged)}"},
        )
    return merged


# ---------------------------------------------------------------------------
# Lessons
# ---------------------------------------------------------------------------


async def list_lessons(
    repos: Repos, section_id: UUID, *, include_hidden: bool = True
) -> list[Lesson]:
    await load_section(repos, section_id)
    lessons = await repos.content.list_lessons(section_id)
    if include_hidden:
        return lessons
    return [le for le in lessons if le.is_visible]


async def insert_lesson(
    repos: Repos,
    actor: Principal,
    section_id: UUID,
    draft: LessonDraft,
    desired_order: int | None = None,
) -> list[Lesson]:
    """Place a new lesson.  Lessons at or after the slot shift down by one."""
    section = await load_section(repos, section_id)
    check_owner_or_admin(actor, await load_course(repos, section.course_id))

    async with repos.content.section_locked(section_id):
        current = await repos.content.list_lessons(section_id)
        order = _target_order(desired_order, len(current))
        if order <= len(current):
            await repos.content.shift_lessons(section_id, order, +1)
        lesson = Lesson.place(draft, section=section, order=order)
        await repos.content.add_lesson(lesson)
        result = await repos.content.list_lessons(section_id)

    LESSON_REORDERS.labels(operation="insert").inc()
    logger.info(
        "Lesson inserted  lesson_id=%s section_id=%s order=%d",
        lesson.id,
        section_id,
        order,
        extra={
            "lesson_id": str(lesson.id),
            "section_id": str(section_id),
            "course_id": str(section.course_id),
        },
    )
    return result


async def delete_lesson(repos: Repos, actor: Principal, lesson_id: UUID) -> list[Lesson]:
    """Remove a lesson (and its progress) and close the gap it leaves."""
    lesson = await load_lesson(repos, lesson_id)
    check_owner_or_admin(actor, await load_course(repos, lesson.course_id))

    async with repos.content.section_locked(lesson.section_id):
        # Order may have shifted while waiting for the lock.
        lesson = await load_lesson(repos, lesson_id)
        await repos.content.delete_lesson(lesson_id)
        await repos.content.shift_lessons(lesson.section_id, lesson.order + 1, -1)
        result = await repos.content.list_lessons(lesson.section_id)

    LESSON_REORDERS.labels(operation="delete").inc()
    logger.info(
        "Lesson deleted  lesson_id=%s section_id=%s order=%d",
        lesson_id,
        lesson.section_id,
        lesson.order,
        extra={
            "lesson_id": str(lesson_id),
            "section_id": str(lesson.section_id),
            "course_id": str(lesson.course_id),
        },
    )
    return result


async def move_lesson(
    repos: Repos,
    actor: Principal,
    lesson_id: UUID,
    to_section_id: UUID,
    new_order: int | None = None,
    from_section_id: UUID | None = None,
) -> list[Lesson]:
    """Move a lesson within or across sections of the same course.

    Returns the destination section's ordered lessons.
    """
    if new_order is not None and new_order < 1:
        raise ValidationError("order must be >= 1", meta={"order": new_order})
    lesson = await load_lesson(repos, lesson_id)
    if from_section_id is not None and from_section_id != lesson.section_id:
        raise ValidationError(
            "lesson is not in the given source section",
            meta={"section_id": str(lesson.section_id)},
        )
    destination = await load_section(repos, to_section_id)
    if destination.course_id != lesson.course_id:
        raise ValidationError("lessons can only move within their course")
    check_owner_or_admin(actor, await load_course(repos, lesson.course_id))

    async with repos.content.section_locked(lesson.section_id, to_section_id):
        lesson = await load_lesson(repos, lesson_id)
        source_id = lesson.section_id

        # Source renumbering first: close the gap as if the lesson were gone.
        await repos.content.shift_lessons(
            source_id, lesson.order + 1, -1, exclude=lesson_id
        )

        remaining = [
            le
            for le in await repos.content.list_lessons(to_section_id)
            if le.id != lesson_id
        ]
        order = _target_order(new_order, len(remaining))
        await repos.content.shift_lessons(to_section_id, order, +1, exclude=lesson_id)
        await repos.content.relocate_lesson(lesson_id, to_section_id, order)
        result = await repos.content.list_lessons(to_section_id)

    LESSON_REORDERS.labels(operation="move").inc()
    logger.info(
        "Lesson moved  lesson_id=%s from_section=%s to_section=%s order=%d",
        lesson_id,
        source_id,
        to_section_id,
        order,
        extra={
            "lesson_id": str(lesson_id),
            "section_id": str(to_section_id),
            "course_id": str(lesson.course_id),
        },
    )
    return result


async def reorder_lessons(
    repos: Repos,
    actor: Principal,
    section_id: UUID,
    pairs: list[tuple[UUID, int]],
) -> list[Lesson]:
    """Apply a batch of (lesson_id, order) pairs atomically.

    Pairs may cover only part of the section; the lessons they leave out
    keep their order, and the combined result must still be 1..N.
    """
    section = await load_section(repos, section_id)
    check_owner_or_admin(actor, await load_course(repos, section.course_id))

    async with repos.content.section_locked(section_id):
        current = {le.id: le.order for le in await repos.content.list_lessons(section_id)}
        _validate_batch(pairs, set(current))
        merged = _merged_orders(current, pairs)
        changed = {i: o for i, o in merged.items() if current[i] != o}
        if changed:
            await repos.content.apply_lesson_orders(section_id, changed)
        result = await repos.content.list_lessons(section_id)

    LESSON_REORDERS.labels(operation="reorder").inc()
    logger.info(
        "Lessons reordered  section_id=%s changed=%d",
        section_id,
        len(changed),
        extra={"section_id": str(section_id), "course_id": str(section.course_id)},
    )
    return result


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


async def list_sections(
    repos: Repos, course_id: UUID, *, include_hidden: bool = True
) -> list[Section]:
    await load_course(repos, course_id)
    sections = await repos.content.list_sections(course_id)
    if include_hidden:
        return sections
    return [s for s in sections if s.is_visible]


async def create_section(
    repos: Repos,
    actor: Principal,
    course_id: UUID,
    title: str,
    desired_order: int | None = None,
    *,
    is_visible: bool = True,
) -> list[Section]:
    course = await load_course(repos, course_id)
    check_owner_or_admin(actor, course)
    if not title.strip():
        raise ValidationError("section title is required")

    async with repos.content.course_locked(course_id):
        current = await repos.content.list_sections(course_id)
        order = _target_order(desired_order, len(current))
        if order <= len(current):
            await repos.content.shift_sections(course_id, order, +1)
        section = Section.new(
            course_id=course_id, order=order, title=title.strip(), is_visible=is_visible
        )
        await repos.content.add_section(section)
        result = await repos.content.list_sections(course_id)

    LESSON_REORDERS.labels(operation="section_insert").inc()
    logger.info(
        "Section created  section_id=%s course_id=%s order=%d",
        section.id,
        course_id,
        order,
        extra={"section_id": str(section.id), "course_id": str(course_id)},
    )
    return result


async def delete_section(repos: Repos, actor: Principal, section_id: UUID) -> list[Section]:
    """Delete an empty section.  Sections that still hold lessons are refused."""
    section = await load_section(repos, section_id)
    check_owner_or_admin(actor, await load_course(repos, section.course_id))

    async with repos.content.course_locked(section.course_id):
        async with repos.content.section_locked(section_id):
            remaining = await repos.content.list_lessons(section_id)
            if remaining:
                raise BusinessLogicError(
                    "cannot delete a section that still has lessons",
                    meta={"lesson_count": len(remaining)},
                )
            section = await load_section(repos, section_id)
            await repos.content.delete_section(section_id)
            await repos.content.shift_sections(section.course_id, section.order + 1, -1)
        result = await repos.content.list_sections(section.course_id)

    LESSON_REORDERS.labels(operation="section_delete").inc()
    logger.info(
        "Section deleted  section_id=%s course_id=%s",
        section_id,
        section.course_id,
        extra={"section_id": str(section_id), "course_id": str(section.course_id)},
    )
    return result


async def reorder_sections(
    repos: Repos,
    actor: Principal,
    course_id: UUID,
    pairs: list[tuple[UUID, int]],
) -> list[Section]:
    course = await load_course(repos, course_id)
    check_owner_or_admin(actor, course)

    async with repos.content.course_locked(course_id):
        current = {s.id: s.order for s in await repos.content.list_sections(course_id)}
        _validate_batch(pairs, set(current))
        merged = _merged_orders(current, pairs)
        changed = {i: o for i, o in merged.items() if current[i] != o}
        if changed:
            await repos.content.apply_section_orders(course_id, changed)
        result = await repos.content.list_sections(course_id)

    LESSON_REORDERS.labels(operation="section_reorder").inc()
    logger.info(
        "Sections reordered  course_id=%s changed=%d",
        course_id,
        len(changed),
        extra={"course_id": str(course_id)},
    )
    return result

