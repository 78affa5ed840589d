from decimal import Decimal

import pytest

from domain.catalog.entity import Course, Lecture
from domain.enrollment.service import EnrollmentFanOut
from infrastructure.repositories.enrollment_repository import SQLAlchemyEnrollmentRepository
from tests.helpers import enrolled_course_rows, enrolled_student_rows, lecture_flags, load_purchase


class RecordingEnrollmentRepository:
    def __init__(self):
        self.calls = []
        self.courses = set()
        self.students = set()

    async def open_lectures(self, lecture_ids):
        self.calls.append(("open_lectures", list(lecture_ids)))
        return len(lecture_ids)

    async def add_enrolled_course(self, user_id, course_id):
        self.calls.append(("add_enrolled_course", user_id, course_id))
        before = len(self.courses)
        self.courses.add((user_id, course_id))
        return len(self.courses) > before

    async def add_enrolled_student(self, course_id, user_id):
        self.calls.append(("add_enrolled_student", course_id, user_id))
        before = len(self.students)
        self.students.add((course_id, user_id))
        return len(self.students) > before


def _course(lecture_ids):
    return Course(
        id=10,
        title="Async Python",
        price=Decimal("499"),
        lectures=[Lecture(id=i, course_id=10, title=f"L{i}") for i in lecture_ids],
    )


@pytest.mark.asyncio
async def test_fan_out_order_and_set_semantics():
    repo = RecordingEnrollmentRepository()
    fan_out = EnrollmentFanOut(repo)

    first = await fan_out.run(1, _course([100, 101]))
    second = await fan_out.run(1, _course([100, 101]))

    assert [c[0] for c in repo.calls[:3]] == ["open_lectures", "add_enrolled_course", "add_enrolled_student"]
    assert first.course_added and first.student_added
    assert not second.course_added and not second.student_added
    assert repo.courses == {(1, 10)}


@pytest.mark.asyncio
async def test_fan_out_skips_lectures_for_empty_course():
    repo = RecordingEnrollmentRepository()
    outcome = await EnrollmentFanOut(repo).run(1, _course([]))
    assert outcome.lectures_opened == 0
    assert repo.calls[0][0] == "add_enrolled_course"


@pytest.mark.asyncio
async def test_completion_opens_lectures_and_enrolls_once(purchase_service, checkout_gateway, session_factory, seeded):
    await purchase_service.create_checkout(seeded["student_id"], seeded["course_id"])
    reference = f"cs_test_{checkout_gateway.created[0].purchase_id}"

    await purchase_service.complete(reference)
    await purchase_service.complete(reference)

    assert await lecture_flags(session_factory, seeded["course_id"]) == {100: True, 101: True, 102: True}
    assert await enrolled_course_rows(session_factory, seeded["student_id"]) == [seeded["course_id"]]
    assert await enrolled_student_rows(session_factory, seeded["course_id"]) == [seeded["student_id"]]


@pytest.mark.asyncio
async def test_course_without_lectures_still_enrolls(purchase_service, checkout_gateway, session_factory, seeded):
    await purchase_service.create_checkout(seeded["student_id"], seeded["empty_course_id"])
    reference = f"cs_test_{checkout_gateway.created[0].purchase_id}"

    await purchase_service.complete(reference)

    assert await enrolled_course_rows(session_factory, seeded["student_id"]) == [seeded["empty_course_id"]]
    assert await enrolled_student_rows(session_factory, seeded["empty_course_id"]) == [seeded["student_id"]]


@pytest.mark.asyncio
async def test_second_purchase_of_same_course_does_not_duplicate(
    purchase_service, checkout_gateway, session_factory, seeded
):
    for _ in range(2):
        await purchase_service.create_checkout(seeded["student_id"], seeded["course_id"])
    for req in checkout_gateway.created:
        await purchase_service.complete(f"cs_test_{req.purchase_id}")

    assert await enrolled_course_rows(session_factory, seeded["student_id"]) == [seeded["course_id"]]
    assert await enrolled_student_rows(session_factory, seeded["course_id"]) == [seeded["student_id"]]


@pytest.mark.asyncio
async def test_interrupted_fan_out_rolls_back_and_reruns_on_redelivery(
    purchase_service, checkout_gateway, uow_factory, session_factory, seeded, monkeypatch
):
    await purchase_service.create_checkout(seeded["student_id"], seeded["course_id"])
    purchase_id = checkout_gateway.created[0].purchase_id
    reference = f"cs_test_{purchase_id}"

    async def boom(self, course_id, user_id):
        raise RuntimeError("database went away")

    with monkeypatch.context() as m:
        m.setattr(SQLAlchemyEnrollmentRepository, "add_enrolled_student", boom)
        with pytest.raises(RuntimeError):
            await purchase_service.complete(reference)

    stored = await load_purchase(uow_factory, purchase_id)
    assert stored.completed_at is not None
    assert stored.enrolled_at is None
    assert await enrolled_course_rows(session_factory, seeded["student_id"]) == []
    assert (await lecture_flags(session_factory, seeded["course_id"]))[101] is False

    await purchase_service.complete(reference)

    stored = await load_purchase(uow_factory, purchase_id)
    assert stored.enrolled_at is not None
    assert await enrolled_course_rows(session_factory, seeded["student_id"]) == [seeded["course_id"]]
    assert await enrolled_student_rows(session_factory, seeded["course_id"]) == [seeded["student_id"]]


@pytest.mark.asyncio
async def test_enroll_returns_false_when_nothing_to_do(purchase_service, checkout_gateway, seeded):
    await purchase_service.create_checkout(seeded["student_id"], seeded["course_id"])
    purchase_id = checkout_gateway.created[0].purchase_id

    # Pending purchases are never enrolled
    assert await purchase_service.enroll(purchase_id) is False
    await purchase_service.complete(f"cs_test_{purchase_id}")
    assert await purchase_service.enroll(purchase_id) is False
    assert await purchase_service.enroll(12345) is False
