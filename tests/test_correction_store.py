"""Tests for correction request persistence and the pending-uniqueness indexes."""

from datetime import date, datetime, timedelta, timezone

import pytest

from clockfix.core.exceptions import (ConflictError, ImmutableFieldError,
                                      InvalidStateError, NotFoundError,
                                      ValidationError)
from clockfix.models.correction_request import (CorrectionRequest,
                                                CorrectionStatus)
from clockfix.services.correction_store import (SORT_OLDEST, SORT_STATUS,
                                                CorrectionRequestStore)

DAY = date(2024, 5, 10)
T0 = datetime(2024, 5, 11, 8, 0, tzinfo=timezone.utc)


def _request(employee_id: int, *, record_id=None, work_date=DAY, reason="forgot to clock in", created_at=None):
    return CorrectionRequest(
        employee_id=employee_id,
        attendance_record_id=record_id,
        work_date=work_date,
        requested_in_time=datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc),
        reason=reason,
        created_at=created_at,
    )


async def _insert(session_factory, request: CorrectionRequest) -> int:
    async with session_factory() as session, session.begin():
        return await CorrectionRequestStore(session).insert(request)


async def _update(session_factory, request_id, status, decision=None):
    async with session_factory() as session, session.begin():
        return await CorrectionRequestStore(session).update_status(request_id, status, decision)


# ── Insert / uniqueness ─────────────────────────────────────────────
async def test_insert_populates_defaults(session_factory, staff):
    request = _request(staff.alice.employee_id)
    request_id = await _insert(session_factory, request)

    assert request_id == request.id
    assert request.status is CorrectionStatus.PENDING
    assert request.created_at is not None
    assert request.updated_at == request.created_at


async def test_second_pending_for_same_record_conflicts(session_factory, staff, make_record):
    record_id = await make_record(staff.alice.employee_id, DAY)
    await _insert(session_factory, _request(staff.alice.employee_id, record_id=record_id))

    with pytest.raises(ConflictError):
        await _insert(session_factory, _request(staff.alice.employee_id, record_id=record_id))


async def test_second_pending_for_same_date_conflicts(session_factory, staff):
    await _insert(session_factory, _request(staff.alice.employee_id))

    with pytest.raises(ConflictError):
        await _insert(session_factory, _request(staff.alice.employee_id))

    # Other employees and other dates are independent targets
    await _insert(session_factory, _request(staff.bob.employee_id))
    await _insert(session_factory, _request(staff.alice.employee_id, work_date=DAY + timedelta(days=1)))


async def test_pending_slot_frees_after_decision(session_factory, staff, make_record):
    record_id = await make_record(staff.alice.employee_id, DAY)
    first = await _insert(session_factory, _request(staff.alice.employee_id, record_id=record_id))
    await _update(session_factory, first, CorrectionStatus.REJECTED, {"rejection_reason": "no"})

    second = await _insert(session_factory, _request(staff.alice.employee_id, record_id=record_id))
    assert second != first


async def test_find_pending_for(session_factory, staff, make_record):
    record_id = await make_record(staff.alice.employee_id, DAY)
    by_record = await _insert(session_factory, _request(staff.alice.employee_id, record_id=record_id))
    by_date = await _insert(session_factory, _request(staff.alice.employee_id, work_date=DAY + timedelta(days=3)))

    async with session_factory() as session:
        store = CorrectionRequestStore(session)
        assert (await store.find_pending_for(staff.alice.employee_id, attendance_record_id=record_id)).id == by_record
        assert (await store.find_pending_for(staff.alice.employee_id, work_date=DAY + timedelta(days=3))).id == by_date
        # A record-scoped request does not occupy the date slot
        assert await store.find_pending_for(staff.alice.employee_id, work_date=DAY) is None
        with pytest.raises(ValidationError):
            await store.find_pending_for(staff.alice.employee_id)


# ── Status updates ──────────────────────────────────────────────────
async def test_update_status_sets_decision_fields(session_factory, staff):
    request_id = await _insert(session_factory, _request(staff.alice.employee_id))

    updated = await _update(
        session_factory,
        request_id,
        CorrectionStatus.APPROVED,
        {"approval_note": "ok", "approval_employee_id": staff.admin.employee_id},
    )
    assert updated.status is CorrectionStatus.APPROVED
    assert updated.approval_note == "ok"
    assert updated.approval_employee_id == staff.admin.employee_id
    assert updated.approved_at is not None
    assert updated.updated_at >= updated.created_at
    assert updated.rejected_at is None


async def test_update_status_rejects_snapshot_fields(session_factory, staff):
    request_id = await _insert(session_factory, _request(staff.alice.employee_id))

    with pytest.raises(ValidationError):
        await _update(session_factory, request_id, CorrectionStatus.APPROVED, {"reason": "changed"})
    with pytest.raises(ValidationError):
        await _update(session_factory, request_id, CorrectionStatus.CANCELLED, {"approval_note": "x"})


async def test_update_status_missing_and_terminal(session_factory, staff):
    with pytest.raises(NotFoundError):
        await _update(session_factory, 9999, CorrectionStatus.REJECTED, {"rejection_reason": "x"})

    request_id = await _insert(session_factory, _request(staff.alice.employee_id))
    await _update(session_factory, request_id, CorrectionStatus.CANCELLED, {"cancellation_reason": "dup"})

    with pytest.raises(InvalidStateError):
        await _update(session_factory, request_id, CorrectionStatus.APPROVED)
    with pytest.raises(InvalidStateError):
        await _update(session_factory, request_id, CorrectionStatus.PENDING)


async def test_update_status_row_gone_before_reload(session_factory, staff, monkeypatch):
    request_id = await _insert(session_factory, _request(staff.alice.employee_id))

    async def vanished(*args, **kwargs):
        return None

    async with session_factory() as session:
        monkeypatch.setattr(session, "get", vanished)
        with pytest.raises(NotFoundError):
            async with session.begin():
                await CorrectionRequestStore(session).update_status(
                    request_id, CorrectionStatus.CANCELLED, {"cancellation_reason": "dup"}
                )


async def test_snapshot_is_immutable_once_stored(session_factory, staff):
    request_id = await _insert(session_factory, _request(staff.alice.employee_id))

    async with session_factory() as session:
        request = await CorrectionRequestStore(session).find_by_id(request_id)
        with pytest.raises(ImmutableFieldError):
            request.reason = "rewritten"
        with pytest.raises(ImmutableFieldError):
            request.original_in_time = T0


async def test_delete(session_factory, staff):
    request_id = await _insert(session_factory, _request(staff.alice.employee_id))
    async with session_factory() as session, session.begin():
        store = CorrectionRequestStore(session)
        assert await store.delete(request_id) is True
        assert await store.delete(request_id) is False


# ── Listings ────────────────────────────────────────────────────────
async def _seed_queue(session_factory, staff) -> list[int]:
    ids = []
    for offset, (actor, reason) in enumerate(
        [
            (staff.alice, "Delayed train"),
            (staff.bob, "Badge reader broken"),
            (staff.alice, "Forgot to clock out"),
        ]
    ):
        ids.append(
            await _insert(
                session_factory,
                _request(
                    actor.employee_id,
                    work_date=DAY + timedelta(days=offset),
                    reason=reason,
                    created_at=T0 + timedelta(hours=offset),
                ),
            )
        )
    return ids


async def test_list_by_employee_newest_first(session_factory, staff):
    ids = await _seed_queue(session_factory, staff)

    async with session_factory() as session:
        store = CorrectionRequestStore(session)
        items, total = await store.list_by_employee(staff.alice.employee_id)
        assert total == 2
        assert [r.id for r in items] == [ids[2], ids[0]]

        items, total = await store.list_by_employee(staff.alice.employee_id, page=1, size=1)
        assert total == 2
        assert [r.id for r in items] == [ids[0]]

        assert await store.count_by_employee(staff.alice.employee_id, CorrectionStatus.APPROVED) == 0


async def test_list_pending_sort_orders(session_factory, staff):
    ids = await _seed_queue(session_factory, staff)
    await _update(session_factory, ids[1], CorrectionStatus.REJECTED, {"rejection_reason": "no"})

    async with session_factory() as session:
        store = CorrectionRequestStore(session)
        items, total = await store.list_pending()
        assert total == 2
        assert [r.id for r in items] == [ids[2], ids[0]]

        items, _ = await store.list_pending(sort=SORT_OLDEST)
        assert [r.id for r in items] == [ids[0], ids[2]]

        items, total = await store.list_pending(status=None, sort=SORT_STATUS)
        assert total == 3
        assert [r.status for r in items] == [
            CorrectionStatus.PENDING,
            CorrectionStatus.PENDING,
            CorrectionStatus.REJECTED,
        ]
        assert await store.count_pending() == 2


async def test_list_pending_search(session_factory, staff):
    ids = await _seed_queue(session_factory, staff)

    async with session_factory() as session:
        store = CorrectionRequestStore(session)

        items, total = await store.list_pending(search="TRAIN")
        assert total == 1 and items[0].id == ids[0]

        items, total = await store.list_pending(search="bob suz")
        assert total == 1 and items[0].id == ids[1]

        items, total = await store.list_pending(search=str(ids[2]))
        assert ids[2] in [r.id for r in items]

        # LIKE wildcards are matched literally
        assert await store.count_pending(search="%") == 0
