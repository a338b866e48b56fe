import pytest

from uni_health.core.errors import PriorityBlockedError
from uni_health.models.appointment import AppointmentPriority as P, AppointmentStatus as S
from uni_health.services.priority import (
    ensure_not_blocked,
    find_blocking_appointments,
    higher_priorities,
    is_blocked_by,
)


def test_higher_priorities():
    assert higher_priorities(P.normal) == [P.high, P.urgent]
    assert higher_priorities(P.high) == [P.urgent]
    assert higher_priorities(P.urgent) == []


@pytest.mark.parametrize(
    "own,other,blocked",
    [
        (P.normal, P.normal, False),
        (P.normal, P.high, True),
        (P.normal, P.urgent, True),
        (P.high, P.high, False),
        (P.high, P.urgent, True),
        (P.urgent, P.urgent, False),
        (P.urgent, P.normal, False),
    ],
)
def test_blocked_only_by_strictly_higher_level(own, other, blocked):
    assert is_blocked_by(own, other) is blocked


def test_blocking_set_is_outstanding_and_ordered(db, make_user, make_appointment):
    patient = make_user()
    target = make_appointment(patient, priority=P.normal)
    high = make_appointment(make_user(), priority=P.high)
    urgent = make_appointment(make_user(), priority=P.urgent, status=S.waiting)
    make_appointment(make_user(), priority=P.urgent, status=S.scheduled)
    make_appointment(make_user(), priority=P.high, status=S.completed)

    blocking = find_blocking_appointments(db, exclude_id=target.id, priority=target.priority)

    assert [appt.id for appt in blocking] == [urgent.id, high.id]


def test_urgent_is_never_blocked(db, make_user, make_appointment):
    target = make_appointment(make_user(), priority=P.urgent)
    make_appointment(make_user(), priority=P.urgent)

    ensure_not_blocked(db, target)


def test_ensure_not_blocked_carries_blockers(db, make_user, make_appointment):
    target = make_appointment(make_user(), priority=P.high)
    urgent = make_appointment(make_user(), priority=P.urgent, status=S.under_review)

    with pytest.raises(PriorityBlockedError) as excinfo:
        ensure_not_blocked(db, target)

    body = excinfo.value.to_dict()
    assert excinfo.value.status_code == 423
    assert body["blocking_count"] == 1
    assert body["blocking_appointments"][0]["id"] == urgent.id
    assert body["blocking_appointments"][0]["priority"] == "urgent"


def test_assign_is_refused_while_higher_priority_waits(
    api_client, auth_headers, staff, doctor, make_user, make_appointment
):
    normal = make_appointment(make_user(), priority=P.normal)
    make_appointment(make_user(), priority=P.high, at=normal.time.replace(hour=11))

    res = api_client.put(
        f"/appointments/{normal.id}/assign",
        json={"doctor_id": doctor.id},
        headers=auth_headers(staff),
    )

    assert res.status_code == 423, res.text
    body = res.json()
    assert body["blocking_count"] == 1
    assert body["blocking_appointments"][0]["priority"] == "high"


def test_priority_check_endpoint(api_client, auth_headers, staff, make_user, make_appointment):
    normal = make_appointment(make_user(), priority=P.normal)
    make_appointment(make_user(), priority=P.urgent)

    res = api_client.get(f"/appointments/{normal.id}/priority-check", headers=auth_headers(staff))

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["blocked"] is True
    assert body["blocking_count"] == 1


def test_triage_queue_orders_by_priority(api_client, auth_headers, staff, make_user, make_appointment):
    normal = make_appointment(make_user(), priority=P.normal)
    urgent = make_appointment(make_user(), priority=P.urgent, status=S.waiting)
    high = make_appointment(make_user(), priority=P.high)
    make_appointment(make_user(), priority=P.urgent, status=S.confirmed)

    res = api_client.get("/appointments/queue", headers=auth_headers(staff))

    assert res.status_code == 200, res.text
    assert [item["id"] for item in res.json()] == [urgent.id, high.id, normal.id]
