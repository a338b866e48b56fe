from sqlalchemy import select

from uni_health.models.clinic_settings import ClinicSettings

WEEK = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def _payload(**overrides):
    payload = {
        "clinic_hours": [
            {"day": day, "open_time": "08:30", "close_time": "16:30", "is_closed": False} for day in WEEK[:5]
        ]
        + [{"day": "Sunday", "is_closed": True}],
        "appointment_tips": [
            {"title": "Bring your ID", "description": "Student or staff card required.", "order": 2},
            {"title": "Be on time", "description": "Arrive ten minutes early.", "order": 1},
        ],
        "emergency_contacts": [{"name": "Security", "phone": "+90 392 630 0000", "order": 1}],
    }
    payload.update(overrides)
    return payload


def test_defaults_when_nothing_saved(api_client, auth_headers, student):
    res = api_client.get("/settings/clinic", headers=auth_headers(student))

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["is_default"] is True
    assert [entry["day"] for entry in body["clinic_hours"]] == WEEK
    sunday = body["clinic_hours"][-1]
    assert sunday["is_closed"] is True
    assert sunday["open_time"] is None
    assert body["clinic_hours"][0]["open_time"] == "08:00:00"
    assert [contact["name"] for contact in body["emergency_contacts"]][0] == "Campus Emergency"


def test_settings_require_login(api_client):
    assert api_client.get("/settings/clinic").status_code == 401


def test_admin_saves_settings(api_client, auth_headers, admin, student):
    saved = api_client.put("/settings/clinic", json=_payload(), headers=auth_headers(admin))

    assert saved.status_code == 200, saved.text
    body = saved.json()
    assert body["is_default"] is False
    assert body["updated_at"] is not None
    assert [tip["title"] for tip in body["appointment_tips"]] == ["Be on time", "Bring your ID"]
    assert [entry["day"] for entry in body["clinic_hours"]][-1] == "Sunday"

    seen = api_client.get("/settings/clinic", headers=auth_headers(student)).json()
    assert seen["clinic_hours"][0]["open_time"] == "08:30:00"
    assert seen["emergency_contacts"] == [{"name": "Security", "phone": "+90 392 630 0000", "order": 1}]


def test_saving_twice_keeps_one_row_and_audits(api_client, auth_headers, db, admin):
    headers = auth_headers(admin)
    assert api_client.put("/settings/clinic", json=_payload(), headers=headers).status_code == 200
    second = _payload(emergency_contacts=[{"name": "Ambulance", "phone": "112", "order": 1}])
    assert api_client.put("/settings/clinic", json=second, headers=headers).status_code == 200

    assert len(db.scalars(select(ClinicSettings)).all()) == 1
    trail = api_client.get(
        "/audit", params={"action": "clinic_settings.updated"}, headers=headers
    ).json()
    assert len(trail) == 2
    assert "settings_data" in trail[0]["changed_fields"]
    assert trail[1]["before_json"] is None


def test_only_admin_may_save(api_client, auth_headers, staff):
    res = api_client.put("/settings/clinic", json=_payload(), headers=auth_headers(staff))
    assert res.status_code == 403


def test_open_day_needs_both_times(api_client, auth_headers, admin):
    payload = _payload(clinic_hours=[{"day": "Monday", "open_time": "09:00", "is_closed": False}])

    res = api_client.put("/settings/clinic", json=payload, headers=auth_headers(admin))

    assert res.status_code == 422
    assert res.json()["message"] == "The given data was invalid."


def test_closing_before_opening_is_rejected(api_client, auth_headers, admin):
    payload = _payload(clinic_hours=[{"day": "Monday", "open_time": "17:00", "close_time": "09:00"}])
    assert api_client.put("/settings/clinic", json=payload, headers=auth_headers(admin)).status_code == 422


def test_duplicate_day_is_rejected(api_client, auth_headers, admin):
    payload = _payload(
        clinic_hours=[
            {"day": "Monday", "open_time": "09:00", "close_time": "12:00"},
            {"day": "Monday", "open_time": "13:00", "close_time": "17:00"},
        ]
    )
    assert api_client.put("/settings/clinic", json=payload, headers=auth_headers(admin)).status_code == 422


def test_all_sections_are_required(api_client, auth_headers, admin):
    payload = _payload()
    del payload["emergency_contacts"]

    res = api_client.put("/settings/clinic", json=payload, headers=auth_headers(admin))

    assert res.status_code == 422
    assert "emergency_contacts" in res.json()["errors"]
