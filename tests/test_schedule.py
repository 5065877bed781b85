from conftest import auth_headers, make_user

from edupulse.models import Course, UserRole
from edupulse.services.schedule import times_overlap

API = "/api/v1/schedules"


def _slot(course_id, day=1, start="09:00", end="10:00", room="R1"):
    return {"course_id": course_id, "day_of_week": day, "start_time": start, "end_time": end, "room": room}


def test_times_overlap():
    assert times_overlap("09:00", "10:00", "09:30", "10:30")
    assert not times_overlap("09:00", "10:00", "10:00", "11:00")
    assert times_overlap("08:00", "12:00", "09:00", "10:00")


def test_create_schedule_normalizes_times(client, teacher, course):
    r = client.post(API, json=_slot(course.id, start="9:05", end="9:50"), headers=auth_headers(teacher))
    assert r.status_code == 201
    data = r.json()["data"]
    assert (data["start_time"], data["end_time"]) == ("09:05", "09:50")
    assert data["course"]["code"] == "PHY101"


def test_rejects_bad_time_and_reversed_slot(client, teacher, course):
    headers = auth_headers(teacher)
    r = client.post(API, json=_slot(course.id, start="25:00"), headers=headers)
    assert r.status_code == 400
    r = client.post(API, json=_slot(course.id, start="11:00", end="10:00"), headers=headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_course_conflict(client, teacher, course):
    headers = auth_headers(teacher)
    assert client.post(API, json=_slot(course.id), headers=headers).status_code == 201
    r = client.post(API, json=_slot(course.id, start="09:30", end="10:30", room="R2"), headers=headers)
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "Schedule conflicts with existing schedule"

    r = client.post(API, json=_slot(course.id, start="10:00", end="11:00"), headers=headers)
    assert r.status_code == 201


def test_room_conflict_across_courses(client, db, admin, teacher, course):
    other = Course(code="MUS101", name="Music", subject="Music", grade_level=10, teacher_id=teacher.teacher.id)
    db.add(other)
    db.commit()
    headers = auth_headers(admin)
    assert client.post(API, json=_slot(course.id), headers=headers).status_code == 201

    r = client.post(API, json=_slot(other.id, start="09:15", end="09:45"), headers=headers)
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "Room R1 is already booked for this time slot"

    r = client.post(API, json=_slot(other.id, day=2), headers=headers)
    assert r.status_code == 201


def test_update_excludes_itself_from_conflicts(client, teacher, course):
    headers = auth_headers(teacher)
    created = client.post(API, json=_slot(course.id), headers=headers).json()["data"]
    r = client.put(f"{API}/{created['id']}", json={"end_time": "10:30"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["end_time"] == "10:30"


def test_other_teacher_cannot_schedule(client, db, course):
    intruder = make_user(db, UserRole.TEACHER, "intruder@example.com")
    r = client.post(API, json=_slot(course.id), headers=auth_headers(intruder))
    assert r.status_code == 403


def test_room_availability_endpoints(client, teacher, student, course):
    client.post(API, json=_slot(course.id), headers=auth_headers(teacher))
    client.post(API, json=_slot(course.id, day=3, room="LAB"), headers=auth_headers(teacher))
    headers = auth_headers(student)

    slot = {"day_of_week": 1, "start_time": "09:30", "end_time": "10:30"}
    r = client.get(f"{API}/rooms/R1/availability", params=slot, headers=headers)
    assert r.json()["data"]["available"] is False

    r = client.get(f"{API}/rooms/available", params=slot, headers=headers)
    assert r.json()["data"] == ["LAB"]

    r = client.get(f"{API}/rooms/available", params={**slot, "end_time": "09:00"}, headers=headers)
    assert r.status_code == 400


def test_weekly_view_groups_by_day(client, teacher, student, course):
    headers = auth_headers(teacher)
    client.post(API, json=_slot(course.id, day=1, start="11:00", end="12:00"), headers=headers)
    client.post(API, json=_slot(course.id, day=1), headers=headers)
    client.post(API, json=_slot(course.id, day=4), headers=headers)

    r = client.get(f"{API}/weekly", headers=auth_headers(student))
    week = r.json()["data"]
    assert sorted(week) == [str(day) for day in range(7)]
    assert [slot["start_time"] for slot in week["1"]] == ["09:00", "11:00"]
    assert len(week["4"]) == 1
    assert week["0"] == []


def test_invalid_day_lookup(client, student):
    r = client.get(f"{API}/day/9", headers=auth_headers(student))
    assert r.status_code == 400
