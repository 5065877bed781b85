import pytest
from conftest import auth_headers

from edupulse.models import Attendance, AttendanceStatus
from edupulse.services.attendance import attendance_stats
from edupulse.services.grades import compute_percentage

ATTENDANCE = "/api/v1/attendance"
GRADES = "/api/v1/grades"


def test_attendance_stats_counts_late_as_attended():
    records = [
        Attendance(status=AttendanceStatus.PRESENT),
        Attendance(status=AttendanceStatus.LATE),
        Attendance(status=AttendanceStatus.ABSENT),
        Attendance(status=AttendanceStatus.EXCUSED),
    ]
    assert attendance_stats(records) == {
        "total": 4,
        "present": 1,
        "absent": 1,
        "late": 1,
        "excused": 1,
        "attendance_rate": 50.0,
    }
    assert attendance_stats([])["attendance_rate"] == 0.0


@pytest.mark.parametrize("score,max_score,expected", [(45, 50, 90.0), (2, 3, 66.67), (0, 10, 0.0)])
def test_compute_percentage(score, max_score, expected):
    assert compute_percentage(score, max_score) == expected


def test_mark_attendance_upserts(client, db, teacher, student, course):
    headers = auth_headers(teacher)
    payload = {"student_id": student.student.id, "course_id": course.id, "date": "2025-03-03", "status": "ABSENT"}
    first = client.post(ATTENDANCE, json=payload, headers=headers)
    assert first.status_code == 201

    second = client.post(ATTENDANCE, json={**payload, "status": "LATE", "remarks": "bus"}, headers=headers)
    assert second.json()["data"]["id"] == first.json()["data"]["id"]
    assert second.json()["data"]["status"] == "LATE"
    assert db.query(Attendance).count() == 1


def test_attendance_requires_enrollment(client, teacher, other_student, course):
    payload = {"student_id": other_student.student.id, "course_id": course.id, "date": "2025-03-03", "status": "PRESENT"}
    r = client.post(ATTENDANCE, json=payload, headers=auth_headers(teacher))
    assert r.status_code == 400
    assert r.json()["error"]["message"] == f"Student {other_student.student.id} is not enrolled in this course"


def test_bulk_attendance(client, db, teacher, student, course):
    headers = auth_headers(teacher)
    entry = {"student_id": student.student.id, "status": "PRESENT"}
    r = client.post(
        f"{ATTENDANCE}/bulk", json={"course_id": course.id, "date": "2025-03-04", "records": [entry]}, headers=headers
    )
    assert r.status_code == 201
    assert r.json()["message"] == "Attendance marked for 1 students"

    r = client.post(
        f"{ATTENDANCE}/bulk",
        json={"course_id": course.id, "date": "2025-03-05", "records": [entry, entry]},
        headers=headers,
    )
    assert r.status_code == 400
    assert db.query(Attendance).count() == 1


def test_student_attendance_report(client, teacher, student, parent, other_student, course):
    headers = auth_headers(teacher)
    for day, status in (("2025-03-03", "PRESENT"), ("2025-03-04", "LATE"), ("2025-03-05", "ABSENT")):
        client.post(
            ATTENDANCE,
            json={"student_id": student.student.id, "course_id": course.id, "date": day, "status": status},
            headers=headers,
        )

    r = client.get(f"{ATTENDANCE}/student/{student.student.id}", headers=auth_headers(parent))
    assert r.status_code == 200
    report = r.json()["data"]
    assert [record["date"] for record in report["records"]] == ["2025-03-05", "2025-03-04", "2025-03-03"]
    assert report["stats"]["attendance_rate"] == 66.67

    r = client.get(f"{ATTENDANCE}/student/{student.student.id}", headers=auth_headers(other_student))
    assert r.status_code == 403


def test_students_only_list_their_own_attendance(client, teacher, student, other_student, course):
    client.post(
        ATTENDANCE,
        json={"student_id": student.student.id, "course_id": course.id, "date": "2025-03-03", "status": "PRESENT"},
        headers=auth_headers(teacher),
    )
    assert client.get(ATTENDANCE, headers=auth_headers(student)).json()["pagination"]["total"] == 1
    assert client.get(ATTENDANCE, headers=auth_headers(other_student)).json()["pagination"]["total"] == 0


def _grade(client, user, student_id, course_id, score, max_score=100, weight=1.0, kind="QUIZ"):
    return client.post(
        GRADES,
        json={
            "student_id": student_id,
            "course_id": course_id,
            "type": kind,
            "title": f"{kind.title()} {score}",
            "score": score,
            "max_score": max_score,
            "weight": weight,
        },
        headers=auth_headers(user),
    )


def test_create_grade_computes_percentage(client, teacher, student, course):
    r = _grade(client, teacher, student.student.id, course.id, 17, max_score=20)
    assert r.status_code == 201
    assert r.json()["data"]["percentage"] == 85.0


def test_grade_validation(client, teacher, student, other_student, course):
    r = _grade(client, teacher, student.student.id, course.id, 120)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"

    r = _grade(client, teacher, other_student.student.id, course.id, 50)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Student is not enrolled in this course"


def test_update_grade_recomputes_percentage(client, teacher, student, course):
    grade = _grade(client, teacher, student.student.id, course.id, 40).json()["data"]
    r = client.put(f"{GRADES}/{grade['id']}", json={"max_score": 50}, headers=auth_headers(teacher))
    assert r.json()["data"]["percentage"] == 80.0

    r = client.put(f"{GRADES}/{grade['id']}", json={"score": 60}, headers=auth_headers(teacher))
    assert r.status_code == 400


def test_course_grade_report_weights(client, db, teacher, student, course):
    _grade(client, teacher, student.student.id, course.id, 100, weight=1.0)
    _grade(client, teacher, student.student.id, course.id, 70, weight=2.0, kind="EXAM")

    r = client.get(f"{GRADES}/course/{course.id}/report", headers=auth_headers(teacher))
    report = r.json()["data"]
    assert report["course_code"] == "PHY101"
    assert report["students"] == [{"student_id": student.student.id, "grades_count": 2, "weighted_average": 80.0}]
    assert report["stats"]["highest_score"] == 100.0
    assert report["stats"]["average_score"] == 85.0


def test_student_grade_report(client, teacher, student, course):
    _grade(client, teacher, student.student.id, course.id, 90)
    _grade(client, teacher, student.student.id, course.id, 60)
    r = client.get(f"/api/v1/students/{student.student.id}/grades", headers=auth_headers(student))
    stats = r.json()["data"]["stats"]
    assert stats == {"total_grades": 2, "average_score": 75.0, "highest_score": 90.0, "lowest_score": 60.0}
