import pytest
from conftest import auth_headers

from edupulse.models import Enrollment
from edupulse.services.quiz import level_for


@pytest.fixture()
def quiz(client, teacher, course):
    headers = auth_headers(teacher)
    r = client.post(
        f"/api/v1/courses/{course.id}/quizzes",
        json={"title": "Kinematics", "passing_score": 50, "xp_reward": 100, "max_attempts": 2},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    questions = [
        {"question": "Unit of force?", "options": ["Newton", "Joule", "Watt"], "correct_answer": "Newton", "points": 2},
        {"question": "Speed is a vector", "type": "TRUE_FALSE", "correct_answer": "False", "points": 1},
        {"question": "Symbol for velocity", "type": "SHORT_ANSWER", "correct_answer": "v", "points": 1},
    ]
    data["questions"] = []
    for question in questions:
        created = client.post(f"/api/v1/quizzes/{data['id']}/questions", json=question, headers=headers)
        assert created.status_code == 201, created.text
        data["questions"].append(created.json()["data"])
    return data


def _answers(quiz, *values):
    return {"answers": [{"question_id": q["id"], "answer": value} for q, value in zip(quiz["questions"], values)]}


def test_level_for():
    assert level_for(0) == 1
    assert level_for(499) == 1
    assert level_for(500) == 2


def test_quiz_defaults_subject_from_course(quiz):
    assert quiz["subject"] == "Physics"
    assert [q["order"] for q in quiz["questions"]] == [1, 2, 3]
    assert quiz["questions"][1]["options"] == ["True", "False"]


def test_question_answer_must_be_an_option(client, teacher, quiz):
    r = client.post(
        f"/api/v1/quizzes/{quiz['id']}/questions",
        json={"question": "Pick", "options": ["a", "b"], "correct_answer": "c"},
        headers=auth_headers(teacher),
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_students_do_not_see_answers(client, teacher, student, quiz):
    r = client.get(f"/api/v1/quizzes/{quiz['id']}", headers=auth_headers(student))
    assert r.status_code == 200
    assert {q["correct_answer"] for q in r.json()["data"]["questions"]} == {None}

    r = client.get(f"/api/v1/quizzes/{quiz['id']}", headers=auth_headers(teacher))
    assert r.json()["data"]["questions"][0]["correct_answer"] == "Newton"


def test_inactive_quiz_hidden_from_students(client, teacher, student, course, quiz):
    client.put(f"/api/v1/quizzes/{quiz['id']}", json={"is_active": False}, headers=auth_headers(teacher))
    assert client.get(f"/api/v1/quizzes/{quiz['id']}", headers=auth_headers(student)).status_code == 404

    r = client.get(f"/api/v1/courses/{course.id}/quizzes", headers=auth_headers(student))
    assert r.json()["data"] == []
    r = client.get(f"/api/v1/courses/{course.id}/quizzes", headers=auth_headers(teacher))
    assert r.json()["data"][0]["question_count"] == 3


def test_submit_perfect_score(client, student, quiz):
    r = client.post(f"/api/v1/quizzes/{quiz['id']}/submit", json=_answers(quiz, "newton", "False", " V "),
                    headers=auth_headers(student))
    assert r.status_code == 200
    assert r.json()["message"] == "Quiz passed"
    result = r.json()["data"]
    assert result["score"] == 4
    assert result["percentage"] == 100
    assert result["xp_earned"] == 100
    assert result["badges_earned"] == ["First Quiz", "Perfect Score"]

    me = client.get("/api/v1/gamification/me", headers=auth_headers(student)).json()["data"]
    assert me["xp"] == 100
    assert me["level"] == 1
    assert me["streak"] == 1
    assert {badge["name"] for badge in me["badges"]} == {"First Quiz", "Perfect Score"}


def test_failed_attempt_earns_no_xp(client, student, quiz):
    r = client.post(f"/api/v1/quizzes/{quiz['id']}/submit", json=_answers(quiz, "Joule", "True", "v"),
                    headers=auth_headers(student))
    result = r.json()["data"]
    assert r.json()["message"] == "Quiz submitted"
    assert (result["score"], result["percentage"], result["passed"]) == (1, 25, False)
    assert result["xp_earned"] == 0


def test_attempt_limit(client, student, quiz):
    headers = auth_headers(student)
    url = f"/api/v1/quizzes/{quiz['id']}/submit"
    assert client.post(url, json=_answers(quiz, "Joule"), headers=headers).status_code == 200
    assert client.post(url, json=_answers(quiz, "Joule"), headers=headers).status_code == 200
    r = client.post(url, json=_answers(quiz, "Newton"), headers=headers)
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Maximum attempts (2) reached for this quiz"


def test_only_enrolled_students_submit(client, teacher, other_student, quiz):
    url = f"/api/v1/quizzes/{quiz['id']}/submit"
    r = client.post(url, json=_answers(quiz, "Newton"), headers=auth_headers(other_student))
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "You are not enrolled in this course"

    assert client.post(url, json=_answers(quiz, "Newton"), headers=auth_headers(teacher)).status_code == 403


def test_analytics_and_student_stats(client, teacher, student, quiz):
    headers = auth_headers(student)
    url = f"/api/v1/quizzes/{quiz['id']}/submit"
    client.post(url, json=_answers(quiz, "Newton", "False", "v"), headers=headers)
    client.post(url, json=_answers(quiz, "Joule", "True", "x"), headers=headers)

    analytics = client.get(f"/api/v1/quizzes/{quiz['id']}/analytics", headers=auth_headers(teacher)).json()["data"]
    assert analytics["total_submissions"] == 2
    assert (analytics["passed"], analytics["failed"], analytics["pass_rate"]) == (1, 1, 50)
    assert analytics["average_score"] == 50

    stats = client.get("/api/v1/quizzes/student/stats", headers=headers).json()["data"]
    assert stats["total_attempts"] == 2
    assert stats["total_xp_earned"] == 100


def test_reorder_questions(client, teacher, quiz):
    first, second, third = (q["id"] for q in quiz["questions"])
    r = client.put(
        f"/api/v1/quizzes/{quiz['id']}/questions/reorder",
        json={"question_ids": [third, first]},
        headers=auth_headers(teacher),
    )
    assert [q["id"] for q in r.json()["data"]] == [third, first, second]

    r = client.put(
        f"/api/v1/quizzes/{quiz['id']}/questions/reorder",
        json={"question_ids": [first, 999]},
        headers=auth_headers(teacher),
    )
    assert r.status_code == 400


def test_leaderboard_ranks_by_xp(client, db, student, other_student, quiz):
    db.add(Enrollment(student_id=other_student.student.id, course_id=quiz["course_id"]))
    db.commit()
    url = f"/api/v1/quizzes/{quiz['id']}/submit"
    client.post(url, json=_answers(quiz, "Newton", "True", "x"), headers=auth_headers(student))
    client.post(url, json=_answers(quiz, "Newton", "False", "v"), headers=auth_headers(other_student))

    board = client.get("/api/v1/gamification/leaderboard", headers=auth_headers(student)).json()["data"]
    assert [(entry["rank"], entry["user"]["id"]) for entry in board[:2]] == [(1, other_student.id), (2, student.id)]
    assert board[0]["xp"] == 100
