from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from learnhub.core.database import get_db
from learnhub.main import app


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def login(client, user_id, role):
    r = client.post("/v1/auth/mock-login", json={"user_id": user_id, "role": role})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_missing_token_rejected(client):
    r = client.get("/v1/enrollments/me")
    assert r.status_code in (401, 403)
    assert set(r.json()) == {"status", "message"}


def test_bad_token_rejected(client):
    r = client.get("/v1/enrollments/me", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 401
    assert r.json()["status"] == 401


def test_error_body_shape(client):
    hdr = login(client, "student-1", "STUDENT")
    r = client.post("/v1/enrollments", headers=hdr, json={"course_id": "nope"})
    assert r.status_code == 404
    assert r.json() == {"status": 404, "message": "Course not found"}


def test_validation_error_shape(client):
    hdr = login(client, "student-1", "STUDENT")
    r = client.post("/v1/enrollments", headers=hdr, json={})
    assert r.status_code == 422
    assert r.json()["status"] == 422


def test_role_gate(client):
    hdr = login(client, "student-1", "STUDENT")
    r = client.post("/v1/courses", headers=hdr, json={"title": "Mine"})
    assert r.status_code == 403
    assert r.json()["message"] == "Insufficient role"


def test_course_to_grade_flow(client):
    teacher = login(client, "teacher-1", "TEACHER")
    student = login(client, "student-1", "STUDENT")

    r = client.post("/v1/courses", headers=teacher, json={"title": "Chemistry", "status": "PUBLISHED"})
    assert r.status_code == 201
    course_id = r.json()["id"]
    module_id = client.post(f"/v1/courses/{course_id}/modules", headers=teacher, json={"title": "Atoms"}).json()["id"]
    lesson_id = client.post(f"/v1/courses/modules/{module_id}/lessons", headers=teacher,
                            json={"title": "Electrons", "content": "..."}).json()["id"]

    start = datetime.now(timezone.utc) - timedelta(hours=1)
    r = client.post("/v1/exams", headers=teacher, json={
        "course_id": course_id, "title": "Quiz", "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=1)).isoformat(), "max_score": 15, "passing_score": 9,
    })
    assert r.status_code == 201
    exam_id = r.json()["id"]
    q1 = client.post(f"/v1/exams/{exam_id}/questions", headers=teacher, json={
        "prompt": "Charge of an electron?", "choices": ["positive", "negative"], "correct_index": 1, "points": 10,
    }).json()["id"]
    client.post(f"/v1/exams/{exam_id}/questions", headers=teacher,
                json={"prompt": "Explain orbitals", "type": "ESSAY", "points": 5})

    r = client.post("/v1/enrollments", headers=student, json={"course_id": course_id})
    assert r.status_code == 201
    assert r.json()["status"] == "ACTIVE"

    r = client.get(f"/v1/exams/{exam_id}", headers=student)
    assert r.json()["answers_revealed"] is False
    assert all("correct_index" not in q for q in r.json()["questions"])

    r = client.post(f"/v1/exams/{exam_id}/attempts", headers=student, json={"answers": {q1: 1}})
    assert r.status_code == 400
    assert "lessons" in r.json()["message"]

    assert client.post(f"/v1/progress/lessons/{lesson_id}/complete", headers=student).status_code == 200
    r = client.post(f"/v1/exams/{exam_id}/attempts", headers=student, json={"answers": {q1: 1, "essay": "shells"}})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "PENDING"
    assert body["score"] is None
    attempt_id = body["attempt"]["id"]

    r = client.post(f"/v1/exams/{exam_id}/attempts", headers=student, json={"answers": {}})
    assert r.status_code == 400

    r = client.post(f"/v1/exams/{exam_id}/attempts/{attempt_id}/grade", headers=teacher, json={})
    assert r.status_code == 400
    r = client.post(f"/v1/exams/{exam_id}/attempts/{attempt_id}/grade", headers=teacher, json={"final_score": 12})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "GRADED"
    assert body["percentage"] == 80.0
    assert body["letter_grade"] == "B"

    r = client.patch(f"/v1/exams/{exam_id}/attempts/{attempt_id}/score", headers=teacher, json={"bonus": 1})
    assert r.json()["percentage"] == 86.67

    r = client.get("/v1/grades/students/student-1", headers=student)
    assert r.status_code == 200
    report = r.json()
    assert len(report["grades"]) == 1
    assert report["grades"][0]["letter_grade"] == "B+"
    assert report["gpa"] == 3.5


def _published_exam(client, teacher, questions):
    course_id = client.post("/v1/courses", headers=teacher, json={"title": "Physics", "status": "PUBLISHED"}).json()["id"]
    start = datetime.now(timezone.utc) - timedelta(hours=1)
    exam_id = client.post("/v1/exams", headers=teacher, json={
        "course_id": course_id, "title": "Quiz", "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=1)).isoformat(), "max_score": 10, "passing_score": 6,
    }).json()["id"]
    ids = [client.post(f"/v1/exams/{exam_id}/questions", headers=teacher, json=q).json()["id"] for q in questions]
    return course_id, exam_id, ids


def test_unanswered_questions_may_be_null(client):
    teacher = login(client, "teacher-1", "TEACHER")
    student = login(client, "student-1", "STUDENT")
    mc = {"prompt": "Pick", "choices": ["a", "b"], "correct_index": 1, "points": 5}
    course_id, exam_id, (q1, q2) = _published_exam(client, teacher, [mc, mc])
    client.post("/v1/enrollments", headers=student, json={"course_id": course_id})

    r = client.post(f"/v1/exams/{exam_id}/attempts", headers=student, json={"answers": {q1: 1, q2: None}})
    assert r.status_code == 200
    assert r.json()["score"] == 5


def test_negative_manual_scores_rejected(client):
    teacher = login(client, "teacher-1", "TEACHER")
    _, exam_id, (essay,) = _published_exam(client, teacher, [{"prompt": "Explain", "type": "ESSAY", "points": 10}])
    url = f"/v1/exams/{exam_id}/attempts/missing/grade"
    r = client.post(url, headers=teacher, json={"question_scores": {essay: -50}})
    assert r.status_code == 422
    r = client.post(url, headers=teacher, json={"final_score": -1})
    assert r.status_code == 422
    r = client.patch(f"/v1/exams/{exam_id}/attempts/missing/score", headers=teacher, json={"final_score": -1})
    assert r.status_code == 422


def test_homework_flow(client):
    teacher = login(client, "teacher-1", "TEACHER")
    student = login(client, "student-1", "STUDENT")
    course_id = client.post("/v1/courses", headers=teacher, json={"title": "Writing", "status": "PUBLISHED"}).json()["id"]
    due = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
    r = client.post(f"/v1/homework/course/{course_id}", headers=teacher, json={"title": "Essay", "due_date": due, "max_score": 20})
    assert r.status_code == 201
    homework_id = r.json()["id"]

    client.post("/v1/enrollments", headers=student, json={"course_id": course_id})
    r = client.post(f"/v1/homework/{homework_id}/submit", headers=student, json={"content": "draft"})
    assert r.status_code == 201
    submission_id = r.json()["id"]
    assert client.post(f"/v1/homework/{homework_id}/submit", headers=student, json={"content": "again"}).status_code == 400

    r = client.post(f"/v1/homework/course/{course_id}/{homework_id}/submissions/{submission_id}/grade",
                    headers=teacher, json={"score": 17, "feedback": "solid"})
    assert r.status_code == 200
    assert r.json()["score"] == 17

    report = client.get("/v1/grades/students/student-1", headers=student).json()
    assert [(g["type"], g["letter_grade"]) for g in report["grades"]] == [("HOMEWORK", "B+")]
