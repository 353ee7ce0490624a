"""HTTP surface of the attempts API: payload shapes, status codes, camelCase."""

import json

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from proctored_exam.main import create_app
from proctored_exam.services import attempt_lifecycle

BASE = "/api/attempts"


def start(client, start_payload):
    response = client.post(f"{BASE}/start", json=start_payload)
    assert response.status_code == 201, response.text
    return response.json()


# ===================== START =====================


def test_start_returns_attempt_with_test_and_answers(client, sample_test, start_payload):
    body = start(client, start_payload)

    assert body["testId"] == sample_test["test_id"]
    assert body["candidateName"] == "Asha Rao"
    assert body["isCompleted"] is False
    assert body["warningCount"] == 0
    assert body["endTime"] is None
    assert [s["name"] for s in body["test"]["sections"]] == ["Physics", "Mathematics"]
    assert [s["questionType"] for s in body["test"]["sections"]] == ["MCQ", "INTEGER"]
    assert len(body["answers"]) == 5
    assert body["answers"][0]["status"] == "NOT_VISITED"
    assert body["answers"][0]["question"]["questionNumber"] == 1


def test_answer_key_is_hidden_until_completion(client, start_payload):
    body = start(client, start_payload)
    questions = [q for s in body["test"]["sections"] for q in s["questions"]]
    assert all(q["correctOption"] is None and q["correctInteger"] is None for q in questions)

    submitted = client.post(f"{BASE}/submit", json={"attemptId": body["id"], "answers": []}).json()
    physics = submitted["test"]["sections"][0]["questions"]
    assert [q["correctOption"] for q in physics] == ["B", "A", "D"]


def test_start_errors(client, sample_test):
    response = client.post(f"{BASE}/start", json={"testId": "nope", "candidateName": "Asha Rao"})
    assert response.status_code == 404
    assert response.json() == {"error": "Test not found", "code": "TEST_NOT_FOUND"}

    response = client.post(f"{BASE}/start", json={"testId": sample_test["test_id"]})
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["details"][0]["field"] == "candidateName"

    response = client.post(
        f"{BASE}/start", json={"testId": sample_test["test_id"], "candidateName": "<b></b>"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_resume_gate_over_http(client, start_payload):
    attempt_id = start(client, start_payload)["id"]

    response = client.post(f"{BASE}/request-resume", json={"attemptId": attempt_id})
    assert response.json() == {"success": True, "message": "Resume permission requested"}

    response = client.post(f"{BASE}/start", json=start_payload)
    assert response.status_code == 403
    assert response.json() == {
        "error": "Resume permission required",
        "code": "RESUME_PERMISSION_REQUIRED",
        "needsResume": True,
        "attemptId": attempt_id,
    }

    pending = client.get(f"{BASE}/resume-requests").json()
    assert [p["id"] for p in pending] == [attempt_id]
    assert pending[0]["test"]["name"] == "Sample Mock Test"
    assert pending[0]["needsResume"] is True

    response = client.post(f"{BASE}/allow-resume", json={"attemptId": attempt_id})
    assert response.json()["success"] is True
    assert client.get(f"{BASE}/resume-requests").json() == []
    assert start(client, start_payload)["id"] != attempt_id


# ===================== SYNC & SUBMIT =====================


def test_sync_then_submit(client, sample_test, start_payload):
    attempt_id = start(client, start_payload)["id"]
    mcq, integer = sample_test["mcq"], sample_test["integer"]

    response = client.post(
        f"{BASE}/sync",
        json={
            "attemptId": attempt_id,
            "answers": [
                {"questionId": mcq[0], "selectedOption": "B", "status": "ANSWERED"},
                {"questionId": integer[0], "integerAnswer": "42", "status": "ANSWERED"},
                {"questionId": integer[1], "integerAnswer": "", "status": "NOT_ANSWERED"},
                {"questionId": "ghost", "selectedOption": "A", "status": "ANSWERED"},
            ],
        },
    )
    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "synced": 3,
        "failed": [{"questionId": "ghost", "code": "ANSWER_NOT_FOUND"}],
    }

    response = client.post(
        f"{BASE}/submit",
        json={
            "attemptId": attempt_id,
            "answers": [
                {"questionId": mcq[0], "selectedOption": "B", "status": "ANSWERED"},
                {"questionId": mcq[1], "selectedOption": "D", "status": "ANSWERED"},
                {"questionId": integer[0], "integerAnswer": 42, "status": "ANSWERED"},
            ],
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["isCompleted"] is True
    assert body["totalMarks"] == 7
    assert body["test"]["isLive"] is False
    marks = {a["questionId"]: a["marksAwarded"] for a in body["answers"]}
    assert marks[mcq[1]] == -1

    response = client.post(f"{BASE}/submit", json={"attemptId": attempt_id, "answers": []})
    assert response.status_code == 400
    assert response.json()["code"] == "ALREADY_COMPLETED"

    response = client.post(f"{BASE}/sync", json={"attemptId": attempt_id, "answers": []})
    assert response.status_code == 400


def test_warning_limit_auto_submits(client, start_payload):
    attempt_id = start(client, start_payload)["id"]

    for expected in range(1, 5):
        response = client.post(f"{BASE}/warning", json={"attemptId": attempt_id})
        assert response.json() == {"warningCount": expected}

    body = client.post(f"{BASE}/warning", json={"attemptId": attempt_id}).json()
    assert body["isCompleted"] is True
    assert body["warningCount"] == 5
    assert body["totalMarks"] == 0

    response = client.post(f"{BASE}/warning", json={"attemptId": attempt_id})
    assert response.status_code == 400
    assert response.json()["code"] == "ALREADY_COMPLETED"


# ===================== TIME TRACKING =====================


def test_question_time_and_analytics(client, sample_test, start_payload):
    attempt_id = start(client, start_payload)["id"]
    question_id = sample_test["mcq"][0]

    response = client.put(
        f"{BASE}/{attempt_id}/question-time",
        json={"questionId": question_id, "timeSpent": 12, "action": "visit"},
    )
    assert response.json() == {"success": True, "timeSpent": 12, "visitCount": 1}

    response = client.put(
        f"{BASE}/{attempt_id}/question-time",
        json={"questionId": question_id, "timeSpent": -3},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid time tracking data", "code": "VALIDATION_ERROR"}

    response = client.put(
        f"{BASE}/{attempt_id}/sync-times",
        json={"questionTimes": {question_id: 8, sample_test["integer"][0]: 5}},
    )
    assert response.json() == {"success": True, "updatedQuestions": 2}

    analytics = client.get(f"{BASE}/{attempt_id}/time-analytics").json()
    assert analytics["totalTestTime"] == 25
    assert analytics["sectionAnalytics"][0]["totalTime"] == 20


def test_beacon_text_plain_bodies_are_json(client, sample_test, start_payload):
    attempt_id = start(client, start_payload)["id"]
    headers = {"Content-Type": "text/plain;charset=UTF-8"}

    response = client.put(
        f"{BASE}/{attempt_id}/sync-times",
        content=json.dumps({"questionTimes": {sample_test["mcq"][1]: 4}}),
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["updatedQuestions"] == 1

    response = client.post(
        f"{BASE}/request-resume",
        content=json.dumps({"attemptId": attempt_id}),
        headers=headers,
    )
    assert response.status_code == 200


# ===================== READ ACCESSORS =====================


def test_get_attempt_and_candidate_history(client, start_payload):
    attempt_id = start(client, start_payload)["id"]

    assert client.get(f"{BASE}/{attempt_id}").json()["id"] == attempt_id
    assert client.get(f"{BASE}/user/Asha Rao").json() == []

    client.post(f"{BASE}/submit", json={"attemptId": attempt_id, "answers": []})
    history = client.get(f"{BASE}/user/Asha Rao").json()
    assert [h["id"] for h in history] == [attempt_id]

    response = client.get(f"{BASE}/missing")
    assert response.status_code == 404
    assert response.json() == {"error": "Test attempt not found", "code": "ATTEMPT_NOT_FOUND"}


# ===================== BOUNDARY =====================


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "OK"
    assert body["database"]["healthy"] is True
    assert "latencyMs" in body["database"]


def test_transient_store_failure_surfaces_503(client, monkeypatch):
    calls = []

    def flaky(store, attempt_id):
        calls.append(attempt_id)
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(attempt_lifecycle, "get_attempt_view", flaky)

    response = client.get(f"{BASE}/some-id")

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "30"
    assert response.json() == {
        "error": "Database temporarily unavailable",
        "code": "DATABASE_UNAVAILABLE",
        "retryAfter": 30,
    }
    assert len(calls) == 3


def test_unhandled_error_is_a_generic_500(settings, database, monkeypatch):
    def broken(store, attempt_id):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(attempt_lifecycle, "get_attempt_view", broken)
    app = create_app(settings, database=database)
    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get(f"{BASE}/some-id")

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}


def test_oversized_time_is_a_validation_error(client, sample_test, start_payload):
    attempt_id = start(client, start_payload)["id"]

    response = client.put(
        f"{BASE}/{attempt_id}/question-time",
        json={"questionId": sample_test["mcq"][0], "timeSpent": 1e20},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_sync_without_status_keeps_the_saved_status(client, sample_test, start_payload):
    attempt_id = start(client, start_payload)["id"]
    question_id = sample_test["mcq"][0]
    client.post(
        f"{BASE}/sync",
        json={
            "attemptId": attempt_id,
            "answers": [{"questionId": question_id, "selectedOption": "B", "status": "ANSWERED"}],
        },
    )

    response = client.post(
        f"{BASE}/sync",
        json={"attemptId": attempt_id, "answers": [{"questionId": question_id, "selectedOption": "C"}]},
    )
    assert response.json()["synced"] == 1

    answers = client.get(f"{BASE}/{attempt_id}").json()["answers"]
    row = next(a for a in answers if a["questionId"] == question_id)
    assert row["selectedOption"] == "C"
    assert row["status"] == "ANSWERED"
