import pytest
from fastapi.testclient import TestClient

from assessment.main import create_app

from conftest import seed

EASY_MCQ = {
    "total_questions": 3,
    "difficulty_distribution": {"easy": 100, "medium": 0, "hard": 0},
    "question_types": {"MCQ": 100, "Coding": 0, "TrueFalse": 0, "FillInBlank": 0},
    "generate_if_needed": False,
}


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as c:
        yield c


def login(client, user_id, roles=("student",)):
    r = client.post("/v1/auth/mock-login", json={"user_id": user_id, "roles": list(roles)})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def test_health(client):
    r = client.get("/health"); assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_requires_token(client):
    r = client.post("/v1/assessments", json=EASY_MCQ)
    assert r.status_code in (401, 403)
    assert "error" in r.json()


def test_assessment_flow(client, services):
    questions = {q.id: q for q in seed(services.store, 3)}
    hdr = login(client, "learner-1")

    r = client.post("/v1/assessments", headers=hdr, json=EASY_MCQ); assert r.status_code == 201
    created = r.json()
    assert sorted(created["question_ids"]) == sorted(questions)
    assert created["status"] == "Assigned"

    r = client.get(f"/v1/assessments/{created['assessment_id']}", headers=hdr); assert r.status_code == 200
    view = r.json()
    assert view["status"] == "InProgress"
    assert all("correct_answer" not in q for q in view["questions"])

    answers = [{"question_id": qid, "answer": {"kind": "objective", "value": questions[qid].correct_answer}}
               for qid in created["question_ids"]]
    r = client.post(f"/v1/assessments/{created['assessment_id']}/submit", headers=hdr, json={"answers": answers})
    assert r.status_code == 200
    assert r.json() == {"score": 3, "is_passed": True, "total_questions": 3}

    r = client.post(f"/v1/assessments/{created['assessment_id']}/submit", headers=hdr, json={"answers": answers})
    assert r.status_code == 409
    assert r.json()["error"]["type"] == "already_submitted"

    r = client.get("/v1/learners/learner-1/insights", headers=hdr); assert r.status_code == 200
    insights = r.json()
    assert insights["total_questions_attempted"] == 3
    assert insights["overall_accuracy"] == 1.0
    assert insights["recommended_distribution"] == {"easy": 30, "medium": 50, "hard": 20}

    other = login(client, "learner-2")
    assert client.get("/v1/learners/learner-1/insights", headers=other).status_code == 403
    assert client.get(f"/v1/assessments/{created['assessment_id']}", headers=other).status_code == 404


def test_assessment_errors(client, services):
    hdr = login(client, "learner-1")
    bad = {**EASY_MCQ, "difficulty_distribution": {"easy": 50, "medium": 0, "hard": 0}}
    r = client.post("/v1/assessments", headers=hdr, json=bad)
    assert r.status_code == 422
    assert r.json()["error"]["type"] == "configuration_error"

    r = client.post("/v1/assessments", headers=hdr, json=EASY_MCQ)
    assert r.status_code == 409

    r = client.post("/v1/assessments", headers=hdr, json={**EASY_MCQ, "pool_id": 77})
    assert r.status_code == 404

    r = client.post("/v1/assessments", headers=hdr, json={**EASY_MCQ, "learner_id": "someone-else"})
    assert r.status_code == 403


def test_run_code(client):
    hdr = login(client, "learner-1")
    r = client.post("/v1/assessments/run-code", headers=hdr, json={
        "code": "def solution(a, b):\n    return a + b\n",
        "test_cases": [{"input": "1, 2", "output": "3"}, {"input": "2, 2", "output": "5"}],
    })
    assert r.status_code == 200
    body = r.json()
    assert (body["passed"], body["total"]) == (1, 2)

    assert client.post("/v1/assessments/run-code", headers=hdr, json={"code": "x = 1"}).status_code == 400
    r = client.post("/v1/assessments/run-code", headers=hdr, json={"code": "x = 1", "question_id": 4242})
    assert r.status_code == 404


def test_config_options(client):
    r = client.get("/v1/assessments/config-options", headers=login(client, "learner-1"))
    assert r.status_code == 200
    body = r.json()
    assert "Python" in body["categories"]
    assert body["defaults"]["total_questions"] == 7


def test_pools_are_admin_only(client, services):
    qs = seed(services.store, 4)
    student = login(client, "learner-1")
    admin = login(client, "admin-1", roles=("admin",))
    pool = {"name": "Week 1", "question_ids": [q.id for q in qs], "config": {"questions_per_test": 2}}

    assert client.post("/v1/pools", headers=student, json=pool).status_code == 403

    r = client.post("/v1/pools", headers=admin, json=pool); assert r.status_code == 201
    first = r.json()
    r = client.post("/v1/pools", headers=admin, json={**pool, "name": "Week 2", "is_default": True})
    second = r.json()
    assert second["is_default"]

    r = client.post(f"/v1/pools/{first['id']}/default", headers=admin); assert r.status_code == 200
    pools = client.get("/v1/pools", headers=admin).json()
    assert [p["id"] for p in pools if p["is_default"]] == [first["id"]]
    assert client.post("/v1/pools/999/default", headers=admin).status_code == 404

    # the default pool's size applies when the request leaves it out
    r = client.post("/v1/assessments", headers=student, json={k: v for k, v in EASY_MCQ.items() if k != "total_questions"})
    assert r.status_code == 201
    assert r.json()["requested"] == 2
    assert len(r.json()["question_ids"]) == 2
