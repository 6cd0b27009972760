from fastapi.testclient import TestClient

from evalats.api.app import create_app


def _member(client: TestClient, user_id: str, name: str, role: str) -> dict:
    response = client.post(
        "/api/team/members",
        json={"user_id": user_id, "email": f"{user_id}@example.com", "name": name, "role": role},
    )
    assert response.status_code == 200
    return response.json()


def test_candidate_pipeline_over_http() -> None:
    client = TestClient(create_app())
    _member(client, "recruiter-1", "Riley", "recruiter")

    job = client.post(
        "/api/jobs",
        json={"title": "Backend Engineer", "department": "Engineering", "location": "Remote", "requirements": ["Python"]},
    ).json()

    create_resp = client.post(
        "/api/candidates",
        json={"name": "Jane Doe", "email": "jane@example.com", "position": "Backend Engineer", "job_id": job["id"]},
        headers={"X-User-Id": "recruiter-1"},
    )
    assert create_resp.status_code == 201
    candidate = create_resp.json()
    assert candidate["status"] == "applied"
    assert candidate["can_advance"] is True

    advance_resp = client.post(f"/api/candidates/{candidate['id']}/advance", headers={"X-User-Id": "recruiter-1"})
    assert advance_resp.status_code == 200
    assert advance_resp.json()["status"] == "screening"

    reject_resp = client.post(
        f"/api/candidates/{candidate['id']}/reject",
        json={"reason": "Position filled"},
        headers={"X-User-Id": "recruiter-1"},
    )
    assert reject_resp.status_code == 200
    assert reject_resp.json()["can_reject"] is False

    again = client.post(f"/api/candidates/{candidate['id']}/advance")
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    detail = client.get(f"/api/candidates/{candidate['id']}").json()
    assert [entry["type"] for entry in detail["timeline"]] == ["applied", "screening", "rejected"]
    assert detail["applications"][0]["status"] == "rejected"

    feed = client.get("/api/activity", params={"job_id": job["id"]}).json()
    assert feed[0]["action"] == "candidate_rejected"
    assert feed[0]["actor"]["name"] == "Riley"
    assert feed[0]["metadata"]["reason"] == "Position filled"


def test_error_mapping_for_missing_and_invalid_input() -> None:
    client = TestClient(create_app())

    missing = client.post("/api/candidates/999/advance")
    assert missing.status_code == 404
    assert missing.json() == {"error": "not_found", "detail": "Candidate not found"}

    unknown_actor = client.post(
        "/api/candidates",
        json={"name": "Jane", "email": "jane@example.com", "position": "Engineer"},
        headers={"X-User-Id": "ghost"},
    )
    assert unknown_actor.status_code == 404

    invalid = client.post("/api/candidates", json={"name": "Jane", "email": "nope", "position": "Engineer"})
    assert invalid.status_code == 422
    assert invalid.json()["error"] == "validation_error"


def test_interviews_slots_and_feedback_over_http() -> None:
    client = TestClient(create_app())
    interviewer = _member(client, "interviewer-1", "Alice Johnson", "interviewer")
    job = client.post("/api/jobs", json={"title": "Engineer"}).json()
    candidate = client.post(
        "/api/candidates",
        json={"name": "Sam", "email": "sam@example.com", "position": "Engineer", "job_id": job["id"]},
    ).json()

    scheduled = client.post(
        "/api/interviews",
        json={
            "candidate_id": candidate["id"],
            "job_id": job["id"],
            "type": "Technical",
            "scheduled_date": "2030-03-04",
            "scheduled_time": "10:00",
            "interviewers": ["Alice Johnson"],
        },
    )
    assert scheduled.status_code == 201
    interview = scheduled.json()

    slots = client.get(
        "/api/interviews/slots",
        params={"day": "2030-03-04", "duration_minutes": 60, "interviewers": ["Alice Johnson"]},
    ).json()["slots"]
    assert "10:00" not in slots
    assert "11:00" in slots

    clash = client.post(
        "/api/interviews",
        json={
            "candidate_id": candidate["id"],
            "job_id": job["id"],
            "type": "Culture",
            "scheduled_date": "2030-03-04",
            "scheduled_time": "10:30",
        },
    )
    assert clash.status_code == 409

    feedback = client.post(
        f"/api/interviews/{interview['id']}/feedback",
        json={"ratings": {"overall": 4, "technical": 5}, "recommendation": "yes", "strengths": ["APIs"]},
        headers={"X-User-Id": "interviewer-1"},
    )
    assert feedback.status_code == 201
    assert feedback.json()["interviewer_id"] == interviewer["id"]

    detail = client.get(f"/api/interviews/{interview['id']}").json()
    assert detail["status"] == "completed"
    assert detail["rating"] == 4
    assert detail["structured_feedback"][0]["strengths"] == ["APIs"]
