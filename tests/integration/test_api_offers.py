from fastapi.testclient import TestClient

from evalats.api.app import create_app


def _setup(client: TestClient) -> tuple[dict, dict, dict]:
    manager = client.post(
        "/api/team/members",
        json={"user_id": "mgr", "email": "mgr@example.com", "name": "Morgan", "role": "hiring_manager"},
    ).json()
    job = client.post("/api/jobs", json={"title": "Data Scientist", "department": "Data"}).json()
    candidate = client.post(
        "/api/candidates",
        json={"name": "Emily", "email": "emily@example.com", "position": "Data Scientist", "job_id": job["id"]},
    ).json()
    for _ in range(2):
        client.post(f"/api/candidates/{candidate['id']}/advance")
    return manager, job, candidate


def test_offer_review_send_and_accept() -> None:
    client = TestClient(create_app())
    manager, job, candidate = _setup(client)
    headers = {"X-User-Id": "mgr"}

    offer = client.put(
        "/api/offers",
        json={"candidate_id": candidate["id"], "job_id": job["id"], "details": {"salary": 150000}},
        headers=headers,
    ).json()
    assert offer["status"] == "draft"
    assert offer["created_by"] == manager["id"]

    premature = client.post(f"/api/offers/{offer['id']}/send", json={}, headers=headers)
    assert premature.status_code == 409
    assert premature.json()["error"] == "precondition_failed"

    reviewed = client.post(
        f"/api/offers/{offer['id']}/review",
        json={"approver_id": manager["id"], "status": "approved", "comments": "Within band"},
    ).json()
    assert reviewed["status"] == "approved"
    assert reviewed["approvals"][0]["comments"] == "Within band"

    sent = client.post(
        f"/api/offers/{offer['id']}/send",
        json={"letter_url": "https://files.example.com/letter.pdf"},
        headers=headers,
    ).json()
    assert sent["status"] == "sent"
    assert client.get(f"/api/candidates/{candidate['id']}").json()["status"] == "offer"

    accepted = client.post(f"/api/offers/{offer['id']}/respond", json={"accepted": True}).json()
    assert accepted["status"] == "accepted"
    assert client.get(f"/api/candidates/{candidate['id']}").json()["status"] == "hired"

    actions = [item["action"] for item in client.get("/api/activity", params={"job_id": job["id"]}).json()]
    assert "offer_sent" in actions
    assert "offer_responded" in actions


def test_offer_invalid_details_and_vote() -> None:
    client = TestClient(create_app())
    manager, job, candidate = _setup(client)

    bad = client.put(
        "/api/offers",
        json={"candidate_id": candidate["id"], "job_id": job["id"], "details": {"currency": "USD"}},
    )
    assert bad.status_code == 422

    offer = client.put(
        "/api/offers",
        json={"candidate_id": candidate["id"], "job_id": job["id"], "details": {"salary": 100000}},
    ).json()
    bad_vote = client.post(f"/api/offers/{offer['id']}/review", json={"approver_id": manager["id"], "status": "maybe"})
    assert bad_vote.status_code == 422

    rejected = client.post(
        f"/api/offers/{offer['id']}/review",
        json={"approver_id": manager["id"], "status": "rejected"},
    ).json()
    assert rejected["status"] == "draft"

    withdrawn = client.post(f"/api/offers/{offer['id']}/withdraw").json()
    assert withdrawn["status"] == "withdrawn"
    assert client.post(f"/api/offers/{offer['id']}/withdraw").status_code == 409
