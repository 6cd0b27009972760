import asyncio

from fastapi.testclient import TestClient

from evalats.api.app import create_app
from evalats.core.events import EventBus


def test_activity_and_job_channels_stream_committed_actions() -> None:
    client = TestClient(create_app())
    job = client.post("/api/jobs", json={"title": "Engineer"}).json()

    with client.websocket_connect("/api/activity/stream") as everything:
        with client.websocket_connect(f"/api/activity/stream?job_id={job['id']}") as per_job:
            candidate = client.post(
                "/api/candidates",
                json={"name": "Jane", "email": "jane@example.com", "position": "Engineer", "job_id": job["id"]},
            ).json()

            event = everything.receive_json()
            assert event["action"] == "candidate_applied"
            assert event["target"] == {"type": "candidate", "id": candidate["id"], "name": "Jane"}
            assert per_job.receive_json()["id"] == event["id"]


def test_member_channel_receives_mention_notifications() -> None:
    client = TestClient(create_app())
    members = [
        client.post(
            "/api/team/members",
            json={"user_id": user_id, "email": f"{user_id}@example.com", "name": name, "role": "recruiter"},
        ).json()
        for user_id, name in (("alice", "Alice"), ("bob", "Bob"))
    ]
    bob = members[1]
    candidate = client.post(
        "/api/candidates", json={"name": "Jane", "email": "jane@example.com", "position": "Engineer"}
    ).json()

    with client.websocket_connect(f"/api/activity/stream?member_id={bob['id']}") as inbox:
        comment = client.post(
            "/api/comments",
            json={"entity_type": "candidate", "entity_id": candidate["id"], "content": "@Bob?", "mentions": [bob["id"]]},
            headers={"X-User-Id": "alice"},
        ).json()

        notification = inbox.receive_json()
        assert notification["type"] == "mention"
        assert notification["recipient_id"] == bob["id"]
        assert notification["comment_id"] == comment["id"]


def test_publish_nowait_from_the_loop_and_from_a_worker_thread() -> None:
    bus = EventBus()
    assert bus.publish_nowait("activity", {"dropped": True}) == 0

    async def scenario() -> list[dict]:
        queue = bus.register("activity")
        assert bus.publish_nowait("activity", {"n": 1}) == 1
        await asyncio.to_thread(bus.publish_nowait, "activity", {"n": 2})
        received = [await asyncio.wait_for(queue.get(), 1), await asyncio.wait_for(queue.get(), 1)]
        bus.unregister("activity", queue)
        return received

    assert asyncio.run(scenario()) == [{"n": 1}, {"n": 2}]
    assert bus.subscriber_count("activity") == 0
    assert bus.publish_nowait("activity", {"n": 3}) == 0
