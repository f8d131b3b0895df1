from uuid import uuid4

from fastapi.testclient import TestClient

from fms_api.main import app


client = TestClient(app)


def test_activity_records_template_and_project_creation() -> None:
    template_name = f"activity-{uuid4().hex[:8]}"
    template = client.post(
        "/templates",
        json={
            "name": template_name,
            "created_by": "alice",
            "steps": [{"what": "Kickoff", "who": "PMO", "how": "Call", "when": 1}],
        },
    ).json()
    project = client.post(
        "/projects",
        json={"template_id": template["id"], "name": "Logged project", "start_date": "2024-06-03", "created_by": "bob"},
    ).json()

    entries = client.get("/activity", params={"limit": 2}).json()

    assert [entry["event_type"] for entry in entries] == ["PROJECT_CREATED", "TEMPLATE_CREATED"]
    assert entries[0]["actor"] == "bob"
    assert entries[0]["payload"]["project_id"] == project["id"]
    assert entries[0]["payload"]["task_count"] == 1
    assert entries[1]["payload"]["template_name"] == template_name
    assert entries[0]["id"] > entries[1]["id"]


def test_activity_filter_and_limit() -> None:
    for index in range(3):
        client.post(
            "/templates",
            json={
                "name": f"filtered-{index}-{uuid4().hex[:6]}",
                "created_by": "alice",
                "steps": [{"what": "Kickoff", "who": "PMO", "how": "Call", "when": 1}],
            },
        )

    entries = client.get("/activity", params={"limit": 3, "event_type": "TEMPLATE_CREATED"}).json()

    assert len(entries) == 3
    assert all(entry["event_type"] == "TEMPLATE_CREATED" for entry in entries)
    assert client.get("/activity", params={"limit": 0}).json() == []
    assert client.get("/activity", params={"event_type": "NOPE"}).status_code == 422
