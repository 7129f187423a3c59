"""
End-to-end flows over the HTTP API, from an owner creating a project to
collaborators working in it.
"""

import logging

from fastapi.testclient import TestClient

logger = logging.getLogger(__name__)


def test_launch_project_lifecycle(client: TestClient, owner_user, outsider_user, auth_headers):
    owner = auth_headers(owner_user)
    collaborator = auth_headers(outsider_user)

    created = client.post("/api/projects", json={"name": "Launch"}, headers=owner)
    assert created.status_code == 201
    project_id = created.json()["project"]["id"]

    duplicate = client.post("/api/projects", json={"name": "Launch"}, headers=owner)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "ConflictError"

    shared = client.post(
        f"/api/projects/{project_id}/collaborators",
        json={"user_id": outsider_user.id, "role": "viewer"},
        headers=owner,
    )
    assert shared.status_code == 200

    # Viewers read but cannot write
    assert client.get(f"/api/projects/{project_id}", headers=collaborator).status_code == 200
    denied = client.put(f"/api/projects/{project_id}", json={"description": "mine now"}, headers=collaborator)
    assert denied.status_code == 403
    assert denied.json()["error"] == "AuthorizationError"

    upgraded = client.put(
        f"/api/projects/{project_id}/collaborators/{outsider_user.id}",
        json={"role": "editor"},
        headers=owner,
    )
    assert upgraded.status_code == 200

    task = client.post(
        f"/api/projects/{project_id}/tasks",
        json={"title": "Write copy", "assigned_to": [outsider_user.id]},
        headers=collaborator,
    )
    assert task.status_code == 201, task.text
    task_id = task.json()["task"]["id"]
    assert [u["id"] for u in task.json()["task"]["assigned_to"]] == [outsider_user.id]

    removed = client.delete(f"/api/projects/{project_id}/collaborators/{outsider_user.id}", headers=owner)
    assert removed.status_code == 200

    after = client.get(f"/api/tasks/{task_id}", headers=owner).json()["task"]
    assert after["assigned_to"] == []
    logger.info(f"Scenario finished for project {project_id}")


def test_non_member_gets_authorization_error_not_not_found(client, shared_project, outsider_user, auth_headers):
    response = client.get(f"/api/projects/{shared_project.id}", headers=auth_headers(outsider_user))
    assert response.status_code == 403
    assert response.json()["error"] == "AuthorizationError"


def test_completed_at_round_trip(client, shared_project, owner_user, auth_headers):
    headers = auth_headers(owner_user)
    task_id = client.post(
        f"/api/projects/{shared_project.id}/tasks", json={"title": "Ship it"}, headers=headers
    ).json()["task"]["id"]

    completed = client.put(f"/api/tasks/{task_id}", json={"status": "completed"}, headers=headers)
    assert completed.json()["task"]["completed_at"] is not None

    pending = client.put(f"/api/tasks/{task_id}", json={"status": "pending"}, headers=headers)
    assert pending.json()["task"]["status"] == "pending"
    assert pending.json()["task"]["completed_at"] is None


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
