from fastapi.testclient import TestClient


def _create_project(client: TestClient, auth: dict, title: str = "My Test Project", description: str = "A test project"):
    return client.post(
        "/api/projects",
        json={"title": title, "description": description},
        headers=auth,
    )


def test_create_project(client: TestClient, auth: dict):
    resp = _create_project(client, auth, title="  Habit Tracker ", description="Track habits")
    assert resp.status_code == 201
    data = resp.json()
    assert data["title"] == "Habit Tracker"
    assert data["description"] == "Track habits"


def test_create_project_is_free(client: TestClient, auth: dict, balance):
    _create_project(client, auth)
    assert balance() == 30


def test_create_project_requires_title(client: TestClient, auth: dict):
    resp = client.post("/api/projects", json={"title": ""}, headers=auth)
    assert resp.status_code == 422


def test_list_projects_only_returns_own(client: TestClient, auth: dict, admin_token: str):
    _create_project(client, auth, title="Mine")
    _create_project(client, {"Authorization": f"Bearer {admin_token}"}, title="Theirs")

    resp = client.get("/api/projects", headers=auth)
    assert resp.status_code == 200
    assert [p["title"] for p in resp.json()] == ["Mine"]


def test_get_project(client: TestClient, auth: dict, project: dict):
    resp = client.get(f"/api/projects/{project['id']}", headers=auth)
    assert resp.status_code == 200
    assert resp.json()["title"] == "Dog Walker"


def test_get_other_users_project_is_not_found(client: TestClient, project: dict, admin_token: str):
    resp = client.get(
        f"/api/projects/{project['id']}",
        headers={"Authorization": f"Bearer {admin_token}"},
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "not_found", "detail": "Project not found"}


def test_update_project(client: TestClient, auth: dict, project: dict):
    resp = client.put(
        f"/api/projects/{project['id']}",
        json={"description": "Now with cats"},
        headers=auth,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["description"] == "Now with cats"
    assert data["title"] == "Dog Walker"


def test_delete_project_removes_children(client: TestClient, auth: dict, project: dict, complete_suite):
    suite_id = complete_suite.id
    resp = client.delete(f"/api/projects/{project['id']}", headers=auth)
    assert resp.status_code == 200

    assert client.get(f"/api/projects/{project['id']}", headers=auth).status_code == 404
    assert client.get(f"/api/blueprint-suites/{suite_id}", headers=auth).status_code == 404
