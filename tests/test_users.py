from conftest import PASSWORD, auth_headers

API = "/api/v1/users"


def test_admin_creates_and_lists_users(client, admin):
    headers = auth_headers(admin)
    r = client.post(
        API,
        json={
            "email": "Parent.One@Example.com",
            "password": PASSWORD,
            "first_name": "Parent",
            "last_name": "One",
            "role": "PARENT",
            "status": "ACTIVE",
        },
        headers=headers,
    )
    assert r.status_code == 201
    created = r.json()["data"]
    assert created["email"] == "parent.one@example.com"
    assert created["email_verified"] is True

    r = client.get(API, params={"role": "PARENT"}, headers=headers)
    assert r.status_code == 200
    assert [user["id"] for user in r.json()["data"]] == [created["id"]]
    assert r.json()["pagination"]["total"] == 1


def test_list_users_paginates(client, admin, teacher, student, other_student):
    r = client.get(API, params={"page": 2, "limit": 3}, headers=auth_headers(admin))
    body = r.json()
    assert len(body["data"]) == 1
    assert body["pagination"] == {
        "page": 2,
        "limit": 3,
        "total": 4,
        "total_pages": 2,
        "has_next": False,
        "has_prev": True,
    }


def test_non_admin_cannot_list_users(client, teacher):
    r = client.get(API, headers=auth_headers(teacher))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "AUTHORIZATION_ERROR"


def test_user_can_view_self_but_not_others(client, student, other_student):
    headers = auth_headers(student)
    assert client.get(f"{API}/{student.id}", headers=headers).status_code == 200
    assert client.get(f"{API}/{other_student.id}", headers=headers).status_code == 403


def test_profile_includes_role_profile(client, admin, teacher):
    r = client.get(f"{API}/{teacher.id}/profile", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["data"]["teacher"]["department"] == "Science"
    assert r.json()["data"]["student"] is None


def test_get_user_by_email(client, admin, student):
    r = client.get(f"{API}/email/STUDENT@example.com", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["data"]["id"] == student.id

    r = client.get(f"{API}/email/missing@example.com", headers=auth_headers(admin))
    assert r.status_code == 404
    assert r.json()["error"]["message"] == "User not found"


def test_self_update_cannot_change_status(client, student):
    headers = auth_headers(student)
    r = client.put(f"{API}/{student.id}", json={"phone": "555-0100"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["phone"] == "555-0100"

    r = client.put(f"{API}/{student.id}", json={"status": "SUSPENDED"}, headers=headers)
    assert r.status_code == 403


def test_update_email_conflict(client, admin, student, other_student):
    r = client.put(f"{API}/{student.id}", json={"email": other_student.email}, headers=auth_headers(admin))
    assert r.status_code == 409


def test_admin_cannot_delete_self(client, admin, db):
    r = client.delete(f"{API}/{admin.id}", headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "You cannot delete your own account"


def test_users_statistics(client, admin, teacher, student):
    r = client.get(f"{API}/stats", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["data"]["total"] == 3
    assert r.json()["data"]["active"] == 3
