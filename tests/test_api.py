"""
HTTP-level tests: routing, role dependencies and the domain error handler.
"""

import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def drive_body():
    return {
        "company_name": "Acme",
        "position": "Software Engineer",
        "description": "Backend development",
        "ctc": "12 LPA",
        "location": "Bengaluru",
        "deadline": "2099-01-01T00:00:00",
        "eligibility": {"min_cgpa": 7.5, "allowed_branches": ["Computer Science"], "max_backlogs": 0,
                        "min_year": 3},
    }


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["postgres"] == "connected"


def test_drive_apply_and_decide(client, drive_body, company, make_student, auth_headers):
    staff = auth_headers(company.user_id)
    response = client.post("/api/drives", json=drive_body, headers=staff)
    assert response.status_code == 201
    drive = response.json()
    assert drive["eligibility"]["allowed_branches"] == ["CSE"]
    drive_id = drive["drive_id"]

    student_id = make_student()
    response = client.post(f"/api/drives/{drive_id}/apply", headers=auth_headers(student_id))
    assert response.status_code == 201
    application = response.json()
    assert application["status"] == "applied"
    assert len(application["timeline"]) == 5

    response = client.patch(
        f"/api/applications/{application['application_id']}/status",
        json={"status": "shortlisted", "feedback": "Good test"},
        headers=staff,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "shortlisted"

    detail = client.get(f"/api/drives/{drive_id}").json()
    assert detail["shortlisted_count"] == 1
    assert detail["applicants"][0]["status"] == "shortlisted"

    mine = client.get("/api/applications/mine", headers=auth_headers(student_id)).json()
    assert mine["total"] == 1

    inbox = client.get("/api/notifications", headers=auth_headers(student_id)).json()
    assert inbox["unread_count"] == 2

    groups = client.get("/api/chat/groups", headers=auth_headers(student_id)).json()
    assert [g["department"] for g in groups] == ["CSE"]


def test_ineligible_apply_returns_reasons(client, drive_body, company, make_student, auth_headers):
    drive_id = client.post("/api/drives", json=drive_body, headers=auth_headers(company.user_id)).json()["drive_id"]
    student_id = make_student(cgpa=6.0, backlogs=1, branch="ECE", year="2nd Year")

    response = client.post(f"/api/drives/{drive_id}/apply", headers=auth_headers(student_id))
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "You are not eligible for this drive"
    assert len(body["reasons"]) == 4


def test_duplicate_active_drive_is_conflict(client, drive_body, company, auth_headers):
    headers = auth_headers(company.user_id)
    assert client.post("/api/drives", json=drive_body, headers=headers).status_code == 201
    response = client.post("/api/drives", json=drive_body, headers=headers)
    assert response.status_code == 409


def test_students_cannot_create_drives(client, drive_body, make_student, auth_headers):
    response = client.post("/api/drives", json=drive_body, headers=auth_headers(make_student()))
    assert response.status_code == 403


def test_invalid_transition_is_bad_request(client, drive_body, company, make_student, auth_headers):
    staff = auth_headers(company.user_id)
    drive_id = client.post("/api/drives", json=drive_body, headers=staff).json()["drive_id"]
    student_id = make_student()
    application_id = client.post(
        f"/api/drives/{drive_id}/apply", headers=auth_headers(student_id)
    ).json()["application_id"]

    client.patch(f"/api/applications/{application_id}/status", json={"status": "rejected"}, headers=staff)
    response = client.patch(f"/api/applications/{application_id}/status",
                            json={"status": "selected"}, headers=staff)
    assert response.status_code == 400


def test_eligible_drives_for_student(client, drive_body, company, make_student, auth_headers):
    client.post("/api/drives", json=drive_body, headers=auth_headers(company.user_id))
    response = client.get("/api/drives/eligible", headers=auth_headers(make_student()))
    assert response.status_code == 200
    body = response.json()
    assert body["total_eligible"] == 1
    assert body["drives"][0]["applied"] is False


def test_publish_close_and_missing_drive(client, drive_body, company, auth_headers):
    headers = auth_headers(company.user_id)
    drive_id = client.post("/api/drives", json={**drive_body, "status": "draft"}, headers=headers).json()["drive_id"]

    published = client.patch(f"/api/drives/{drive_id}/status", json={"action": "publish"}, headers=headers)
    assert published.json()["status"] == "active"
    closed = client.patch(f"/api/drives/{drive_id}/status", json={"action": "close"}, headers=headers)
    assert closed.json()["status"] == "closed"

    assert client.get("/api/drives/999999").status_code == 404


def test_invalid_token_is_unauthorized(client):
    response = client.get("/api/notifications", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_eligibility_check_lists_reasons(client, drive_body, company, make_student, auth_headers):
    drive_id = client.post("/api/drives", json=drive_body, headers=auth_headers(company.user_id)).json()["drive_id"]

    ok = client.get(f"/api/drives/{drive_id}/eligibility", headers=auth_headers(make_student())).json()
    assert ok == {"eligible": True, "reasons": []}

    weak = make_student(cgpa=7.0)
    body = client.get(f"/api/drives/{drive_id}/eligibility", headers=auth_headers(weak)).json()
    assert body["eligible"] is False
    assert body["reasons"] == ["CGPA requirement not met. Required: 7.5, Your CGPA: 7.0"]


def test_chat_group_read_marker(client, drive_body, company, make_student, auth_headers):
    drive_id = client.post("/api/drives", json=drive_body, headers=auth_headers(company.user_id)).json()["drive_id"]
    student_id = make_student()
    client.post(f"/api/drives/{drive_id}/apply", headers=auth_headers(student_id))

    response = client.patch(f"/api/chat/groups/{drive_id}/CSE/read", headers=auth_headers(student_id))
    assert response.status_code == 200
    assert response.json()["member_count"] == 2

    missing = client.patch(f"/api/chat/groups/{drive_id}/ECE/read", headers=auth_headers(student_id))
    assert missing.status_code == 404
