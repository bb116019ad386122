"""End-to-end scenarios through the HTTP API."""
import asyncio
import logging
import re

import pytest

from tipline.api.routes import _read_uploads
from tipline.services.errors import GENERIC_ACCESS_MESSAGE, ValidationError


def _create_anonymous(client, **extra):
    data = {"title": "Broken streetlight", "description": "vandalized", "reporter_type": "anonymous"}
    data.update(extra)
    return client.post("/api/reports", data=data)


class TestCreateReport:

    def test_create_anonymous_report(self, client):
        """Anonymous report comes back pending, with a 6-character password and no identity."""
        response = _create_anonymous(client)
        assert response.status_code == 201

        body = response.json()
        assert re.fullmatch(r"[0-9A-F]{6}", body["case_password"])
        assert body["data"]["status"] == "pending"
        assert body["data"]["is_resolved"] is False
        for field in ("reporter_name", "reporter_email", "reporter_phone", "secret_hash", "secret_digest"):
            assert field not in body["data"]

    def test_create_confidential_report_keeps_identity(self, client):
        response = client.post("/api/reports", data={
            "title": "Illegal dumping",
            "description": "Trucks at night",
            "reporter_type": "confidential",
            "reporter_name": "Ada Obi",
            "reporter_email": "ada@example.com",
        })
        assert response.status_code == 201
        assert response.json()["data"]["reporter_email"] == "ada@example.com"

    def test_anonymous_with_identity_is_400(self, client):
        response = _create_anonymous(client, reporter_name="Ada Obi")
        assert response.status_code == 400
        assert "anonymous" in response.json()["detail"]["message"].lower()

    def test_create_with_evidence(self, client, storage):
        response = client.post(
            "/api/reports",
            data={"title": "Flooding", "description": "Drain blocked", "reporter_type": "anonymous"},
            files=[("files", ("drain.jpg", b"jpeg-bytes", "image/jpeg"))],
        )
        assert response.status_code == 201
        evidence = response.json()["data"]["evidence_files"]
        assert len(evidence) == 1
        assert evidence[0]["original_name"] == "drain.jpg"
        assert evidence[0]["reference"] in storage.objects

    def test_disallowed_file_type_is_400(self, client):
        response = client.post(
            "/api/reports",
            data={"title": "Flooding", "description": "Drain blocked", "reporter_type": "anonymous"},
            files=[("files", ("run.exe", b"MZ", "application/x-msdownload"))],
        )
        assert response.status_code == 400

    def test_too_many_files_is_400(self, client, storage, settings):
        files = [("files", (f"{i}.png", b"png", "image/png")) for i in range(settings.max_upload_files + 3)]
        response = client.post(
            "/api/reports",
            data={"title": "Flooding", "description": "Drain blocked", "reporter_type": "anonymous"},
            files=files,
        )
        assert response.status_code == 400
        assert storage.objects == {}

    def test_oversized_file_is_400(self, client, storage, settings):
        settings.max_upload_bytes = 8
        response = client.post(
            "/api/reports",
            data={"title": "Flooding", "description": "Drain blocked", "reporter_type": "anonymous"},
            files=[("files", ("drain.jpg", b"x" * 64, "image/jpeg"))],
        )
        assert response.status_code == 400
        assert storage.objects == {}


class _UnreadUpload:
    """Stands in for an UploadFile whose declared size is already too big."""
    filename = "huge.mp4"
    content_type = "video/mp4"

    def __init__(self, size):
        self.size = size
        self.reads = 0

    async def read(self, size=-1):
        self.reads += 1
        return b""


def test_declared_size_is_checked_before_reading(settings):
    upload = _UnreadUpload(settings.max_upload_bytes + 1)
    with pytest.raises(ValidationError):
        asyncio.run(_read_uploads([upload], settings))
    assert upload.reads == 0


class TestFollowUp:

    def test_follow_up_with_issued_password(self, client):
        created = _create_anonymous(client).json()
        response = client.post("/api/reports/follow-up", json={"password": created["case_password"]})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["case_id"] == created["data"]["case_id"]
        assert data["category"]["name"] == "uncategorized"
        assert data["agency"]["name"] == "unassigned"
        assert "reporter_name" not in data

    def test_never_issued_password_is_generic_rejection(self, client):
        created = _create_anonymous(client).json()
        wrong = "000000" if created["case_password"] != "000000" else "111111"

        response = client.post("/api/reports/follow-up", json={"password": wrong})
        assert response.status_code == 401
        body = response.json()
        assert body == {"detail": {"message": GENERIC_ACCESS_MESSAGE}}
        assert created["data"]["case_id"] not in response.text

    def test_password_is_never_returned_again(self, client):
        created = _create_anonymous(client).json()
        response = client.post("/api/reports/follow-up", json={"password": created["case_password"]})
        assert "case_password" not in response.json()
        assert created["case_password"] not in response.text

    def test_missing_password_is_422(self, client):
        response = client.post("/api/reports/follow-up", json={})
        assert response.status_code == 422


class TestReporterMessage:

    def test_message_with_correct_password(self, client):
        password = _create_anonymous(client).json()["case_password"]
        response = client.post("/api/reports/message", data={"password": password, "message": "Still dark"})

        assert response.status_code == 201
        comments = response.json()["data"]["comments"]
        assert len(comments) == 1
        assert comments[0]["role"] == "reporter"
        assert comments[0]["message"] == "Still dark"

    def test_message_with_wrong_password_leaves_comments_unchanged(self, client):
        password = _create_anonymous(client).json()["case_password"]
        wrong = "000000" if password != "000000" else "111111"

        response = client.post("/api/reports/message", data={"password": wrong, "message": "Let me in"})
        assert response.status_code == 401
        assert response.json()["detail"]["message"] == GENERIC_ACCESS_MESSAGE

        report = client.post("/api/reports/follow-up", json={"password": password}).json()["data"]
        assert report["comments"] == []

    def test_message_with_evidence(self, client):
        password = _create_anonymous(client).json()["case_password"]
        response = client.post(
            "/api/reports/message",
            data={"password": password, "message": "Photo of the pole"},
            files=[("files", ("pole.png", b"png-bytes", "image/png"))],
        )
        assert response.status_code == 201
        assert [f["original_name"] for f in response.json()["data"]["evidence_files"]] == ["pole.png"]


class TestStaffEndpoints:

    def test_staff_header_is_required(self, client):
        response = client.get("/api/staff/reports")
        assert response.status_code == 422

    def test_unknown_staff_user_is_403(self, client):
        response = client.get("/api/staff/reports", headers={"X-Staff-User": "999"})
        assert response.status_code == 403

    def test_admin_sees_anonymous_report_without_identity(self, client, admin_user):
        report_id = _create_anonymous(client).json()["data"]["id"]
        response = client.get(f"/api/staff/reports/{report_id}", headers={"X-Staff-User": str(admin_user.id)})

        assert response.status_code == 200
        assert "reporter_name" not in response.json()["data"]

    def test_status_update_flow(self, client, admin_user):
        headers = {"X-Staff-User": str(admin_user.id)}
        report_id = _create_anonymous(client).json()["data"]["id"]

        resolved = client.patch(f"/api/staff/reports/{report_id}/status", json={"status": "resolved"}, headers=headers)
        closed = client.patch(f"/api/staff/reports/{report_id}/status", json={"status": "closed"}, headers=headers)

        assert resolved.status_code == 200
        data = closed.json()["data"]
        assert data["status"] == "closed"
        assert data["is_resolved"] is True
        assert [h["status"] for h in data["status_history"]] == ["pending", "resolved", "closed"]

    def test_stale_version_is_409(self, client, admin_user):
        headers = {"X-Staff-User": str(admin_user.id)}
        created = _create_anonymous(client).json()["data"]
        url = f"/api/staff/reports/{created['id']}/status"

        first = client.patch(url, json={"status": "under review", "expected_version": created["version"]},
                             headers=headers)
        second = client.patch(url, json={"status": "resolved", "expected_version": created["version"]},
                              headers=headers)
        assert first.status_code == 200
        assert second.status_code == 409

    def test_invalid_status_is_422(self, client, admin_user):
        report_id = _create_anonymous(client).json()["data"]["id"]
        response = client.patch(
            f"/api/staff/reports/{report_id}/status",
            json={"status": "archived"},
            headers={"X-Staff-User": str(admin_user.id)},
        )
        assert response.status_code == 422

    def test_agency_user_blocked_from_other_reports(self, client, agency_user):
        report_id = _create_anonymous(client).json()["data"]["id"]
        response = client.post(
            f"/api/staff/reports/{report_id}/messages",
            json={"message": "Hello"},
            headers={"X-Staff-User": str(agency_user.id)},
        )
        assert response.status_code == 403

    def test_assign_then_agency_can_message(self, client, admin_user, agency_user, works_agency):
        report_id = _create_anonymous(client).json()["data"]["id"]
        assigned = client.patch(
            f"/api/staff/reports/{report_id}/agency",
            json={"agency_id": works_agency.id},
            headers={"X-Staff-User": str(admin_user.id)},
        )
        assert assigned.json()["data"]["agency"]["name"] == "Public Works"

        response = client.post(
            f"/api/staff/reports/{report_id}/messages",
            json={"message": "Crew dispatched"},
            headers={"X-Staff-User": str(agency_user.id)},
        )
        assert response.status_code == 201
        assert response.json()["data"][-1]["role"] == "agency"

    def test_missing_report_is_404(self, client, admin_user):
        response = client.get("/api/staff/reports/4242", headers={"X-Staff-User": str(admin_user.id)})
        assert response.status_code == 404

    def test_list_and_unassigned(self, client, admin_user):
        _create_anonymous(client)
        _create_anonymous(client, title="Pothole")
        headers = {"X-Staff-User": str(admin_user.id)}

        listing = client.get("/api/staff/reports", params={"keyword": "pothole"}, headers=headers).json()
        assert listing["total_reports"] == 1
        assert listing["data"][0]["title"] == "Pothole"

        unassigned = client.get("/api/staff/reports/unassigned", headers=headers).json()
        assert unassigned["total_reports"] == 2

        by_status = client.get("/api/staff/reports", params={"status": "resolved"}, headers=headers).json()
        assert by_status["count"] == 0


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_internal_notes_are_staff_only(client, admin_user):
    created = _create_anonymous(client).json()
    headers = {"X-Staff-User": str(admin_user.id)}

    response = client.patch(
        f"/api/staff/reports/{created['data']['id']}/notes",
        json={"internal_notes": "Matches the call from last week"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["internal_notes"] == "Matches the call from last week"

    follow_up = client.post("/api/reports/follow-up", json={"password": created["case_password"]})
    assert "internal_notes" not in follow_up.json()["data"]
    assert "Matches the call" not in follow_up.text


def test_requests_are_logged_without_bodies(client, caplog):
    created = _create_anonymous(client).json()
    with caplog.at_level(logging.INFO, logger="tipline.api.middleware"):
        client.post("/api/reports/follow-up", json={"password": created["case_password"]})

    records = [r for r in caplog.records if r.name == "tipline.api.middleware"]
    assert records[-1].path == "/api/reports/follow-up"
    assert records[-1].method == "POST"
    assert records[-1].status_code == 200
    assert all(created["case_password"] not in r.getMessage() for r in records)
