# tests/test_task_routes.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from backend.services.preview_tokens import PreviewTokenRegistry

from .fakes import FakeClock, pdf_bytes, pdf_part

MB = 1024 * 1024
FUTURE = (datetime.utcnow() + timedelta(days=7)).strftime("%Y-%m-%d")


def _create(client, headers, assignee, *, files=(), **fields):
    data = {
        "title": "Audit",
        "description": "Quarterly audit",
        "dueDate": FUTURE,
        "assignedTo": str(assignee.id),
        **fields,
    }
    if files:
        data["documents"] = list(files)
    return client.post("/api/tasks", data=data, headers=headers, content_type="multipart/form-data")


@pytest.fixture()
def clock(app) -> FakeClock:
    clock = FakeClock()
    app.extensions["preview_tokens"] = PreviewTokenRegistry(ttl_seconds=3600, sweep_interval=None, clock=clock)
    return clock


def test_task_routes_require_a_token(client) -> None:
    for method, url in [
        ("get", "/api/tasks"),
        ("get", "/api/tasks/5f0000000000000000000000"),
        ("post", "/api/tasks"),
        ("delete", "/api/tasks/5f0000000000000000000000"),
        ("get", "/api/tasks/5f0000000000000000000000/documents/5f0000000000000000000001"),
        ("get", "/api/tasks/5f0000000000000000000000/preview/5f0000000000000000000001"),
        ("get", "/api/tasks/5f0000000000000000000000/create-preview-token/5f0000000000000000000001"),
    ]:
        resp = getattr(client, method)(url)
        assert resp.status_code == 401, url
        assert resp.get_json()["success"] is False


def test_garbage_bearer_token_is_rejected(client) -> None:
    resp = client.get("/api/tasks", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.get_json() == {"success": False, "message": "Not authorized, token failed"}


def test_end_to_end_preview_flow(client, alice, auth_headers, clock) -> None:
    headers = auth_headers(alice)

    resp = _create(client, headers, alice, files=[pdf_part("audit.pdf", size=1 * MB)])
    assert resp.status_code == 201
    task = resp.get_json()["data"]
    assert len(task["documents"]) == 1
    assert task["createdBy"]["email"] == alice.email
    doc_id = task["documents"][0]["_id"]

    resp = client.get(f"/api/tasks/{task['_id']}/create-preview-token/{doc_id}", headers=headers)
    assert resp.status_code == 200
    preview_url = resp.get_json()["previewUrl"]
    assert preview_url.startswith("/api/tasks/public-doc/")

    clock.advance(30 * 60)
    anon = client.application.test_client()
    resp = anon.get(preview_url)
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "application/pdf"
    assert resp.headers["Content-Disposition"].startswith("inline")
    assert resp.data == pdf_bytes(1 * MB)

    clock.advance(31 * 60)
    resp = anon.get(preview_url)
    assert resp.status_code == 401
    assert resp.mimetype == "text/plain"
    assert b"expired" in resp.data

    # The expired entry is gone after that first rejection.
    resp = anon.get(preview_url)
    assert resp.status_code == 404


def test_unknown_preview_token(client) -> None:
    resp = client.get("/api/tasks/public-doc/definitely-not-issued")
    assert resp.status_code == 404
    assert resp.mimetype == "text/plain"


def test_preview_serves_snapshot_after_task_edits(client, alice, auth_headers, clock, upload_dir) -> None:
    headers = auth_headers(alice)
    task = _create(client, headers, alice, files=[pdf_part("v1.pdf")]).get_json()["data"]
    doc_id = task["documents"][0]["_id"]
    preview_url = client.get(
        f"/api/tasks/{task['_id']}/create-preview-token/{doc_id}", headers=headers
    ).get_json()["previewUrl"]

    # Retitling the task does not affect the outstanding link.
    client.put(f"/api/tasks/{task['_id']}", data={"title": "Renamed"}, headers=headers)
    assert client.get(preview_url).status_code == 200

    # Once the task is deleted the blob is gone, so the link dies with it.
    client.delete(f"/api/tasks/{task['_id']}", headers=headers)
    resp = client.get(preview_url)
    assert resp.status_code == 404


def test_download_and_inline_preview(client, alice, auth_headers) -> None:
    headers = auth_headers(alice)
    task = _create(client, headers, alice, files=[pdf_part("contract.pdf", size=2048)]).get_json()["data"]
    doc_id = task["documents"][0]["_id"]

    resp = client.get(f"/api/tasks/{task['_id']}/documents/{doc_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.headers["Content-Disposition"].startswith("attachment")
    assert "contract.pdf" in resp.headers["Content-Disposition"]
    assert resp.data == pdf_bytes(2048)

    resp = client.get(f"/api/tasks/{task['_id']}/preview/{doc_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "application/pdf"
    assert resp.headers["Content-Disposition"].startswith("inline")


def test_inline_preview_answers_range_requests(client, alice, auth_headers) -> None:
    headers = auth_headers(alice)
    task = _create(client, headers, alice, files=[pdf_part("scan.pdf", size=4096)]).get_json()["data"]
    doc_id = task["documents"][0]["_id"]

    resp = client.get(f"/api/tasks/{task['_id']}/preview/{doc_id}", headers=headers)
    assert resp.headers["Content-Length"] == "4096"

    resp = client.get(f"/api/tasks/{task['_id']}/preview/{doc_id}", headers={**headers, "Range": "bytes=0-99"})
    assert resp.status_code == 206
    assert resp.headers["Content-Length"] == "100"
    assert resp.data == pdf_bytes(4096)[:100]

    preview_url = client.get(
        f"/api/tasks/{task['_id']}/create-preview-token/{doc_id}", headers=headers
    ).get_json()["previewUrl"]
    anon = client.application.test_client()
    resp = anon.get(preview_url, headers={"Range": "bytes=4000-"})
    assert resp.status_code == 206
    assert resp.data == pdf_bytes(4096)[4000:]


def test_body_over_the_request_cap_is_a_bad_request(app, client, alice, auth_headers, upload_dir) -> None:
    app.config["MAX_CONTENT_LENGTH"] = 8 * 1024
    resp = _create(client, auth_headers(alice), alice, files=[pdf_part(f"p{i}.pdf", size=4096) for i in range(3)])
    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "message": "Upload too large. Maximum is 3 files of 5MB each"}
    assert not upload_dir.exists() or not any(upload_dir.iterdir())
    assert client.get("/api/tasks", headers=auth_headers(alice)).get_json()["count"] == 0


def test_dangling_attachment_is_not_found(client, alice, auth_headers, upload_dir) -> None:
    headers = auth_headers(alice)
    task = _create(client, headers, alice, files=[pdf_part()]).get_json()["data"]
    doc = task["documents"][0]
    (upload_dir / doc["filename"]).unlink()

    for kind in ("documents", "preview", "create-preview-token"):
        resp = client.get(f"/api/tasks/{task['_id']}/{kind}/{doc['_id']}", headers=headers)
        assert resp.status_code == 404, kind


def test_outsider_is_forbidden_until_assigned(client, alice, bob, auth_headers) -> None:
    owner, outsider = auth_headers(alice), auth_headers(bob)
    task = _create(client, owner, alice, files=[pdf_part()]).get_json()["data"]
    doc_id = task["documents"][0]["_id"]
    base = f"/api/tasks/{task['_id']}"

    assert client.get(base, headers=outsider).status_code == 403
    assert client.put(base, data={"title": "x"}, headers=outsider).status_code == 403
    assert client.delete(base, headers=outsider).status_code == 403
    assert client.get(f"{base}/documents/{doc_id}", headers=outsider).status_code == 403
    assert client.get(f"{base}/preview/{doc_id}", headers=outsider).status_code == 403
    assert client.get(f"{base}/create-preview-token/{doc_id}", headers=outsider).status_code == 403
    assert client.get("/api/tasks", headers=outsider).get_json()["count"] == 0

    resp = client.put(base, data={"assignedTo": str(bob.id)}, headers=owner)
    assert resp.status_code == 200

    assert client.get(base, headers=outsider).status_code == 200
    assert client.get(f"{base}/preview/{doc_id}", headers=outsider).status_code == 200
    assert client.get(f"{base}/create-preview-token/{doc_id}", headers=outsider).status_code == 200
    assert client.get("/api/tasks", headers=outsider).get_json()["count"] == 1
    # Assignees still cannot delete.
    assert client.delete(base, headers=outsider).status_code == 403


def test_create_rejects_bad_uploads(client, alice, auth_headers, upload_dir) -> None:
    headers = auth_headers(alice)

    resp = _create(client, headers, alice, files=[pdf_part("notes.txt", content_type="text/plain")])
    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "message": "Only PDF files are allowed"}

    resp = _create(client, headers, alice, files=[pdf_part(size=5 * MB + 1)])
    assert resp.status_code == 400
    assert "Maximum size is 5MB" in resp.get_json()["message"]

    resp = _create(client, headers, alice, files=[pdf_part(f"{i}.pdf") for i in range(4)])
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Too many files. Maximum is 3"

    assert not upload_dir.exists() or not any(upload_dir.iterdir())
    assert client.get("/api/tasks", headers=headers).get_json()["count"] == 0


def test_create_with_unknown_assignee(client, alice, auth_headers) -> None:
    resp = client.post(
        "/api/tasks",
        json={"title": "t", "description": "d", "dueDate": FUTURE, "assignedTo": "5f0000000000000000000000"},
        headers=auth_headers(alice),
    )
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Assigned user not found"


def test_update_retention_over_http(client, alice, auth_headers) -> None:
    headers = auth_headers(alice)
    task = _create(
        client, headers, alice, files=[pdf_part("A.pdf"), pdf_part("B.pdf"), pdf_part("C.pdf")]
    ).get_json()["data"]
    a, b, c = (d["_id"] for d in task["documents"])
    url = f"/api/tasks/{task['_id']}"

    # No existingDocuments field at all: everything stays.
    resp = client.put(url, data={"status": "in-progress"}, headers=headers, content_type="multipart/form-data")
    assert [d["_id"] for d in resp.get_json()["data"]["documents"]] == [a, b, c]

    # Repeated field: keep A and C.
    resp = client.put(url, data={"existingDocuments": [a, c]}, headers=headers, content_type="multipart/form-data")
    assert [d["_id"] for d in resp.get_json()["data"]["documents"]] == [a, c]

    # Single value plus a new upload.
    resp = client.put(
        url,
        data={"existingDocuments": a, "documents": [pdf_part("D.pdf")]},
        headers=headers,
        content_type="multipart/form-data",
    )
    names = [d["originalName"] for d in resp.get_json()["data"]["documents"]]
    assert names == ["A.pdf", "D.pdf"]

    # Present but empty: everything goes.
    resp = client.put(url, data={"existingDocuments": ""}, headers=headers, content_type="multipart/form-data")
    assert resp.get_json()["data"]["documents"] == []


def test_update_json_empty_list_clears_documents(client, alice, auth_headers) -> None:
    headers = auth_headers(alice)
    task = _create(client, headers, alice, files=[pdf_part()]).get_json()["data"]

    resp = client.put(f"/api/tasks/{task['_id']}", json={"existingDocuments": []}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["documents"] == []


def test_delete_then_stale_download_is_not_found(client, alice, auth_headers, upload_dir) -> None:
    headers = auth_headers(alice)
    task = _create(client, headers, alice, files=[pdf_part("a.pdf"), pdf_part("b.pdf")]).get_json()["data"]
    url = f"/api/tasks/{task['_id']}"

    resp = client.delete(url, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "data": {}}
    assert not any(upload_dir.iterdir())

    for doc in task["documents"]:
        assert client.get(f"{url}/documents/{doc['_id']}", headers=headers).status_code == 404
    assert client.get(url, headers=headers).status_code == 404


def test_list_pagination_and_admin_view(client, alice, bob, admin, auth_headers) -> None:
    for i in range(3):
        _create(client, auth_headers(alice), alice, title=f"a{i}")
    _create(client, auth_headers(bob), bob, title="b0", priority="high")

    resp = client.get("/api/tasks?page=2&limit=2", headers=auth_headers(alice))
    body = resp.get_json()
    assert body["count"] == 1
    assert body["totalPages"] == 2
    assert body["currentPage"] == 2

    body = client.get("/api/tasks", headers=auth_headers(admin)).get_json()
    assert body["count"] == 4

    body = client.get("/api/tasks?priority=high", headers=auth_headers(admin)).get_json()
    assert [t["title"] for t in body["tasks"]] == ["b0"]

    body = client.get(f"/api/tasks?assignedTo={bob.id}", headers=auth_headers(admin)).get_json()
    assert body["count"] == 1


def test_health(client) -> None:
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"
