from datetime import datetime, timedelta, timezone

from app.models.manual import Manual, ManualChunk, ManualPageImage
from app.services.page_images import PAGE_IMAGES_BUCKET
from app.services.storage import MANUALS_BUCKET
from conftest import make_pdf, manual_page_text


def mark_processing(db, manual_id, started_at):
    db.query(Manual).filter(Manual.id == manual_id).update(
        {"processing_status": "processing", "processing_started_at": started_at}
    )
    db.commit()


def upload(client, headers, pdf, name="excavator_manual.pdf", **form):
    data = {"title": "320D Service Manual", "brand": "Caterpillar", "model": "320D"}
    data.update({k: str(v).lower() if isinstance(v, bool) else v for k, v in form.items()})
    return client.post(
        "/api/manuals/",
        headers=headers,
        files={"file": (name, pdf, "application/pdf")},
        data=data,
    )


def test_upload_and_process_text(client, auth_headers, db, storage, provider):
    pdf = make_pdf([manual_page_text("Hydraulics"), manual_page_text("Engine")])

    response = upload(client, auth_headers, pdf, process_text=True)

    assert response.status_code == 201
    manual = response.json()
    assert manual["file_name"] == "excavator_manual.pdf"
    assert manual["file_url"].startswith("http://testserver/api/files/manuals/")
    assert storage.list(MANUALS_BUCKET) != []

    detail = client.get(f"/api/manuals/{manual['id']}", headers=auth_headers).json()
    assert detail["processing_status"] == "done"
    assert detail["has_text"] is True
    assert detail["chunk_count"] == len(provider.embed_calls) > 0
    assert detail["page_image_count"] == 0


def test_upload_without_processing_stays_pending(client, auth_headers, provider):
    response = upload(client, auth_headers, make_pdf(["Page"]), process_text=False)

    assert response.status_code == 201
    assert response.json()["processing_status"] == "pending"
    assert provider.embed_calls == []


def test_upload_rejects_non_pdf(client, auth_headers):
    response = client.post(
        "/api/manuals/",
        headers=auth_headers,
        files={"file": ("notes.txt", b"just text", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_FILE"

    response = client.post(
        "/api/manuals/",
        headers=auth_headers,
        files={"file": ("fake.pdf", b"not a pdf at all", "application/pdf")},
    )
    assert response.status_code == 400


def test_upload_without_api_key_stores_nothing(client, auth_headers, db, storage, company):
    company.ai_settings = {"provider": "openai"}
    db.commit()

    response = upload(client, auth_headers, make_pdf(["Page"]), process_text=True)

    assert response.status_code == 400
    assert response.json()["error_code"] == "PROVIDER_NOT_CONFIGURED"
    assert db.query(Manual).count() == 0
    assert storage.list(MANUALS_BUCKET) == []


def test_processing_requires_api_key(client, auth_headers, db, company):
    manual_id = upload(client, auth_headers, make_pdf(["Page"]), process_text=False).json()["id"]
    company.ai_settings = {"provider": "google"}
    db.commit()

    response = client.post(f"/api/manuals/{manual_id}/process", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "PROVIDER_NOT_CONFIGURED"


def test_second_processing_run_is_rejected(client, auth_headers, db):
    manual_id = upload(client, auth_headers, make_pdf(["Page"]), process_text=False).json()["id"]
    mark_processing(db, manual_id, started_at=datetime.now(timezone.utc))

    response = client.post(f"/api/manuals/{manual_id}/process?mode=both", headers=auth_headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "MANUAL_PROCESSING"
    assert client.delete(f"/api/manuals/{manual_id}", headers=auth_headers).status_code == 409


def test_abandoned_processing_run_can_be_restarted(client, auth_headers, db):
    manual_id = upload(client, auth_headers, make_pdf(["Page"]), process_text=False).json()["id"]
    # A worker restart left the manual claimed three hours ago
    mark_processing(db, manual_id, started_at=datetime.now(timezone.utc) - timedelta(hours=3))

    response = client.post(f"/api/manuals/{manual_id}/process?mode=text", headers=auth_headers)

    assert response.status_code == 202
    db.expire_all()
    assert db.get(Manual, manual_id).processing_status == "done"


def test_abandoned_processing_run_can_be_deleted(client, auth_headers, db):
    manual_id = upload(client, auth_headers, make_pdf(["Page"]), process_text=False).json()["id"]
    mark_processing(db, manual_id, started_at=datetime.now(timezone.utc) - timedelta(hours=3))

    assert client.delete(f"/api/manuals/{manual_id}", headers=auth_headers).status_code == 200
    db.expire_all()
    assert db.get(Manual, manual_id) is None


def test_reprocess_images(client, auth_headers, provider):
    pdf = make_pdf(["Hydraulic schematic", "Pump exploded view"])
    manual_id = upload(client, auth_headers, pdf, process_text=False).json()["id"]

    response = client.post(f"/api/manuals/{manual_id}/process?mode=images", headers=auth_headers)

    assert response.status_code == 202
    assert response.json()["mode"] == "images"
    pages = client.get(f"/api/manuals/{manual_id}/pages", headers=auth_headers).json()["pages"]
    assert [p["page_number"] for p in pages] == [1, 2]
    assert provider.describe_calls == 2

    image = client.get(pages[0]["image_url"].replace("http://testserver", ""))
    assert image.status_code == 200
    assert image.headers["content-type"] == "image/jpeg"


def test_delete_leaves_nothing_behind(client, auth_headers, db, storage):
    pdf = make_pdf([manual_page_text("Hydraulics"), manual_page_text("Engine")])
    manual_id = upload(
        client, auth_headers, pdf, process_text=True, process_images=True
    ).json()["id"]
    assert db.query(ManualPageImage).filter(ManualPageImage.manual_id == manual_id).count() == 2

    response = client.delete(f"/api/manuals/{manual_id}", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["page_images_deleted"] == 2
    assert body["chunks_deleted"] > 0
    assert body["files_deleted"] == 3

    assert storage.list(MANUALS_BUCKET) == []
    assert storage.list(PAGE_IMAGES_BUCKET) == []
    assert db.query(Manual).count() == 0
    assert db.query(ManualChunk).count() == 0
    assert db.query(ManualPageImage).count() == 0
    assert client.get(f"/api/manuals/{manual_id}", headers=auth_headers).status_code == 404


def test_list_filters(client, auth_headers):
    upload(client, auth_headers, make_pdf(["Page"]), name="a.pdf", title="Tractor Manual", brand="Deere")
    upload(client, auth_headers, make_pdf(["Page"]), name="b.pdf", title="Excavator Manual", brand="Caterpillar")

    everything = client.get("/api/manuals/", headers=auth_headers).json()
    by_brand = client.get("/api/manuals/?brand=deere", headers=auth_headers).json()
    by_search = client.get("/api/manuals/?search=excavator", headers=auth_headers).json()

    assert [m["title"] for m in everything] == ["Excavator Manual", "Tractor Manual"]
    assert [m["title"] for m in by_brand] == ["Tractor Manual"]
    assert [m["title"] for m in by_search] == ["Excavator Manual"]


def test_manuals_are_tenant_scoped(client, auth_headers, db, other_company_machine):
    other = Manual(company_id=other_company_machine.company_id, title="Private", processing_status="done")
    db.add(other)
    db.commit()

    assert client.get(f"/api/manuals/{other.id}", headers=auth_headers).status_code == 404
    assert client.delete(f"/api/manuals/{other.id}", headers=auth_headers).status_code == 404
    assert client.get("/api/manuals/", headers=auth_headers).json() == []


def test_files_endpoint_rejects_traversal(client):
    assert client.get("/api/files/manuals/..%2F..%2Fetc%2Fpasswd").status_code == 404
