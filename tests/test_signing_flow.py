import json
from urllib.parse import parse_qs, urlparse

BASE = "/companies/acme-freight/envelopes"

FIELDS = [
    {"id": "sig", "type": "signature", "pageNumber": 2, "xPosition": 10, "yPosition": 70, "width": 30, "height": 8},
    {"id": "name", "type": "text", "label": "Full name", "pageNumber": 1, "xPosition": 10, "yPosition": 80, "width": 40, "height": 4},
]


def _upload(client, template_pdf, dispatch=True):
    response = client.post(
        f"{BASE}/upload",
        files={"file": ("lease.pdf", template_pdf, "application/pdf")},
        data={
            "recipient_name": "Jane Driver",
            "recipient_email": "jane@example.com",
            "fields": json.dumps(FIELDS),
            "dispatch": "true" if dispatch else "false",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def _token(signing_link):
    return parse_qs(urlparse(signing_link).query)["token"][0]


def _callable(client, name, payload, **kwargs):
    return client.post(f"/{name}", json={"data": payload}, **kwargs)


def _creds(created, token=None):
    return {
        "companyId": "acme-freight",
        "requestId": created["requestId"],
        "accessToken": token or _token(created["signingLink"]),
    }


def test_full_signing_flow(client, store, template_pdf, signature_data_url):
    created = _upload(client, template_pdf)
    assert created["status"] == "sent"
    assert created["title"] == "lease"
    assert created["storagePath"].startswith("secure_documents/acme-freight/originals/")
    assert "/sign/acme-freight/" in created["signingLink"]

    read = _callable(client, "getPublicEnvelope", _creds(created))
    assert read.status_code == 200
    view = read.json()["result"]
    assert view["recipientName"] == "Jane Driver"
    assert [f["id"] for f in view["fields"]] == ["sig", "name"]
    assert view["fields"][0]["unit"] == "percent"

    submit = _callable(
        client,
        "submitPublicEnvelope",
        {
            **_creds(created),
            "fieldValues": {"sig": signature_data_url, "name": "Jane Driver"},
            "auditData": {"ip": "10.0.0.5", "userAgent": "client-ua", "timestamp": "2026-03-02T15:29:58.000Z"},
        },
        headers={"user-agent": "e2e-agent", "x-forwarded-for": "198.51.100.4, 10.0.0.1"},
    )
    assert submit.status_code == 200, submit.text
    assert submit.json() == {"result": {"success": True}}

    detail = client.get(f"{BASE}/{created['requestId']}").json()
    assert detail["status"] == "signed"
    assert detail["auditRecord"]["ip"] == "198.51.100.4"
    assert detail["auditRecord"]["clientIp"] == "10.0.0.5"
    assert detail["auditRecord"]["userAgent"] == "e2e-agent"
    assert detail["auditRecord"]["method"] == "Public Secure Link"

    download = client.get(f"{BASE}/{created['requestId']}/download")
    assert download.status_code == 200
    signed_path = detail["signedPdfUrl"].removeprefix("memory://")
    assert signed_path.startswith(f"secure_documents/acme-freight/completed/{created['requestId']}_")
    assert signed_path.endswith("_signed.pdf")
    assert download.json()["url"].startswith(f"memory://{signed_path}")
    assert signed_path in store.files

    again = _callable(client, "getPublicEnvelope", _creds(created))
    assert again.status_code == 400
    assert again.json()["error"]["status"] == "FAILED_PRECONDITION"

    resubmit = _callable(client, "submitPublicEnvelope", {**_creds(created), "fieldValues": {"name": "x"}})
    assert resubmit.status_code == 409
    assert resubmit.json()["error"]["status"] == "ALREADY_EXISTS"


def test_callable_errors_use_wire_format(client, template_pdf):
    created = _upload(client, template_pdf)

    denied = _callable(client, "getPublicEnvelope", _creds(created, token="forged"))
    assert denied.status_code == 403
    assert denied.json() == {"error": {"status": "PERMISSION_DENIED", "message": "Invalid access token."}}

    missing = _callable(client, "submitPublicEnvelope", {**_creds(created), "fieldValues": {"name": "Jane"}})
    assert missing.status_code == 400
    error = missing.json()["error"]
    assert error["status"] == "INVALID_ARGUMENT"
    assert error["details"]["missingFields"] == ["sig"]

    no_params = _callable(client, "getPublicEnvelope", {"companyId": "acme-freight"})
    assert no_params.status_code == 400
    assert no_params.json()["error"]["status"] == "INVALID_ARGUMENT"

    unknown = _callable(client, "getPublicEnvelope", {**_creds(created), "requestId": "nope"})
    assert unknown.status_code == 404
    assert unknown.json()["error"]["status"] == "NOT_FOUND"


def test_company_endpoints_manage_envelope_lifecycle(client, template_pdf):
    draft = client.post(BASE, json={
        "title": "Equipment Addendum",
        "recipientName": "Sam Hauler",
        "recipientEmail": "sam@example.com",
        "templatePdfUrl": "https://files.example.com/addendum.pdf",
        "fields": FIELDS,
        "dispatch": False,
    })
    assert draft.status_code == 201
    draft = draft.json()
    assert draft["status"] == "draft"

    hidden = _callable(client, "getPublicEnvelope", _creds(draft))
    assert hidden.status_code == 404

    sent = client.post(f"{BASE}/{draft['requestId']}/dispatch")
    assert sent.status_code == 200
    sent = sent.json()
    assert sent["status"] == "sent"
    assert _token(sent["signingLink"]) != _token(draft["signingLink"])

    resent = client.post(f"{BASE}/{draft['requestId']}/dispatch").json()
    old_link = _callable(client, "getPublicEnvelope", _creds(sent))
    assert old_link.status_code == 403
    new_link = _callable(client, "getPublicEnvelope", _creds(resent))
    assert new_link.json()["result"]["pdfUrl"] == "https://files.example.com/addendum.pdf"

    listed = client.get(BASE).json()
    assert [e["requestId"] for e in listed] == [draft["requestId"]]
    assert "accessToken" not in listed[0]
    assert client.get("/companies/other-carrier/envelopes").json() == []

    not_signed = client.get(f"{BASE}/{draft['requestId']}/download")
    assert not_signed.status_code == 404
    assert not_signed.json()["detail"]["code"] == "not-found"

    assert client.get(f"{BASE}/missing").status_code == 404


def test_upload_rejects_bad_input(client, template_pdf):
    not_pdf = client.post(
        f"{BASE}/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        data={"recipient_name": "Jane", "recipient_email": "jane@example.com", "fields": json.dumps(FIELDS)},
    )
    assert not_pdf.status_code == 400
    assert not_pdf.json()["detail"]["code"] == "invalid-argument"

    bad_fields = client.post(
        f"{BASE}/upload",
        files={"file": ("lease.pdf", template_pdf, "application/pdf")},
        data={"recipient_name": "Jane", "recipient_email": "jane@example.com", "fields": "[{\"type\": \"stamp\"}]"},
    )
    assert bad_fields.status_code == 422

    no_fields = client.post(
        f"{BASE}/upload",
        files={"file": ("lease.pdf", template_pdf, "application/pdf")},
        data={"recipient_name": "Jane", "recipient_email": "jane@example.com", "fields": "[]"},
    )
    assert no_fields.status_code == 400


def test_recover_stalled_seals_endpoint(client):
    response = client.post("/admin/recover-stalled-seals", params={"max_age_seconds": 60})
    assert response.status_code == 200
    assert response.json() == {"recovered": []}


def test_create_from_stored_template_path(client, store, template_pdf):
    path = "secure_documents/acme-freight/originals/1700000000000_lease.pdf"
    store.files[path] = template_pdf
    body = {
        "title": "Lease Agreement",
        "recipientName": "Jane Driver",
        "recipientEmail": "jane@example.com",
        "templatePdfUrl": path,
        "fields": FIELDS,
    }

    created = client.post(BASE, json=body)
    assert created.status_code == 201
    assert created.json()["storagePath"] == path
    view = _callable(client, "getPublicEnvelope", _creds(created.json())).json()["result"]
    assert view["pdfUrl"].startswith(f"memory://{path}?expires_in=")

    foreign = client.post(BASE, json={**body, "templatePdfUrl": "secure_documents/other-carrier/originals/x.pdf"})
    assert foreign.status_code == 400
    assert foreign.json()["detail"]["code"] == "invalid-argument"


def test_upload_with_unusable_read_only_field_stores_nothing(client, store, template_pdf):
    fields = FIELDS + [{"id": "agree", "type": "checkbox", "readOnly": True, "defaultValue": "true", "width": 3, "height": 3}]
    response = client.post(
        f"{BASE}/upload",
        files={"file": ("lease.pdf", template_pdf, "application/pdf")},
        data={"recipient_name": "Jane", "recipient_email": "jane@example.com", "fields": json.dumps(fields)},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["details"] == {"invalidFields": ["agree"]}
    assert store.paths_in("originals") == []
