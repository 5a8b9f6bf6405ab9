"""End-to-end behaviour of POST /classify through the FastAPI app."""
import json

import main
from classification.auth import issue_token
from classification.positions import MaxPlusOneAllocator
from conftest import FakeInferenceClient, FakeStorage

INVOICE = "Invoice #4471\nAcme Supply Co\nAmount Due: $540.00\nDue in 3 days"


def test_root_and_health(api):
    assert api.get("/").json() == {"message": "Content Classification API is running"}
    body = api.get("/health").json()
    assert body["ok"] is True
    assert "jwt_secret" not in body


def test_missing_token_is_unauthorized(api):
    res = api.post("/classify", json={"content": INVOICE}, headers={"Authorization": ""})
    assert res.status_code == 401
    assert res.json() == {"error": "Unauthorized"}


def test_invalid_token_is_unauthorized(api):
    res = api.post("/classify", json={"content": INVOICE}, headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_get_is_method_not_allowed(api):
    res = api.get("/classify")
    assert res.status_code == 405
    assert res.json() == {"error": "Method Not Allowed"}


def test_blank_content_is_rejected(api, boards):
    res = api.post("/classify", json={"content": "  \u0000 "})
    assert res.status_code == 400
    assert res.json() == {"error": "Content is required"}


def test_invoice_with_unavailable_model_uses_fallback(api, boards):
    res = api.post("/classify", json={"content": INVOICE, "fileName": "invoice.txt"})

    assert res.status_code == 200
    body = res.json()
    assert body["type"] == "task"
    assert body["task"]["title"] == "Invoice #4471"
    assert body["task"]["boardId"] == boards[0].id
    assert body["task"]["position"] == 0
    assert body["task"]["dueDate"] is not None
    assert body["expense"]["amount"] == 540.0
    assert body["expense"]["category"] == "Uncategorized"
    assert body["contact"] is not None
    assert body["vendor"] is None
    assert [e["type"] for e in body["aiEntities"]] == ["task", "expense", "contact"]


def test_model_output_drives_classification(api, boards):
    api.fakes["client"] = FakeInferenceClient(text=json.dumps([
        {"type": "vendor", "name": "Jane Smith", "email": "jane@acme.com", "company": "Acme Supply"},
        {"type": "task", "title": "Send W-9 to Acme", "boardName": "finance", "priority": "HIGH"},
    ]))

    body = api.post("/classify", json={"content": "Jane from Acme Supply needs our W-9"}).json()

    assert body["type"] == "vendor"
    assert body["vendor"]["name"] == "Acme Supply"
    assert body["contact"]["isVendor"] is True
    assert body["task"]["boardId"] == boards[1].id
    assert body["task"]["priority"] == "HIGH"
    assert len(api.fakes["client"].prompts) == 1
    assert "- Operations:" in api.fakes["client"].prompts[0]


def test_repeat_vendor_reuses_contact_and_vendor(api, boards):
    content = "Vendor: Acme Supply\nJane Smith\njane@acme.com\n555-123-4567"
    first = api.post("/classify", json={"content": content}).json()
    second = api.post("/classify", json={"content": content}).json()

    assert first["vendor"]["email"] == "jane@acme.com"
    assert first["vendor"]["phone"] == "555-123-4567"
    assert first["contact"]["id"] == second["contact"]["id"]
    assert first["vendor"]["id"] == second["vendor"]["id"]
    assert second["task"]["position"] == first["task"]["position"] + 1


def test_caller_without_boards_gets_no_task(api):
    token = issue_token("user-without-boards", main.settings)
    res = api.post(
        "/classify",
        json={"content": "Remember to service the rig"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert res.status_code == 200
    body = res.json()
    assert body["task"] is None
    assert body["tasks"] == []
    assert body["contact"] is not None


def test_attachment_is_read_when_content_is_empty(api, boards):
    api.fakes["storage"] = FakeStorage(b"Receipt\nHardware store\nTotal: $99.10")
    attachment = {"id": "att-1", "filename": "r.txt", "originalName": "r.txt", "mimeType": "text/plain",
                  "url": "https://files.example.com/r.txt"}

    res = api.post("/classify", json={"content": "", "attachment": attachment})

    assert res.status_code == 200
    body = res.json()
    assert api.fakes["storage"].requested == ["att-1"]
    assert body["expense"]["amount"] == 99.1
    assert body["expense"]["receiptUrl"] == "https://files.example.com/r.txt"
    assert body["attachment"]["id"] == "att-1"


def test_attachment_is_ignored_when_content_is_present(api, boards):
    api.fakes["storage"] = FakeStorage(b"should not be read")
    attachment = {"id": "att-2", "filename": "a.txt"}

    res = api.post("/classify", json={"content": "Call Bob", "attachment": attachment})

    assert res.status_code == 200
    assert api.fakes["storage"].requested == []


def test_unreadable_attachment_without_content_is_rejected(api, boards):
    api.fakes["storage"] = FakeStorage(None)
    res = api.post("/classify", json={"attachment": {"id": "att-3"}})
    assert res.status_code == 400


def test_persistence_failure_is_a_500(api, boards):
    class BrokenAllocator(MaxPlusOneAllocator):
        def next_position(self, session, board_id, status):
            raise RuntimeError("connection reset")

    main.app.dependency_overrides[main.get_allocator] = lambda: BrokenAllocator()
    res = api.post("/classify", json={"content": "Call Bob"})

    assert res.status_code == 500
    assert res.json() == {"error": "Failed to classify content", "details": "connection reset"}


def test_out_of_range_date_phrase_still_creates_the_task(api, boards):
    res = api.post("/classify", json={"content": "Renew lease in 4000000 days"})

    assert res.status_code == 200
    body = res.json()
    assert body["task"]["title"] == "Renew lease in 4000000 days"
    assert body["task"]["dueDate"] is None


def test_model_output_with_null_fields_is_materialized(api, boards):
    api.fakes["client"] = FakeInferenceClient(text=json.dumps([
        {"type": "task", "title": "File receipt", "labels": None, "dueDate": None},
        {"type": "expense", "amount": "$12.00", "lineItems": None, "vendorName": "Cafe"},
    ]))

    res = api.post("/classify", json={"content": "Coffee with Bob"})

    assert res.status_code == 200
    body = res.json()
    assert body["task"]["title"] == "File receipt"
    assert body["task"]["aiLabels"] == []
    assert body["expense"]["amount"] == 12.0
    assert body["expense"]["lineItems"] == []
