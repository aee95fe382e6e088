from decimal import Decimal

from conftest import make_lender, make_loan, make_originator, make_prospect


PROSPECT_PAYLOAD = {
    "borrower_name": "Jane Borrower",
    "borrower_type": "individual",
    "loan_type": "purchase",
    "loan_amount": "100000",
    "assigned_to": "user-1",
}


def test_requests_without_a_user_are_unauthorized(client):
    resp = client.get("/api/v1/prospects")

    assert resp.status_code == 401
    body = resp.json()
    assert body["code"] == "unauthorized"
    assert body["data"] is None


def test_create_prospect_returns_enveloped_entity(client, auth_headers):
    resp = client.post("/api/v1/prospects", json=PROSPECT_PAYLOAD, headers=auth_headers)

    assert resp.status_code == 201
    body = resp.json()
    assert body["code"] == "created"
    data = body["data"]
    assert data["code"].startswith("HKF-ML")
    assert data["assigned_to_name"] == "Ana Officer"
    assert data["current_stage_name"] == "Pre-validation"
    assert Decimal(data["loan_amount"]) == Decimal("100000")


def test_request_validation_errors_use_the_error_envelope(client, auth_headers):
    resp = client.post("/api/v1/prospects", json={**PROSPECT_PAYLOAD, "loan_type": "bridge"}, headers=auth_headers)

    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "validation_error"
    assert body["message"].startswith("loan_type")


def test_unknown_prospect_is_404(client, auth_headers):
    resp = client.get("/api/v1/prospects/does-not-exist", headers=auth_headers)

    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_domain_validation_maps_to_422(client, auth_headers, prospect_store):
    prospect = prospect_store.seed(make_prospect(status="rejected", rejected_at_stage=2))

    resp = client.post(f"/api/v1/prospects/{prospect.id}/reject", json={"stage_id": 1}, headers=auth_headers)

    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_stale_session_update_is_409(client, auth_headers, prospect_store):
    prospect = prospect_store.seed(make_prospect())
    other = {**auth_headers, "X-User-ID": "user-2", "X-Session-ID": "session-b"}

    assert client.get(f"/api/v1/prospects/{prospect.id}", headers=auth_headers).status_code == 200
    assert client.patch(f"/api/v1/prospects/{prospect.id}", json={"county": "Broward"}, headers=other).status_code == 200

    resp = client.patch(f"/api/v1/prospects/{prospect.id}", json={"county": "Orange"}, headers=auth_headers)

    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"
    assert prospect_store.rows[prospect.id].county == "Broward"


def test_document_status_endpoint_advances_stage(client, auth_headers, prospect_store):
    prospect = prospect_store.seed(make_prospect())
    docs = [("individual", doc.id) for doc in prospect.stage(1).documents.individual] + [("property", "prop-doc-1")]

    for bucket, doc_id in docs:
        resp = client.patch(
            f"/api/v1/prospects/{prospect.id}/stages/1/documents/{doc_id}/status",
            json={"bucket": bucket, "status": "approved"},
            headers=auth_headers,
        )
        assert resp.status_code == 200

    assert resp.json()["data"]["current_stage"] == 2


def test_upload_document_endpoint(client, auth_headers, prospect_store, blobs):
    prospect = prospect_store.seed(make_prospect(code="HKF-ML3030"))

    resp = client.post(
        f"/api/v1/prospects/{prospect.id}/stages/1/documents/ind-doc-1/upload",
        params={"bucket": "individual"},
        files={"file": ("passport.pdf", b"%PDF-1.7", "application/pdf")},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    doc = resp.json()["data"]["stages"][0]["documents"]["individual"][0]
    assert doc["status"] == "ready_for_review"
    assert blobs.objects["HKF-ML3030/Pre-validation/ind-doc-1-passport.pdf"] == b"%PDF-1.7"


def test_upload_rejects_script_files(client, auth_headers, prospect_store):
    prospect = prospect_store.seed(make_prospect())

    resp = client.post(
        f"/api/v1/prospects/{prospect.id}/stages/1/documents/ind-doc-1/upload",
        params={"bucket": "individual"},
        files={"file": ("page.html", b"<script>", "text/html")},
        headers=auth_headers,
    )

    assert resp.status_code == 422


def test_funding_round_trip_over_http(client, auth_headers, prospect_store, lender_store):
    originator = lender_store.seed(make_originator())
    lender_store.fund_trust(originator.id, "100000")
    participant = lender_store.seed(make_lender(account="CCL"))
    lender_store.fund_trust(participant.id, "50000")
    loan = prospect_store.seed(make_loan(loan_amount=Decimal("50000")))

    resp = client.post(
        f"/api/v1/loans/{loan.id}/funders",
        json={"lender_id": participant.id, "original_amount": "40000", "lender_rate": "0.1"},
        headers=auth_headers,
    )
    assert resp.status_code == 201
    funders = resp.json()["data"]["funders"]

    resp = client.post(
        f"/api/v1/loans/{loan.id}/funding-events",
        json={
            "funding_date": "2026-05-01",
            "funding_amount": "100000",
            "distributions": {funders[0]["id"]: "60000", funders[1]["id"]: "40000"},
        },
        headers=auth_headers,
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert [Decimal(f["principal_balance"]) for f in data["funders"]] == [Decimal("70000"), Decimal("40000")]

    resp = client.delete(f"/api/v1/loans/{loan.id}/history/{data['history'][-1]['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert Decimal(resp.json()["data"]["terms"]["principal_balance"]) == Decimal("50000")
    assert lender_store.rows[participant.id].trust_balance == Decimal("50000.00")


def test_lender_trust_overdraft_is_422(client, auth_headers, lender_store):
    resp = client.post("/api/v1/lenders", json={"account": "CCL", "lender_name": "Coastal"}, headers=auth_headers)
    assert resp.status_code == 201
    lender_id = resp.json()["data"]["id"]

    resp = client.post(
        f"/api/v1/lenders/{lender_id}/trust-transactions",
        json={"event_type": "Withdrawal", "event_date": "2026-02-01", "description": "Payout", "amount": "1"},
        headers=auth_headers,
    )

    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "insufficient_funds"
    assert lender_store.rows[lender_id].trust_balance == Decimal("0")


def test_loans_endpoint_lists_funded_loans_only(client, auth_headers, prospect_store):
    loan = prospect_store.seed(make_loan())
    prospect_store.seed(make_prospect())

    resp = client.get("/api/v1/loans", headers=auth_headers)

    assert resp.status_code == 200
    assert [item["id"] for item in resp.json()["data"]] == [loan.id]


def test_lender_portfolio_endpoint(client, auth_headers, prospect_store, lender_store):
    originator = lender_store.seed(make_originator())
    loan = prospect_store.seed(make_loan(loan_amount=Decimal("50000")))

    resp = client.get(f"/api/v1/lenders/{originator.id}/portfolio", headers=auth_headers)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert Decimal(data["portfolio_value"]) == Decimal("50000")
    assert [item["loan_id"] for item in data["loans"]] == [loan.id]
    assert data["loans"][0]["code"] == loan.code
