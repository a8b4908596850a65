from __future__ import annotations

from costsheets.models import Role, User


def _create_client_with_supplier(client, name="Acme Trading"):
    resp = client.post("/clients", json={"name": name})
    assert resp.status_code == 201
    client_id = resp.get_json()["client"]["id"]
    resp = client.post(f"/clients/{client_id}/suppliers", json={"name": "Gulf Supplies"})
    assert resp.status_code == 201
    return client_id, resp.get_json()["supplier"]["id"]


def test_login_logout_and_me(client, api_users, login):
    assert client.get("/auth/me").status_code == 401

    resp = login(api_users["estimator"], "wrong")
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "invalid_credentials"

    resp = login(api_users["estimator"])
    assert resp.status_code == 200
    assert resp.get_json()["user"]["role"] == "estimator"
    assert client.get("/auth/me").get_json()["user"]["email"] == api_users["estimator"]
    assert client.get("/").get_json()["user"]["role"] == "estimator"

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_user_without_role_is_forbidden(client, api_users, login):
    login(api_users["norole"])
    resp = client.get("/clients")
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "forbidden"


def test_full_approval_flow_over_http(client, api_users, login):
    login(api_users["estimator"])
    client_id, supplier_id = _create_client_with_supplier(client)

    resp = client.get(f"/cost-sheets/client/{client_id}")
    body = resp.get_json()
    assert body["sheet"] is None
    assert body["status"] == "draft"
    assert body["new_row"]["item_number"] == 1

    resp = client.post(
        f"/cost-sheets/client/{client_id}/save",
        json={"rows": [{"item": "Cable tray", "supplier_id": supplier_id, "qty": 2, "supplier_cost": "100",
                        "rea_margin_percentage": "10"}]},
    )
    assert resp.status_code == 200
    body = resp.get_json()
    item = body["items"][0]
    assert item["actual_quoted"] == "220.00"
    assert body["new_row"]["item_number"] == 2
    sheet_id = body["sheet"]["id"]

    assert client.post(f"/cost-sheets/{sheet_id}/submit").status_code == 200

    # Estimators cannot review.
    assert client.post(f"/cost-sheets/items/{item['id']}/approve").status_code == 403

    login(api_users["admin"])
    unread = client.get("/notifications/unread-count").get_json()["unread"]
    assert unread == 1

    resp = client.post(f"/cost-sheets/items/{item['id']}/approve", json={"remarks": "ok"})
    assert resp.status_code == 200
    assert resp.get_json()["item"]["approval_status"] == "approved_both"

    ledger = client.get("/approved").get_json()["entries"]
    assert ledger[0]["client_name"] == "Acme Trading"
    assert ledger[0]["total_items"] == 1
    assert ledger[0]["total_cost"] == "200.00"

    detail = client.get(f"/approved/{client_id}").get_json()
    assert detail["rows"][0]["supplier_name"] == "Gulf Supplies"

    csv_resp = client.get(f"/approved/{client_id}/export.csv")
    assert csv_resp.status_code == 200
    assert csv_resp.mimetype == "text/csv"
    assert "Acme_Trading" in csv_resp.headers["Content-Disposition"]
    assert csv_resp.data.decode("utf-8").startswith("#,Date,Item,Supplier")

    pdf_resp = client.get(f"/approved/{client_id}/export.pdf")
    assert pdf_resp.mimetype == "application/pdf"
    assert pdf_resp.data.startswith(b"%PDF")

    records = client.get(f"/approved/records/{client_id}").get_json()
    assert records["total_quoted"] == "220.00"

    login(api_users["estimator"])
    notes = client.get("/notifications").get_json()
    assert notes["unread"] == 1
    assert notes["notifications"][0]["title"] == "Item Approved"
    note_id = notes["notifications"][0]["id"]
    assert client.post(f"/notifications/{note_id}/read").get_json()["notification"]["read"] is True
    assert client.post("/notifications/read-all").get_json()["updated"] == 0


def test_workflow_errors_map_to_status_codes(client, api_users, login):
    login(api_users["estimator"])
    client_id, _ = _create_client_with_supplier(client)

    resp = client.post("/clients", json={"name": "Acme Trading"})
    assert resp.status_code == 409
    assert resp.get_json() == {"error": "A client with this name already exists", "code": "duplicate"}

    assert client.post("/clients", json={"name": ""}).status_code == 400
    assert client.get("/cost-sheets/client/999").status_code == 404
    assert client.post(f"/cost-sheets/client/{client_id}/save", json={"rows": []}).status_code == 400
    assert client.post(f"/cost-sheets/client/{client_id}/save", json={"rows": "nope"}).status_code == 400

    resp = client.post(f"/cost-sheets/client/{client_id}/items", json={"item": "Pump"})
    assert resp.status_code == 201
    item = resp.get_json()["item"]
    sheet_id = item["cost_sheet_id"]

    client.post(f"/cost-sheets/{sheet_id}/submit")
    resp = client.post(f"/cost-sheets/{sheet_id}/submit")
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "invalid_transition"

    resp = client.put(f"/cost-sheets/items/{item['id']}", json={"qty": 4})
    assert resp.status_code == 409


def test_admin_override_remarks_and_delete(client, api_users, login):
    login(api_users["estimator"])
    client_id, supplier_id = _create_client_with_supplier(client)
    item = client.post(
        f"/cost-sheets/client/{client_id}/items",
        json={"supplier_id": supplier_id, "qty": 1, "supplier_cost": 40},
    ).get_json()["item"]
    sheet_id = item["cost_sheet_id"]
    client.post(f"/cost-sheets/{sheet_id}/submit")

    login(api_users["admin"])
    resp = client.put(f"/cost-sheets/items/{item['id']}/remarks", json={"remarks": "Check lead time"})
    assert resp.get_json()["item"]["admin_remarks"] == "Check lead time"

    resp = client.put(f"/cost-sheets/items/{item['id']}/quotation", json={"total_cost": "35", "actual_quoted": "45"})
    override = resp.get_json()["item"]["quotation_override"]
    assert override["total_cost"] == "35.00"
    assert override["actual_quoted"] == "45.00"

    resp = client.put(f"/cost-sheets/items/{item['id']}/quotation", json={"chosen": False})
    assert resp.get_json()["item"]["quotation_override"] is None

    resp = client.post(f"/cost-sheets/items/{item['id']}/reject", json={"remarks": "Too slow"})
    assert resp.get_json()["item"]["approval_status"] == "rejected"

    assert client.delete(f"/cost-sheets/{sheet_id}").status_code == 200
    assert client.get(f"/cost-sheets/client/{client_id}").get_json()["sheet"] is None


def test_recalculate_preview(client, api_users, login):
    login(api_users["estimator"])
    resp = client.post("/cost-sheets/recalculate", json={"qty": 2, "supplier_cost": 100, "rea_margin_percentage": 25})
    row = resp.get_json()["row"]
    assert row["total_cost"] == "200.00"
    assert row["actual_quoted"] == "250.00"
    assert row["gross_margin_percentage"] == "20.00"


def test_export_for_unknown_client_is_404(client, api_users, login):
    login(api_users["admin"])
    assert client.get("/approved/999/export.csv").status_code == 404


def test_create_user_cli(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["create-user", "New.Admin@Example.com", "pw123", "--role", "admin"])
    assert result.exit_code == 0
    assert "created with role admin" in result.output

    with app.app_context():
        user = User.query.filter_by(email="new.admin@example.com").one()
        assert user.role == Role.ADMIN
        assert user.check_password("pw123")

    again = runner.invoke(args=["create-user", "new.admin@example.com", "x"])
    assert again.exit_code != 0
    assert "already exists" in again.output
