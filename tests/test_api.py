"""
API tests through FastAPI's TestClient against an in-memory system
"""

import pytest
from urllib.parse import quote

from fastapi.testclient import TestClient

import financialsx.api.dependencies as dependencies
from financialsx.api import create_app
from financialsx.api.dependencies import FinancialsXSystem


COMPANY = "ACME"
PASSWORD = "Secret123"


@pytest.fixture
def api_system(data_dir):
    return FinancialsXSystem(use_sqlite=False, data_path=str(data_dir))


@pytest.fixture
def client(api_system, monkeypatch):
    """Client with authentication switched off"""
    monkeypatch.setattr(dependencies, "system", api_system)
    monkeypatch.setattr(dependencies, "AUTH_ENABLED", False)
    return TestClient(create_app())


@pytest.fixture
def secure_client(api_system, monkeypatch):
    """Client with authentication switched on"""
    monkeypatch.setattr(dependencies, "system", api_system)
    monkeypatch.setattr(dependencies, "AUTH_ENABLED", True)
    return TestClient(create_app())


def login(client, username):
    response = client.post("/auth/login", json={"username": username, "password": PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


class TestGeneral:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert "audits" in client.get("/").json()["endpoints"]


class TestCompanyEndpoints:

    def test_list_companies(self, client):
        data = client.get("/companies").json()
        assert data["total"] == 2
        assert data["companies"][0]["exists"]
        assert not data["companies"][1]["exists"]

    def test_data_path(self, client, data_dir, tmp_path):
        assert client.get("/companies/data-path").json()["data_path"] == str(data_dir)
        response = client.put("/companies/data-path", json={"path": str(tmp_path)})
        assert response.status_code == 400

    def test_company_info_round_trip(self, client):
        assert client.get(f"/companies/{COMPANY}/info").json()["name"] == "Acme Oil & Gas"
        response = client.put(f"/companies/{COMPANY}/info", json={"data": {"phone": "432-555-0199"}})
        assert response.status_code == 200
        assert client.get(f"/companies/{COMPANY}/info").json()["phone"] == "432-555-0199"

    def test_dashboard(self, client):
        data = client.get(f"/companies/{COMPANY}/dashboard").json()
        assert data["status"] == "ready"
        assert data["total_wells"] == 4

    def test_unknown_company(self, client):
        assert client.get("/companies/NOPE/dashboard").status_code == 400


class TestDBFEndpoints:
    """Raw table browsing, editing and export"""

    def test_files(self, client):
        files = client.get(f"/dbf/{COMPANY}/files").json()["files"]
        assert "CHECKS.DBF" in files

    def test_table_data_paging(self, client):
        data = client.get(f"/dbf/{COMPANY}/tables/checks", params={"limit": 3, "offset": 1}).json()
        assert data["row_indices"] == [1, 2, 3]
        assert data["stats"]["deleted_records"] == 1
        assert data["stats"]["has_more_records"]

    def test_table_in_subfolder(self, client):
        data = client.get(f"/dbf/{COMPANY}/tables/ownerstatements/dist2024").json()
        assert data["stats"]["active_records"] == 3

    def test_negative_offset_rejected(self, client):
        assert client.get(f"/dbf/{COMPANY}/tables/checks", params={"offset": -1}).status_code == 422

    def test_missing_table(self, client):
        assert client.get(f"/dbf/{COMPANY}/tables/nosuch").status_code == 404

    def test_update_cell(self, client):
        response = client.put(f"/dbf/{COMPANY}/tables/vendor",
                              json={"row_index": 1, "column_index": 3, "value": "555-0333"})
        assert response.status_code == 200
        assert response.json()["column"] == "CPHONE"

        rows = client.get(f"/dbf/{COMPANY}/tables/vendor").json()["rows"]
        assert rows[1][3] == "555-0333"

    def test_update_out_of_range(self, client):
        response = client.put(f"/dbf/{COMPANY}/tables/vendor",
                              json={"row_index": 9, "column_index": 0, "value": "x"})
        assert response.status_code == 400

    def test_export_csv(self, client):
        response = client.get(f"/dbf/{COMPANY}/export/checks")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="CHECKS.csv"' in response.headers["content-disposition"]
        assert response.text.splitlines()[0].startswith("CCHECKNO")


class TestDomainEndpoints:

    def test_vendors(self, client):
        data = client.get(f"/vendors/{COMPANY}").json()
        assert [v["vendor_id"] for v in data["vendors"]] == ["V001", "V003"]

    def test_update_vendor(self, client):
        response = client.put(f"/vendors/{COMPANY}/0", json={"data": {"CPHONE": "555-0101"}})
        assert response.status_code == 200

    def test_wells_by_status(self, client):
        data = client.get(f"/wells/{COMPANY}", params={"status": "Active"}).json()
        assert data["total"] == 2

    def test_bank_balance(self, client):
        data = client.get(f"/banking/{COMPANY}/accounts/1000/balance").json()
        assert data["balance"] == 8224.75
        assert data["formatted"] == "$8,224.75"

    def test_outstanding_checks(self, client):
        data = client.get(f"/banking/{COMPANY}/outstanding-checks", params={"account_number": "1000"}).json()
        assert data["total"] == 3

    def test_chart_of_accounts(self, client):
        data = client.get(f"/gl/{COMPANY}/chart-of-accounts", params={"include_inactive": True}).json()
        assert data["total"] == 6

    def test_gl_validate(self, client):
        assert client.get(f"/gl/{COMPANY}/validate").json()["duplicate_count"] == 1

    def test_audit_endpoint(self, client):
        data = client.get(f"/audits/{COMPANY}/check-gl-matching",
                          params={"start_date": "2024-02-01", "end_date": "2024-02-28"}).json()
        assert data["success"]
        assert data["summary"]["unmatched_checks"] == 1

    def test_follow_batch(self, client):
        data = client.get(f"/operations/{COMPANY}/batches/B002").json()
        assert data["total_records"] == 7


class TestBankingStateEndpoints:
    """Cached balances and reconciliation drafts kept in application storage"""

    DRAFT = {
        "statement_date": "2024-02-29",
        "statement_balance": 9550.00,
        "statement_credits": 1000.00,
        "statement_debits": 450.50,
        "beginning_balance": 9000.50,
        "selected_checks": [{"cidchec": "CID1", "check_number": "1001", "amount": 500.00,
                             "payee": "Acme Supply", "check_date": "2024-01-15", "row_index": 0}],
    }

    def test_cached_balances(self, client):
        assert client.get(f"/banking/{COMPANY}/cached-balances").json()["total"] == 0

        refreshed = client.post(f"/banking/{COMPANY}/cached-balances/refresh").json()
        assert refreshed["total"] == 2

        balances = client.get(f"/banking/{COMPANY}/cached-balances").json()["balances"]
        assert balances[0]["account_number"] == "1000"
        assert balances[0]["bank_balance"] == 9850.50
        assert balances[0]["gl_freshness"] == "fresh"

    def test_refresh_one_account_and_history(self, client):
        data = client.post(f"/banking/{COMPANY}/accounts/1000/refresh-balance").json()
        assert data["uncleared_checks"] == 1625.75
        client.post(f"/banking/{COMPANY}/accounts/1000/refresh-balance")

        history = client.get(f"/banking/{COMPANY}/accounts/1000/balance-history",
                             params={"limit": 1}).json()
        assert history["total"] == 1
        assert history["history"][0]["old_bank_balance"] == 9850.50

    def test_refresh_unknown_account(self, client):
        assert client.post(f"/banking/{COMPANY}/accounts/8888/refresh-balance").status_code == 400

    def test_reconciliation_workflow(self, client):
        base = f"/banking/{COMPANY}/reconciliation/1000"
        assert client.get(f"{base}/draft").json() == {"draft": None}

        saved = client.put(f"{base}/draft", json=self.DRAFT).json()
        assert saved["status"] == "draft"
        assert saved["ending_balance"] == 9550.00
        assert saved["difference"] == 0
        assert saved["cleared_total"] == 500.00
        assert client.get(f"{base}/draft").json()["draft"]["id"] == saved["id"]

        committed = client.post(f"{base}/commit").json()
        assert committed["status"] == "committed"
        assert client.get(f"{base}/draft").json()["draft"] is None

        history = client.get(f"{base}/history").json()
        assert history["total"] == 1
        assert client.get(f"{base}/last").json()["reconciliation"]["statement_date"] == "2024-02-29"

    def test_delete_draft(self, client):
        base = f"/banking/{COMPANY}/reconciliation/1000"
        client.put(f"{base}/draft", json=self.DRAFT)
        assert client.delete(f"{base}/draft").json() == {"deleted": True}
        assert client.delete(f"{base}/draft").json() == {"deleted": False}

    def test_reconciliation_errors(self, client):
        base = f"/banking/{COMPANY}/reconciliation/1000"
        assert client.post(f"{base}/commit").status_code == 400
        bad_date = dict(self.DRAFT, statement_date="02/29/2024")
        assert client.put(f"{base}/draft", json=bad_date).status_code == 400
        assert client.put(f"{base}/draft", json={}).status_code == 422

    def test_readonly_cannot_write_reconciliation(self, secure_client):
        secure_client.post("/auth/register", json={"username": "root", "password": PASSWORD})
        secure_client.post("/auth/register", json={"username": "viewer", "password": PASSWORD})
        root_headers = login(secure_client, "root")
        viewer_headers = login(secure_client, "viewer")
        base = f"/banking/{COMPANY}/reconciliation/1000"

        assert secure_client.put(f"{base}/draft", json=self.DRAFT,
                                 headers=viewer_headers).status_code == 403
        assert secure_client.put(f"{base}/draft", json=self.DRAFT,
                                 headers=root_headers).status_code == 200
        draft = secure_client.get(f"{base}/draft", headers=viewer_headers).json()["draft"]
        assert draft["created_by"] is not None
        assert secure_client.post(f"{base}/commit", headers=viewer_headers).status_code == 403


class TestReportEndpoints:
    """PDF generation and download"""

    def test_generate_and_download(self, client, report_dir):
        created = client.post(f"/reports/{COMPANY}/chart-of-accounts", json={}).json()
        assert created["success"]

        response = client.get(f"/reports/download/{quote(created['file_name'])}")
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

    def test_download_rejects_other_files(self, client, report_dir):
        assert client.get("/reports/download/notes.txt").status_code == 400
        assert client.get("/reports/download/missing.pdf").status_code == 404

    def test_owners(self, client):
        data = client.get(f"/reports/{COMPANY}/owner-statements/DIST2024.dbf/owners").json()
        assert [o["name"] for o in data["owners"]] == ["Bob Mineral", "Jane Royalty"]


class TestVFPEndpoints:

    def test_settings_validation(self, client):
        response = client.put("/vfp/settings", json={"host": "localhost", "port": 0, "enabled": True})
        assert response.status_code == 400

    def test_launch_when_disabled(self, client):
        response = client.post("/vfp/launch", json={"form_name": "Vendor"})
        assert response.status_code == 400
        assert "disabled" in response.json()["detail"]

    def test_forms(self, client):
        assert len(client.get("/vfp/forms").json()["forms"]) == 10


class TestAuthentication:
    """Endpoints with authentication switched on"""

    def test_me_without_auth(self, client):
        assert client.get("/auth/me").json() == {"user": None, "permissions": [], "auth_enabled": False}

    def test_token_required(self, secure_client):
        response = secure_client.get(f"/dbf/{COMPANY}/files")
        assert response.status_code == 401

    def test_root_and_readonly_permissions(self, secure_client):
        root = secure_client.post("/auth/register", json={"username": "root", "password": PASSWORD})
        assert root.status_code == 201
        assert root.json()["user"]["is_root"]
        viewer = secure_client.post("/auth/register", json={"username": "viewer", "password": PASSWORD})
        assert not viewer.json()["user"]["is_root"]

        root_headers = login(secure_client, "root")
        viewer_headers = login(secure_client, "viewer")

        me = secure_client.get("/auth/me", headers=viewer_headers).json()
        assert me["user"]["username"] == "viewer"
        assert "dbf.write" not in me["permissions"]

        assert secure_client.get(f"/dbf/{COMPANY}/files", headers=viewer_headers).status_code == 200
        update = {"row_index": 0, "column_index": 3, "value": "x"}
        assert secure_client.put(f"/dbf/{COMPANY}/tables/vendor", json=update,
                                 headers=viewer_headers).status_code == 403
        assert secure_client.get("/admin/users", headers=viewer_headers).status_code == 200
        assert secure_client.post("/admin/users", headers=viewer_headers, json={
            "username": "x", "password": PASSWORD, "role_id": 3}).status_code == 403

        users = secure_client.get("/admin/users", headers=root_headers).json()
        assert users["total"] == 2

    def test_logout(self, secure_client):
        secure_client.post("/auth/register", json={"username": "root", "password": PASSWORD})
        headers = login(secure_client, "root")
        assert secure_client.post("/auth/logout", headers=headers).json() == {"success": True}
        assert secure_client.get("/auth/me", headers=headers).status_code == 401

    def test_bad_login(self, secure_client):
        secure_client.post("/auth/register", json={"username": "root", "password": PASSWORD})
        response = secure_client.post("/auth/login", json={"username": "root", "password": "Wrong1234"})
        assert response.status_code == 401

    def test_weak_password_registration(self, secure_client):
        response = secure_client.post("/auth/register", json={"username": "root", "password": "weak"})
        assert response.status_code == 400

    def test_audit_trail_endpoints(self, secure_client):
        secure_client.post("/auth/register", json={"username": "root", "password": PASSWORD})
        headers = login(secure_client, "root")

        events = secure_client.get("/admin/audit/events", headers=headers).json()
        assert events["events"][0]["event_type"] == "login_success"
        assert events["total"] == 2
        assert secure_client.get("/admin/audit/verify", headers=headers).json()["valid"]
        assert secure_client.get("/admin/audit/events", params={"limit": 0},
                                 headers=headers).status_code == 400
