from app.models import AuditLog, Branch
from tests.conftest import auth_headers, grant, make_branch, make_case


class TestBranchesApi:
    def test_crud_as_master(self, client, db, master_headers):
        resp = client.post("/api/branches", json={"name": "Paranaguá"}, headers=master_headers)
        assert resp.status_code == 200
        branch_id = resp.json()["id"]

        resp = client.put(f"/api/branches/{branch_id}", json={"name": "Paranaguá PR"}, headers=master_headers)
        assert resp.json()["name"] == "Paranaguá PR"

        assert client.delete(f"/api/branches/{branch_id}", headers=master_headers).status_code == 200
        db.expire_all()
        assert db.query(Branch).count() == 0

        actions = [a for (a,) in db.query(AuditLog.action).order_by(AuditLog.id).all()]
        assert actions == ["CRIAR FILIAL", "ATUALIZAR FILIAL", "EXCLUIR FILIAL"]

    def test_list_for_any_user(self, client, db):
        make_branch(db, "Santos")
        body = client.get("/api/branches", headers=auth_headers("a@lma.test")).json()
        assert [b["name"] for b in body] == ["Santos"]

    def test_delete_with_cases(self, client, db, master_headers):
        branch = make_branch(db)
        make_case(db, branch)
        assert client.delete(f"/api/branches/{branch.id}", headers=master_headers).status_code == 409


class TestPermissionsApi:
    def test_default_record_for_self(self, client):
        body = client.get("/api/permissions/novo@lma.test", headers=auth_headers("novo@lma.test")).json()
        assert body == {"email": "novo@lma.test", "modules": ["entry"], "branches": [], "hasPassword": False}

    def test_other_user_forbidden(self, client):
        resp = client.get("/api/permissions/b@lma.test", headers=auth_headers("a@lma.test"))
        assert resp.status_code == 403

    def test_upsert_and_toggle(self, client, db, master_headers):
        resp = client.post("/api/permissions", json={
            "email": "b@lma.test", "modules": ["entry", "launched"], "branches": [1],
        }, headers=master_headers)
        assert resp.json()["modules"] == ["entry", "launched"]

        resp = client.post("/api/permissions/b@lma.test/modules/finance", headers=master_headers)
        assert resp.json()["modules"] == ["entry", "launched", "finance"]

        resp = client.post("/api/permissions/b@lma.test/branches/1", headers=master_headers)
        assert resp.json()["branches"] == []

        actions = [a for (a,) in db.query(AuditLog.action).order_by(AuditLog.id).all()]
        assert actions == ["ADICIONAR USUÁRIO", "ATUALIZAR PERMISSÃO", "ATUALIZAR PERMISSÃO"]

    def test_toggle_unknown_branch(self, client, db, master_headers):
        resp = client.post("/api/permissions/b@lma.test/branches/99", headers=master_headers)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Filial #99 não encontrada"}
        assert db.query(AuditLog).count() == 0

        branch = make_branch(db, "Santos")
        resp = client.post(f"/api/permissions/b@lma.test/branches/{branch.id}", headers=master_headers)
        assert resp.json()["branches"] == [branch.id]

    def test_unknown_flag(self, client, master_headers):
        resp = client.post("/api/permissions/b@lma.test/modules/banana", headers=master_headers)
        assert resp.status_code == 400

    def test_list_and_delete(self, client, db, master_headers):
        grant(db, "b@lma.test", ["entry"], [])
        assert [p["email"] for p in client.get("/api/permissions", headers=master_headers).json()] == ["b@lma.test"]

        assert client.delete("/api/permissions/b@lma.test", headers=master_headers).status_code == 200
        assert client.delete("/api/permissions/b@lma.test", headers=master_headers).status_code == 404


class TestLogsApi:
    def test_post_and_list(self, client, db):
        grant(db, "a@lma.test", ["logs"], [])
        headers = auth_headers("a@lma.test")

        client.post("/api/logs", json={"action": "exportar excel", "details": "itens"}, headers=headers)
        body = client.get("/api/logs", headers=headers).json()

        assert body[0]["action"] == "EXPORTAR EXCEL"
        assert body[0]["userEmail"] == "a@lma.test"
