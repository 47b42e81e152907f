from app.models import AuditLog
from tests.conftest import auth_headers

USER = "a@lma.test"


def create_file(client, headers, size=12, mime="application/pdf"):
    return client.post("/api/files", json={"name": "nf.pdf", "size": size, "type": mime}, headers=headers)


class TestFilesApi:
    def test_upload_and_download(self, client, db):
        headers = auth_headers(USER)
        resp = create_file(client, headers)
        assert resp.status_code == 200
        file_id = resp.json()["id"]

        for index, piece in enumerate(["data:application/pdf;base64,", "JVBERi0x", "LjQK"]):
            resp = client.post(f"/api/files/{file_id}/chunks", json={"index": index, "content": piece}, headers=headers)
            assert resp.status_code == 200

        chunks = client.get(f"/api/files/{file_id}/chunks", headers=headers).json()
        assert [c["index"] for c in chunks] == [0, 1, 2]

        body = client.get(f"/api/files/{file_id}", headers=headers).json()
        assert body["content"] == "data:application/pdf;base64,JVBERi0xLjQK"
        assert body["type"] == "application/pdf"
        assert db.query(AuditLog).filter(AuditLog.action == "DOWNLOAD ANEXO").count() == 1

    def test_out_of_order_chunk(self, client):
        headers = auth_headers(USER)
        file_id = create_file(client, headers).json()["id"]
        resp = client.post(f"/api/files/{file_id}/chunks", json={"index": 1, "content": "x"}, headers=headers)
        assert resp.status_code == 400

    def test_disallowed_type(self, client):
        resp = create_file(client, auth_headers(USER), mime="text/html")
        assert resp.status_code == 400
        assert "não permitido" in resp.json()["error"]

    def test_partial_upload_not_found(self, client):
        headers = auth_headers(USER)
        file_id = create_file(client, headers).json()["id"]
        resp = client.get(f"/api/files/{file_id}", headers=headers)
        assert resp.status_code == 404

    def test_unknown_file(self, client):
        assert client.get("/api/files/999/chunks", headers=auth_headers(USER)).status_code == 404
