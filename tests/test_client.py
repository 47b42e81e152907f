import base64
import json
import threading

import httpx
import pytest

from app.client import EntityCache, LedgerClient, PollingChangeSource, decode_data_url, make_data_url
from app.services.exceptions import AuthError, ConflictError, StorageError, ValidationError


class FakeServer:
    """Guarda arquivos e pedaços como a API faria."""

    def __init__(self):
        self.files = {}
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path, request.headers.get("Authorization")))
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path == "/api/auth/login":
            if body["password"] != "certa":
                return httpx.Response(401, json={"error": "Senha incorreta"})
            return httpx.Response(200, json={"token": "tok", "user": {"email": body["email"], "modules": ["entry"]}})

        if path == "/api/files" and request.method == "POST":
            file_id = len(self.files) + 1
            self.files[file_id] = []
            return httpx.Response(200, json={"id": file_id})

        if path.endswith("/chunks") and request.method == "POST":
            file_id = int(path.split("/")[3])
            chunks = self.files[file_id]
            if body["index"] != len(chunks):
                return httpx.Response(400, json={"error": "Pedaço fora de ordem"})
            chunks.append(body["content"])
            return httpx.Response(200, json={"fileId": file_id, "index": body["index"]})

        if path.startswith("/api/files/") and request.method == "GET":
            file_id = int(path.split("/")[3])
            return httpx.Response(200, json={"id": file_id, "content": "".join(self.files[file_id])})

        if path == "/api/items/bulk-approve":
            return httpx.Response(409, json={"error": "Item #2 em 'pending'"})

        return httpx.Response(500, text="boom")


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def ledger(server):
    client = LedgerClient("http://lma.test", transport=httpx.MockTransport(server))
    yield client
    client.close()


class TestLedgerClient:
    def test_login_sets_token(self, ledger, server):
        user = ledger.login("a@lma.test", "certa")
        assert user["email"] == "a@lma.test"

        server.files[1] = ["x"]
        ledger.download_file(1)
        assert server.calls[-1][2] == "Bearer tok"

    def test_login_failure(self, ledger):
        with pytest.raises(AuthError, match="Senha incorreta"):
            ledger.login("a@lma.test", "errada")

    def test_upload_sequential_chunks(self, ledger, server):
        data = b"%PDF-1.4 " * 100
        ref = ledger.upload_file("nf.pdf", data, "application/pdf", chunk_size=64)

        assert ref["fileId"] == 1
        assert ref["sizeLabel"] == "900 Bytes"
        assert ref["capturedAt"]

        chunk_calls = [c for c in server.calls if c[1].endswith("/chunks")]
        expected = len(make_data_url(data, "application/pdf")) // 64 + 1
        assert len(chunk_calls) == expected

        content = ledger.download_file(ref["fileId"])
        assert decode_data_url(content) == data

    def test_error_mapping(self, ledger):
        with pytest.raises(ConflictError, match="Item #2"):
            ledger.bulk_approve([1, 2])
        with pytest.raises(StorageError):
            ledger.list_items()

    def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("recusado")

        client = LedgerClient("http://lma.test", transport=httpx.MockTransport(refuse))
        with pytest.raises(StorageError, match="conexão"):
            client.list_items()


class TestDataUrl:
    def test_decode(self):
        url = "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()
        assert decode_data_url(url) == b"\x89PNG"

    def test_invalid(self):
        with pytest.raises(ValidationError):
            decode_data_url("nao-e-data-url")
        with pytest.raises(ValidationError):
            decode_data_url("data:text/plain,abc")


class TestEntityCache:
    def test_replace_get_values(self):
        cache = EntityCache()
        assert cache.stale

        cache.replace_all([{"id": 1, "status": "pending"}, {"id": 2, "status": "paid"}])

        assert not cache.stale
        assert cache.get(2)["status"] == "paid"
        assert len(cache.values()) == 2

        cache.replace_all([{"id": 3}])
        assert cache.get(1) is None
        assert len(cache) == 1

    def test_invalidate(self):
        cache = EntityCache()
        cache.replace_all([{"id": 1}])
        cache.invalidate()
        assert cache.stale
        assert cache.get(1) == {"id": 1}


class TestPollingChangeSource:
    def test_refresh_notifies(self):
        received = []
        source = PollingChangeSource(lambda: [{"id": 1}], interval=60)
        source.subscribe(received.append)

        source.refresh()

        assert received == [[{"id": 1}]]
        assert source.cache.get(1) == {"id": 1}

    def test_invalidate_wakes_thread(self):
        first = threading.Event()
        fetched = threading.Event()
        calls = []

        def fetch():
            calls.append(1)
            first.set()
            if len(calls) >= 2:
                fetched.set()
            return [{"id": len(calls)}]

        source = PollingChangeSource(fetch, interval=3600)
        source.start()
        try:
            assert first.wait(5)
            source.invalidate()
            assert fetched.wait(5)
        finally:
            source.stop()

        assert len(calls) >= 2
        assert source.cache.get(len(calls)) is not None

    def test_callback_error_keeps_thread_alive(self, caplog):
        first = threading.Event()
        fetched = threading.Event()
        calls = []

        def fetch():
            calls.append(1)
            first.set()
            if len(calls) >= 2:
                fetched.set()
            return [{"id": len(calls)}]

        def broken(entities):
            if len(calls) == 1:
                raise KeyError("id")

        source = PollingChangeSource(fetch, interval=3600)
        source.subscribe(broken)
        with caplog.at_level("ERROR", logger="app.client"):
            source.start()
            try:
                assert first.wait(5)
                source.invalidate()
                assert fetched.wait(5)
            finally:
                source.stop()

        assert "Erro inesperado" in caplog.text

    def test_invalidate_during_fetch_not_lost(self):
        fetched = threading.Event()
        calls = []
        source = None

        def fetch():
            calls.append(1)
            if len(calls) == 1:
                # escrita concorrente enquanto a busca está em andamento
                source.invalidate()
            else:
                fetched.set()
            return []

        source = PollingChangeSource(fetch, interval=3600)
        source.start()
        try:
            assert fetched.wait(5)
        finally:
            source.stop()

        assert len(calls) >= 2
