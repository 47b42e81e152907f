"""
Cliente Python da API: LMA Finanças
app/client.py

Para scripts e integrações:

    client = LedgerClient("https://financas.exemplo.com.br")
    client.login("usuario@shipstore.com.br", "senha")
    ref = client.upload_file("nf.pdf", pdf_bytes, "application/pdf")
    client.create_item(case_id=3, fields={...}, invoice_attachments=[ref])

Atualização da lista de itens:
    PollingChangeSource consulta a API em intervalo fixo e repassa o
    resultado a um EntityCache. Outra implementação de ChangeSource
    (ex.: push por websocket) pode substituí-la sem mudar o formato dos itens.
"""

import base64
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

import httpx

from app.config import BRT, CHUNK_SIZE, POLL_INTERVAL
from app.services.exceptions import (
    AuthError,
    ConflictError,
    ForbiddenError,
    LedgerError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.services.file_store import split_content
from app.utils.formatters import format_file_size

logger = logging.getLogger(__name__)

ERROR_BY_STATUS = {
    400: ValidationError,
    401: AuthError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
}


def make_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(data_url: str) -> bytes:
    """'data:application/pdf;base64,JVBER...' → bytes do arquivo."""
    if not data_url.startswith("data:") or "," not in data_url:
        raise ValidationError("Data URL inválida")
    header, payload = data_url.split(",", 1)
    if not header.endswith(";base64"):
        raise ValidationError("Data URL sem codificação base64")
    return base64.b64decode(payload)


class LedgerClient:

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.token = token
        self._http = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── HTTP ─────────────────────────────────────────────────
    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise StorageError(f"Timeout conectando à API: {e}") from e
        except httpx.RequestError as e:
            raise StorageError(f"Erro de conexão: {e}") from e

        if response.is_success:
            return response.json()

        try:
            message = response.json().get("error") or response.text
        except ValueError:
            message = response.text[:500]
        error_cls = ERROR_BY_STATUS.get(response.status_code, LedgerError)
        if error_cls is LedgerError and response.status_code >= 500:
            error_cls = StorageError
        raise error_cls(message)

    # ── Autenticação ─────────────────────────────────────────
    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data["user"]

    # ── Itens ────────────────────────────────────────────────
    def list_items(self, status: Optional[str] = None, q: Optional[str] = None,
                   case_id: Optional[int] = None) -> List[dict]:
        params = {k: v for k, v in (("status", status), ("q", q), ("caseId", case_id)) if v}
        return self._request("GET", "/api/items", params=params)

    def create_item(self, case_id: int, fields: dict,
                    invoice_attachments: Iterable[dict] = (),
                    boleto_attachments: Iterable[dict] = ()) -> dict:
        return self._request("POST", "/api/items", json={
            "caseId": case_id,
            "fields": fields,
            "invoiceAttachments": list(invoice_attachments),
            "boletoAttachments": list(boleto_attachments),
        })

    def advance_item(self, item_id: int, target_status: str) -> dict:
        return self._request("POST", f"/api/items/{item_id}/advance", json={"targetStatus": target_status})

    def bulk_approve(self, item_ids: Iterable[int]) -> dict:
        return self._request("POST", "/api/items/bulk-approve", json={"itemIds": list(item_ids)})

    # ── Arquivos ─────────────────────────────────────────────
    def upload_file(self, name: str, data: bytes, mime_type: str, chunk_size: int = CHUNK_SIZE) -> dict:
        """
        Envia o arquivo em pedaços, estritamente em sequência.

        Returns:
            Referência de anexo: {name, fileId, sizeLabel, capturedAt}
        """
        data_url = make_data_url(data, mime_type)
        created = self._request("POST", "/api/files", json={
            "name": name, "size": len(data), "type": mime_type,
        })
        file_id = created["id"]

        # Um pedaço por vez: o servidor só aceita o índice seguinte
        pieces = split_content(data_url, chunk_size)
        for index, piece in enumerate(pieces):
            self._request("POST", f"/api/files/{file_id}/chunks", json={"index": index, "content": piece})

        logger.info(f"Arquivo {name} enviado como #{file_id} ({len(pieces)} pedaço(s))")
        return {
            "name": name,
            "fileId": file_id,
            "sizeLabel": format_file_size(len(data)),
            "capturedAt": datetime.now(BRT).isoformat(),
        }

    def download_file(self, file_id: int) -> str:
        """Conteúdo remontado (data URL)."""
        return self._request("GET", f"/api/files/{file_id}")["content"]


# ══════════════════════════════════════════════════════════
# CACHE + ATUALIZAÇÃO
# ══════════════════════════════════════════════════════════

class EntityCache:
    """Entidades por id. Thread-safe: o polling escreve, a UI lê."""

    def __init__(self, key: str = "id"):
        self.key = key
        self._data: Dict[Any, dict] = {}
        self._lock = threading.Lock()
        self.stale = True

    def replace_all(self, entities: Iterable[dict]):
        with self._lock:
            self._data = {e[self.key]: e for e in entities}
            self.stale = False

    def invalidate(self):
        with self._lock:
            self.stale = True

    def get(self, entity_id) -> Optional[dict]:
        with self._lock:
            return self._data.get(entity_id)

    def values(self) -> List[dict]:
        with self._lock:
            return list(self._data.values())

    def __len__(self):
        with self._lock:
            return len(self._data)


class ChangeSource(Protocol):
    def subscribe(self, callback: Callable[[List[dict]], None]) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def invalidate(self) -> None: ...


class PollingChangeSource:
    """Consulta `fetch` a cada `interval` segundos em uma thread de fundo."""

    def __init__(self, fetch: Callable[[], List[dict]], cache: Optional[EntityCache] = None,
                 interval: float = POLL_INTERVAL):
        self.fetch = fetch
        self.cache = cache or EntityCache()
        self.interval = interval
        self._callbacks: List[Callable[[List[dict]], None]] = []
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def subscribe(self, callback: Callable[[List[dict]], None]):
        self._callbacks.append(callback)

    def refresh(self) -> List[dict]:
        """Busca agora e notifica os inscritos."""
        entities = self.fetch()
        self.cache.replace_all(entities)
        for callback in self._callbacks:
            callback(entities)
        return entities

    def invalidate(self):
        """Após uma escrita: marca o cache e antecipa a próxima consulta."""
        self.cache.invalidate()
        self._wake.set()

    def _run(self):
        while not self._stopped.is_set():
            # Limpa antes de buscar: invalidate() durante a busca gera nova rodada
            self._wake.clear()
            try:
                self.refresh()
            except LedgerError as e:
                logger.warning(f"Atualização falhou, nova tentativa em {self.interval}s: {e}")
            except Exception:
                logger.exception("Erro inesperado na atualização; a consulta continua")
            self._wake.wait(self.interval)

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="ledger-polling", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0):
        self._stopped.set()
        self._wake.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
