"""
Router: Arquivos (anexos em pedaços base64)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.authorization import get_current_user
from app.schemas import ChunkCreate, FileCreate
from app.services.audit import log_action
from app.services.file_store import ChunkedFileStore
from app.services.permissions import EffectivePermission
from app.utils.formatters import format_file_size

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("")
async def create_file(
    payload: FileCreate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    stored = ChunkedFileStore(db).create_file(payload.name, payload.size, payload.type)
    return {"id": stored.id, "sizeLabel": format_file_size(stored.size)}


@router.post("/{file_id}/chunks")
async def append_chunk(
    file_id: int,
    payload: ChunkCreate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    chunk = ChunkedFileStore(db).append_chunk(file_id, payload.index, payload.content)
    return {"fileId": file_id, "index": chunk.index}


@router.get("/{file_id}/chunks")
async def list_chunks(
    file_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    store = ChunkedFileStore(db)
    store.get_file(file_id)
    return [{"index": c.index, "content": c.content} for c in store.list_chunks(file_id)]


@router.get("/{file_id}")
async def download_file(
    file_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    store = ChunkedFileStore(db)
    stored = store.get_file(file_id)
    content = store.reconstruct(file_id)

    log_action(db, perm.email, "DOWNLOAD ANEXO", f"#{stored.id} {stored.name}")
    return {
        "id": stored.id,
        "name": stored.name,
        "size": stored.size,
        "type": stored.mime_type,
        "content": content,
    }
