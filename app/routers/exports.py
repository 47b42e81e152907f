"""
Router: Exportações (CSV / JSON / Excel)
Respeita o filtro por filial do usuário.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.config import BRT
from app.database import get_db
from app.middleware.authorization import get_current_user, require_module
from app.models import Item, ItemStatus, PermissionFlag
from app.routers.items import item_to_dict
from app.services import export
from app.services.audit import log_to_dict, recent_logs
from app.services.permissions import EffectivePermission, visible_items

router = APIRouter(prefix="/api/exports", tags=["exports"])


def _stream(content, media_type: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/items")
async def export_items(
    format: str = "csv",
    status: Optional[ItemStatus] = None,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    export.check_format(format)
    query = visible_items(db, perm)
    if status:
        query = query.filter(Item.status == status.value)

    rows = [export.item_row(item_to_dict(i)) for i in query.order_by(Item.id).all()]
    content, media_type, ext = export.render(rows, export.ITEM_COLUMNS, format, "Itens")

    stamp = datetime.now(BRT).strftime("%Y%m%d_%H%M")
    return _stream(content, media_type, f"Itens_{stamp}.{ext}")


@router.get("/logs")
async def export_logs(
    format: str = "csv",
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.LOGS)),
):
    export.check_format(format)
    rows = [log_to_dict(entry) for entry in recent_logs(db)]
    content, media_type, ext = export.render(rows, export.LOG_COLUMNS, format, "Logs")

    stamp = datetime.now(BRT).strftime("%Y%m%d_%H%M")
    return _stream(content, media_type, f"Logs_{stamp}.{ext}")
