"""
Router: Logs de auditoria
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.authorization import get_current_user, require_module
from app.models import PermissionFlag
from app.schemas import LogCreate
from app.services.audit import log_action, log_to_dict, recent_logs
from app.services.exceptions import ValidationError
from app.services.permissions import EffectivePermission

router = APIRouter(prefix="/api/logs", tags=["logs"])


@router.get("")
async def list_logs(
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.LOGS)),
):
    return [log_to_dict(entry) for entry in recent_logs(db)]


@router.post("")
async def create_log(
    payload: LogCreate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    if not payload.action.strip():
        raise ValidationError("Ação é obrigatória")
    saved = log_action(db, perm.email, payload.action.strip(), payload.details)
    return {"success": saved}
