"""
Router: Permissões de usuários
Cada gravação substitui o conjunto inteiro de módulos e filiais.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.middleware.authorization import get_current_user, require_master
from app.models import PermissionFlag, UserPermission
from app.schemas import PermissionUpsert
from app.services import permissions as perm_service
from app.services.audit import log_action
from app.services.exceptions import ForbiddenError
from app.services.permissions import EffectivePermission, normalize_email, record_to_dict

router = APIRouter(prefix="/api/permissions", tags=["permissions"])


@router.get("")
async def list_permissions(
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    records = db.query(UserPermission).order_by(UserPermission.email).all()
    return [record_to_dict(r) for r in records]


@router.get("/{email}")
async def get_user_permission(
    email: str,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    email = normalize_email(email)
    if email != perm.email and not perm.is_master:
        raise ForbiddenError("Sem acesso às permissões de outro usuário")
    return record_to_dict(perm_service.get_record(db, email), email)


@router.post("")
async def upsert_permission(
    payload: PermissionUpsert,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    existed = perm_service.get_record(db, payload.email) is not None
    record = perm_service.save_permission(db, payload.email, payload.modules, payload.branches)

    action = "ATUALIZAR PERMISSÃO" if existed else "ADICIONAR USUÁRIO"
    log_action(db, perm.email, action, f"{record.email}: {record.modules} / filiais {record.branches}")
    return record_to_dict(record)


@router.post("/{email}/modules/{flag}")
async def toggle_module(
    email: str,
    flag: PermissionFlag,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    record = perm_service.toggle_module(db, email, flag)
    log_action(db, perm.email, "ATUALIZAR PERMISSÃO", f"{record.email}: módulo {flag.value}")
    return record_to_dict(record)


@router.post("/{email}/branches/{branch_id}")
async def toggle_branch(
    email: str,
    branch_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    record = perm_service.toggle_branch(db, email, branch_id)
    log_action(db, perm.email, "ATUALIZAR PERMISSÃO", f"{record.email}: filial #{branch_id}")
    return record_to_dict(record)


@router.delete("/{email}")
async def delete_user(
    email: str,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    perm_service.delete_permission(db, email)
    log_action(db, perm.email, "REMOVER USUÁRIO", normalize_email(email))
    return {"success": True}
