"""
Router: FDAs (atendimentos)
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import BRT
from app.database import commit_or_raise, get_db
from app.middleware.authorization import get_current_user, require_module
from app.models import Branch, Case, Item, PermissionFlag
from app.schemas import CaseCreate, CaseUpdate
from app.services.audit import log_action
from app.services.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.services.permissions import EffectivePermission, visible_cases

router = APIRouter(prefix="/api/cases", tags=["cases"])


def case_to_dict(case: Case, item_count: int = None) -> dict:
    return {
        "id": case.id,
        "number": case.number,
        "branchId": case.branch_id,
        "branchName": case.branch.name if case.branch else None,
        "isOpen": bool(case.is_open),
        "createdAt": case.created_at.isoformat() if case.created_at else None,
        "itemCount": item_count if item_count is not None else len(case.items),
    }


def next_case_number(db: Session) -> str:
    """FDA-{ano}-{n:03d}, n = total de FDAs + 1."""
    total = db.query(func.count(Case.id)).scalar() or 0
    return f"FDA-{datetime.now(BRT).year}-{total + 1:03d}"


def get_visible_case(db: Session, perm: EffectivePermission, case_id: int) -> Case:
    case = visible_cases(db, perm).filter(Case.id == case_id).first()
    if not case:
        raise NotFoundError(f"FDA #{case_id} não encontrado")
    return case


@router.get("")
async def list_cases(
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    counts = dict(
        db.query(Item.case_id, func.count(Item.id)).group_by(Item.case_id).all()
    )
    cases = visible_cases(db, perm).order_by(Case.created_at.desc(), Case.id.desc()).all()
    return [case_to_dict(c, counts.get(c.id, 0)) for c in cases]


@router.post("")
async def create_case(
    payload: CaseCreate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.ENTRY)),
):
    branch = db.query(Branch).filter(Branch.id == payload.branch_id).first()
    if not branch:
        raise NotFoundError(f"Filial #{payload.branch_id} não encontrada")
    if not perm.can_access_branch(branch.id):
        raise ForbiddenError(f"Sem acesso à filial {branch.name}")

    number = (payload.number or "").strip().upper() or next_case_number(db)

    case = Case(number=number, branch_id=branch.id, is_open=True)
    db.add(case)
    commit_or_raise(db)
    db.refresh(case)

    log_action(db, perm.email, "CRIAR FDA", f"{case.number} (filial {branch.name})")
    return case_to_dict(case, 0)


@router.put("/{case_id}")
async def update_case(
    case_id: int,
    payload: CaseUpdate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.ENTRY)),
):
    case = get_visible_case(db, perm, case_id)

    # Campos ausentes mantêm o valor atual
    if payload.number is not None:
        number = payload.number.strip().upper()
        if not number:
            raise ValidationError("Número do FDA não pode ser vazio")
        case.number = number
    if payload.is_open is not None:
        case.is_open = payload.is_open

    commit_or_raise(db)
    db.refresh(case)

    log_action(db, perm.email, "ATUALIZAR FDA", f"{case.number} (aberto={case.is_open})")
    return case_to_dict(case)


@router.delete("/{case_id}")
async def delete_case(
    case_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.ENTRY)),
):
    case = get_visible_case(db, perm, case_id)
    if db.query(Item).filter(Item.case_id == case.id).count():
        raise ConflictError(f"{case.number} possui itens lançados e não pode ser excluído")

    number = case.number
    db.delete(case)
    commit_or_raise(db)

    log_action(db, perm.email, "EXCLUIR FDA", number)
    return {"success": True}
