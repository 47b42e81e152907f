"""
Router: Filiais
Leitura para qualquer usuário logado; escrita só pelo master.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import commit_or_raise, get_db
from app.middleware.authorization import get_current_user, require_master
from app.models import Branch, Case
from app.schemas import BranchCreate
from app.services.audit import log_action
from app.services.exceptions import ConflictError, NotFoundError, ValidationError
from app.services.permissions import EffectivePermission

router = APIRouter(prefix="/api/branches", tags=["branches"])


def branch_to_dict(branch: Branch) -> dict:
    return {
        "id": branch.id,
        "name": branch.name,
        "createdBy": branch.created_by,
        "createdAt": branch.created_at.isoformat() if branch.created_at else None,
    }


def _get_branch(db: Session, branch_id: int) -> Branch:
    branch = db.query(Branch).filter(Branch.id == branch_id).first()
    if not branch:
        raise NotFoundError(f"Filial #{branch_id} não encontrada")
    return branch


@router.get("")
async def list_branches(
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    branches = db.query(Branch).order_by(Branch.name).all()
    return [branch_to_dict(b) for b in branches]


@router.post("")
async def create_branch(
    payload: BranchCreate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    name = payload.name.strip()
    if not name:
        raise ValidationError("Nome da filial é obrigatório")

    branch = Branch(name=name, created_by=perm.email)
    db.add(branch)
    commit_or_raise(db)
    db.refresh(branch)

    log_action(db, perm.email, "CRIAR FILIAL", f"Filial #{branch.id} {name}")
    return branch_to_dict(branch)


@router.put("/{branch_id}")
async def update_branch(
    branch_id: int,
    payload: BranchCreate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    branch = _get_branch(db, branch_id)
    name = payload.name.strip()
    if not name:
        raise ValidationError("Nome da filial é obrigatório")

    branch.name = name
    commit_or_raise(db)
    db.refresh(branch)

    log_action(db, perm.email, "ATUALIZAR FILIAL", f"Filial #{branch.id} → {name}")
    return branch_to_dict(branch)


@router.delete("/{branch_id}")
async def delete_branch(
    branch_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_master()),
):
    branch = _get_branch(db, branch_id)
    if db.query(Case).filter(Case.branch_id == branch_id).count():
        raise ConflictError("Filial possui FDAs vinculados e não pode ser excluída")

    name = branch.name
    db.delete(branch)
    commit_or_raise(db)

    log_action(db, perm.email, "EXCLUIR FILIAL", f"Filial #{branch_id} {name}")
    return {"success": True}
