"""
Router: Itens (lançamentos do contas a pagar)
=============================================
- CRUD dos lançamentos de um FDA
- Recalculo ao vivo dos impostos (tax_engine)
- Pipeline: avançar / estornar / aprovação em lote
- Comprovantes de pagamento
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import commit_or_raise, get_db
from app.middleware.authorization import get_current_user, require_module
from app.models import Case, Item, ItemStatus, PermissionFlag
from app.schemas import (
    AdvanceRequest,
    BulkApproveRequest,
    ItemCreate,
    ItemFields,
    ItemUpdate,
    ReceiptRequest,
    RecomputeRequest,
    StatusDates,
    attachments_to_json,
)
from app.services import approval
from app.services.audit import log_action
from app.services.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.services.permissions import EffectivePermission, visible_cases, visible_items
from app.services.tax_engine import derive, recompute

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/items", tags=["items"])

# Aba do Contas a Pagar responsável por cada etapa
TAB_FOR_STATUS = {
    ItemStatus.PENDING: PermissionFlag.FINANCE_PENDING,
    ItemStatus.PROVISIONED: PermissionFlag.FINANCE_PROVISION,
    ItemStatus.APPROVED: PermissionFlag.FINANCE_APPROVED,
    ItemStatus.PAID: PermissionFlag.FINANCE_PAID,
}


# ============================================================
# HELPERS
# ============================================================
def item_to_dict(item: Item) -> dict:
    case = item.case
    return {
        "id": item.id,
        "caseId": item.case_id,
        "caseNumber": case.number if case else None,
        "branchId": case.branch_id if case else None,
        "status": item.status,
        "fields": ItemFields.model_validate(item.data or {}).to_json(),
        "invoiceAttachments": item.invoice_attachments or [],
        "boletoAttachments": item.boleto_attachments or [],
        "receiptAttachments": item.receipt_attachments or [],
        "createdAt": item.created_at.isoformat() if item.created_at else None,
        "updatedAt": item.updated_at.isoformat() if item.updated_at else None,
    }


def get_visible_item(db: Session, perm: EffectivePermission, item_id: int) -> Item:
    item = visible_items(db, perm).filter(Item.id == item_id).first()
    if not item:
        raise NotFoundError(f"Item #{item_id} não encontrado")
    return item


def require_tab_for(perm: EffectivePermission, item: Item):
    tab = TAB_FOR_STATUS[ItemStatus(item.status)]
    if not perm.has_tab(tab):
        raise ForbiddenError(f"Sem acesso à aba {tab.value}")


def check_required(fields: ItemFields):
    missing = []
    if not fields.service.strip():
        missing.append("Serviço")
    if not fields.due_date:
        missing.append("Vencimento")
    if missing:
        raise ValidationError(f"Campos obrigatórios: {', '.join(missing)}")


def _matches(item: Item, term: str) -> bool:
    data = item.data or {}
    haystack = [
        data.get("service"),
        data.get("category"),
        data.get("vessel"),
        data.get("counterpartyName"),
        item.case.number if item.case else None,
    ]
    return any(term in (value or "").lower() for value in haystack)


def _sort_key(item: Item):
    # Sem vencimento vai para o fim
    due = (item.data or {}).get("dueDate") or "9999-12-31"
    return (due, item.created_at.isoformat() if item.created_at else "", item.id)


# ============================================================
# CONSULTA
# ============================================================
@router.get("")
async def list_items(
    status: Optional[ItemStatus] = None,
    q: Optional[str] = None,
    case_id: Optional[int] = Query(None, alias="caseId"),
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    query = visible_items(db, perm)
    if status:
        query = query.filter(Item.status == status.value)
    if case_id:
        query = query.filter(Item.case_id == case_id)

    items = query.all()
    term = (q or "").strip().lower()
    if term:
        items = [i for i in items if _matches(i, term)]

    return [item_to_dict(i) for i in sorted(items, key=_sort_key)]


@router.get("/counterparty")
async def counterparty_lookup(
    name: str,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    """Dados bancários e CNPJ do lançamento mais recente do mesmo cliente/fornecedor."""
    wanted = name.strip().lower()
    latest = None
    for item in visible_items(db, perm).order_by(Item.created_at.desc(), Item.id.desc()).all():
        if (item.data or {}).get("counterpartyName", "").strip().lower() == wanted:
            latest = item
            break

    if not latest or not wanted:
        return {"found": False}

    fields = ItemFields.model_validate(latest.data).to_json()
    return {
        "found": True,
        "counterpartyName": fields["counterpartyName"],
        "counterpartyTaxId": fields["counterpartyTaxId"],
        "bankDetails": fields["bankDetails"],
    }


@router.get("/{item_id}")
async def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    return item_to_dict(get_visible_item(db, perm, item_id))


@router.post("/recompute")
async def recompute_fields(
    payload: RecomputeRequest,
    perm: EffectivePermission = Depends(get_current_user),
):
    try:
        updated = recompute(payload.fields, payload.changed_field, payload.value)
    except KeyError:
        raise ValidationError(f"Campo desconhecido: {payload.changed_field}")
    return updated.to_json()


# ============================================================
# LANÇAMENTO
# ============================================================
@router.post("")
async def create_item(
    payload: ItemCreate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.ENTRY)),
):
    case = visible_cases(db, perm).filter(Case.id == payload.case_id).first()
    if not case:
        raise NotFoundError(f"FDA #{payload.case_id} não encontrado")

    check_required(payload.fields)
    # Datas de etapa só são gravadas pelo pipeline
    fields = derive(payload.fields.model_copy(update={"status_dates": StatusDates()}))

    item = Item(
        case_id=case.id,
        status=ItemStatus.PENDING.value,
        data=fields.to_json(),
        invoice_attachments=attachments_to_json(payload.invoice_attachments),
        boleto_attachments=attachments_to_json(payload.boleto_attachments),
        receipt_attachments=[],
    )
    db.add(item)
    commit_or_raise(db)
    db.refresh(item)

    logger.info(f"Item #{item.id} lançado no {case.number} por {perm.email}")
    log_action(db, perm.email, "GRAVAR ITEM", f"#{item.id} {fields.service} ({case.number})")
    return item_to_dict(item)


@router.put("/{item_id}")
async def update_item(
    item_id: int,
    payload: ItemUpdate,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.ENTRY)),
):
    item = get_visible_item(db, perm, item_id)
    check_required(payload.fields)

    stored_dates = (item.data or {}).get("statusDates") or {}
    fields = derive(payload.fields)
    data = fields.to_json()
    data["statusDates"] = stored_dates
    item.data = data

    if payload.invoice_attachments is not None:
        item.invoice_attachments = attachments_to_json(payload.invoice_attachments)
    if payload.boleto_attachments is not None:
        item.boleto_attachments = attachments_to_json(payload.boleto_attachments)
    if payload.receipt_attachments is not None:
        item.receipt_attachments = attachments_to_json(payload.receipt_attachments)

    commit_or_raise(db)
    db.refresh(item)

    log_action(db, perm.email, "ATUALIZAR ITEM", f"#{item.id} {fields.service}")
    return item_to_dict(item)


@router.delete("/{item_id}")
async def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(require_module(PermissionFlag.ENTRY)),
):
    item = get_visible_item(db, perm, item_id)
    service = (item.data or {}).get("service", "")
    db.delete(item)
    commit_or_raise(db)

    log_action(db, perm.email, "EXCLUIR ITEM", f"#{item_id} {service}")
    return {"success": True}


# ============================================================
# PIPELINE
# ============================================================
@router.post("/bulk-approve")
async def bulk_approve(
    payload: BulkApproveRequest,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    if not perm.has_tab(PermissionFlag.FINANCE_PROVISION):
        raise ForbiddenError(f"Sem acesso à aba {PermissionFlag.FINANCE_PROVISION.value}")

    # Itens fora das filiais do usuário entram como falha, sem interromper o lote
    visible_ids = {
        row.id for row in visible_items(db, perm).filter(Item.id.in_(payload.item_ids)).all()
    }
    allowed = [i for i in payload.item_ids if i in visible_ids]

    result = approval.bulk_advance(db, allowed, ItemStatus.APPROVED)
    for item_id in payload.item_ids:
        if item_id not in visible_ids:
            result.failed.append({"id": item_id, "error": f"Item #{item_id} não encontrado"})

    for item_id in result.advanced:
        log_action(db, perm.email, "APROVAR ITEM", f"#{item_id} (lote)")

    return {"advanced": result.advanced, "failed": result.failed}


@router.post("/{item_id}/advance")
async def advance_item(
    item_id: int,
    payload: AdvanceRequest,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    item = get_visible_item(db, perm, item_id)
    require_tab_for(perm, item)

    approval.advance(db, item, payload.target_status)

    log_action(db, perm.email, approval.ACTION_LABEL[payload.target_status], f"#{item.id}")
    return item_to_dict(item)


@router.post("/{item_id}/revert")
async def revert_item(
    item_id: int,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    item = get_visible_item(db, perm, item_id)
    require_tab_for(perm, item)

    previous = item.status
    approval.revert(db, item)

    log_action(db, perm.email, "ESTORNAR ITEM", f"#{item.id} {previous} → {item.status}")
    return item_to_dict(item)


@router.post("/{item_id}/receipts")
async def add_receipt(
    item_id: int,
    payload: ReceiptRequest,
    db: Session = Depends(get_db),
    perm: EffectivePermission = Depends(get_current_user),
):
    """Anexa comprovante de pagamento. Permitido em qualquer etapa."""
    item = get_visible_item(db, perm, item_id)

    receipts = list(item.receipt_attachments or [])
    receipts.extend(attachments_to_json([payload.attachment]))
    item.receipt_attachments = receipts
    commit_or_raise(db)
    db.refresh(item)

    log_action(db, perm.email, "ANEXAR COMPROVANTE", f"#{item.id} {payload.attachment.name}")
    return item_to_dict(item)
