"""
Serviço: Pipeline de Aprovação do Contas a Pagar
app/services/approval.py

    PENDING → PROVISIONED → APPROVED → PAID

Regras:
  - Avanço só para a etapa imediatamente seguinte; grava a data (dia, sem hora)
    em fields.statusDates.
  - Estorno volta exatamente uma etapa e NÃO apaga a data da etapa deixada:
    as marcas são histórico, não indicam o estado atual.
  - Aprovação em lote: cada item é gravado isoladamente; a falha de um não
    desfaz os que já passaram.

Usado por:
  1. POST /api/items/{id}/advance  e  /revert
  2. POST /api/items/bulk-approve
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import BRT
from app.models import Item, ItemStatus
from app.services.exceptions import InvalidTransitionError, LedgerError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

STATUS_ORDER = [
    ItemStatus.PENDING,
    ItemStatus.PROVISIONED,
    ItemStatus.APPROVED,
    ItemStatus.PAID,
]

# Data gravada ao ENTRAR em cada etapa
STAMP_FIELD = {
    ItemStatus.PROVISIONED: "provisionedAt",
    ItemStatus.APPROVED: "approvedAt",
    ItemStatus.PAID: "paidAt",
}

# Ação registrada no log de auditoria
ACTION_LABEL = {
    ItemStatus.PROVISIONED: "PROVISIONAR ITEM",
    ItemStatus.APPROVED: "APROVAR ITEM",
    ItemStatus.PAID: "LIQUIDAR ITEM",
}


def today() -> date:
    return datetime.now(BRT).date()


def next_status(status: ItemStatus) -> Optional[ItemStatus]:
    i = STATUS_ORDER.index(ItemStatus(status))
    return STATUS_ORDER[i + 1] if i + 1 < len(STATUS_ORDER) else None


def previous_status(status: ItemStatus) -> Optional[ItemStatus]:
    i = STATUS_ORDER.index(ItemStatus(status))
    return STATUS_ORDER[i - 1] if i > 0 else None


def _persist(db: Session, item: Item) -> Item:
    """Grava um único item. Cada chamada é uma transação própria."""
    try:
        db.add(item)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Falha ao gravar item #{item.id}: {e}")
        raise StorageError(str(e)) from e
    db.refresh(item)
    return item


def advance(db: Session, item: Item, target_status: ItemStatus, on: Optional[date] = None) -> Item:
    """
    Avança o item para a etapa seguinte.

    Raises:
        InvalidTransitionError: alvo não é a etapa imediatamente seguinte
                                (inclui qualquer avanço a partir de PAID)
    """
    current = ItemStatus(item.status)
    target = ItemStatus(target_status)
    expected = next_status(current)

    if expected is None:
        raise InvalidTransitionError(f"Item #{item.id} já está liquidado; não há etapa seguinte")
    if target != expected:
        raise InvalidTransitionError(
            f"Item #{item.id} em '{current.value}' só pode avançar para '{expected.value}'"
        )

    stamp = (on or today()).isoformat()
    data = dict(item.data or {})
    dates = dict(data.get("statusDates") or {})
    dates[STAMP_FIELD[target]] = stamp
    data["statusDates"] = dates

    # Atribuição nova (não mutação) para o SQLAlchemy detectar a mudança no JSON
    item.data = data
    item.status = target.value
    _persist(db, item)

    logger.info(f"Item #{item.id} {current.value} → {target.value} ({stamp})")
    return item


def revert(db: Session, item: Item) -> Item:
    """Volta exatamente uma etapa. Datas já gravadas permanecem."""
    current = ItemStatus(item.status)
    target = previous_status(current)
    if target is None:
        raise InvalidTransitionError(f"Item #{item.id} está pendente; não há etapa anterior")

    item.status = target.value
    _persist(db, item)

    logger.info(f"Item #{item.id} estornado {current.value} → {target.value}")
    return item


@dataclass
class BulkResult:
    advanced: list = field(default_factory=list)
    failed: list = field(default_factory=list)  # [{"id": 2, "error": "..."}]

    @property
    def ok(self) -> bool:
        return not self.failed


def bulk_advance(
    db: Session,
    item_ids: Iterable[int],
    target_status: ItemStatus = ItemStatus.APPROVED,
    on: Optional[date] = None,
) -> BulkResult:
    """
    Avança vários itens de forma independente (sem transação única).

    Apenas itens PROVISIONED podem ser aprovados em lote. Falhas são
    coletadas em `failed` e não interrompem os demais.
    """
    target = ItemStatus(target_status)
    source = previous_status(target)
    result = BulkResult()

    for item_id in item_ids:
        try:
            item = db.query(Item).filter(Item.id == item_id).first()
            if not item:
                raise NotFoundError(f"Item #{item_id} não encontrado")
            if ItemStatus(item.status) != source:
                raise InvalidTransitionError(
                    f"Item #{item_id} em '{item.status}', esperado '{source.value}'"
                )
            advance(db, item, target, on=on)
            result.advanced.append(item_id)
        except LedgerError as e:
            db.rollback()
            logger.warning(f"Aprovação em lote: item #{item_id} falhou: {e}")
            result.failed.append({"id": item_id, "error": str(e)})

    logger.info(f"Aprovação em lote: {len(result.advanced)} ok, {len(result.failed)} com falha")
    return result
