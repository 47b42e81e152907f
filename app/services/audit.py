"""
Log de auditoria (append-only).

Toda ação que altera estado grava uma linha. A gravação é best-effort:
se falhar, a operação principal NÃO é desfeita nem recebe erro.
"""

import logging

from sqlalchemy.orm import Session

from app.config import LOGS_LIMIT
from app.models import AuditLog

logger = logging.getLogger(__name__)


def log_action(db: Session, user_email: str, action: str, details: str = "") -> bool:
    """Devolve True se gravou, False se a falha foi engolida."""
    try:
        db.add(AuditLog(user_email=user_email, action=(action or "").upper(), details=details or ""))
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.warning(f"Falha ao gravar log '{action}' de {user_email}: {e}")
        return False


def recent_logs(db: Session, limit: int = LOGS_LIMIT) -> list:
    return (
        db.query(AuditLog)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )


def log_to_dict(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "userEmail": entry.user_email,
        "action": entry.action,
        "details": entry.details or "",
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
    }
