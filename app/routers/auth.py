"""
Router: Autenticação
====================
- Login por e-mail + senha (JWT Bearer, 24h)
- Primeiro acesso com a senha de transição, que é trocada por hash bcrypt
- Troca de senha
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app import config
from app.database import commit_or_raise, get_db
from app.models import UserPermission
from app.schemas import ChangePasswordRequest, LoginRequest
from app.services.audit import log_action
from app.services.exceptions import AuthError, ValidationError
from app.services.permissions import ALL_FLAGS, get_permission, get_record, is_master, normalize_email
from app.utils.security import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def needs_bootstrap(record: UserPermission) -> bool:
    return not record.password_hash or record.password_hash == config.PLACEHOLDER_HASH


def check_password(record: UserPermission, password: str) -> bool:
    """Sem hash definido só a senha de transição é aceita."""
    if needs_bootstrap(record):
        return password == config.BOOTSTRAP_PASSWORD
    return verify_password(password, record.password_hash)


# ============================================================
# LOGIN
# ============================================================
@router.post("/login")
async def login(payload: LoginRequest, db: Session = Depends(get_db)):
    email = normalize_email(payload.email)
    record = get_record(db, email)

    if not record:
        if not is_master(email):
            raise AuthError("Usuário não encontrado")
        # Master entra sem registro prévio; a linha nasce no primeiro acesso
        record = UserPermission(email=email, modules=list(ALL_FLAGS), branches=[])

    if not check_password(record, payload.password):
        raise AuthError("Senha incorreta")

    if needs_bootstrap(record):
        record.password_hash = get_password_hash(payload.password)
        db.add(record)
        commit_or_raise(db)
        logger.info(f"Primeiro acesso de {email}: senha de transição substituída por hash")

    perm = get_permission(db, email)
    token = create_access_token(data={"sub": email})

    return {
        "token": token,
        "user": {
            "email": email,
            "modules": sorted(perm.modules),
            "branches": sorted(perm.branches),
            "isMaster": perm.is_master,
        },
    }


# ============================================================
# TROCA DE SENHA
# ============================================================
@router.post("/change-password")
async def change_password(payload: ChangePasswordRequest, db: Session = Depends(get_db)):
    email = normalize_email(payload.email)
    record = get_record(db, email)
    if not record:
        raise AuthError("Usuário não encontrado")

    if not check_password(record, payload.old_password):
        raise AuthError("Senha atual incorreta")

    if len(payload.new_password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"A nova senha deve ter pelo menos {config.MIN_PASSWORD_LENGTH} caracteres"
        )
    if len(payload.new_password.encode("utf-8")) > config.MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"A nova senha deve ter no máximo {config.MAX_PASSWORD_BYTES} bytes"
        )

    record.password_hash = get_password_hash(payload.new_password)
    commit_or_raise(db)

    log_action(db, email, "ALTERAR SENHA", "Senha alterada pelo usuário")
    return {"success": True}
