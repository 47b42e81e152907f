"""
Serviço: Permissões e Filtro por Filial
app/services/permissions.py

Quem enxerga o quê:
  - Usuário master (MASTER_USER): todos os módulos, todas as filiais.
  - Demais: apenas FDAs/itens cujas filiais estão em `branches`.
  - Sem registro: permissão mínima {entry} e nenhuma filial.
    Lista de filiais vazia NÃO libera tudo: não enxerga nenhum FDA.

A permissão efetiva fica em cache no Redis (perm:{email}) quando configurado.
"""

import json
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Query, Session

from app import config
from app.database import commit_or_raise
from app.models import Branch, Case, Item, PermissionFlag, UserPermission
from app.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALL_FLAGS = tuple(f.value for f in PermissionFlag)
DEFAULT_MODULES = (PermissionFlag.ENTRY.value,)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_master(email: str) -> bool:
    return normalize_email(email) == config.MASTER_USER


def _flag_value(flag) -> str:
    try:
        return PermissionFlag(flag).value
    except ValueError:
        raise ValidationError(f"Módulo desconhecido: {flag}")


def _unique(values: Iterable) -> list:
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen


@dataclass(frozen=True)
class EffectivePermission:
    email: str
    modules: frozenset
    branches: frozenset
    is_master: bool = False

    def has(self, flag) -> bool:
        return self.is_master or PermissionFlag(flag).value in self.modules

    def has_tab(self, flag) -> bool:
        """Aba liberada individualmente ou via all_tabs."""
        return self.has(flag) or PermissionFlag.ALL_TABS.value in self.modules

    def can_access_branch(self, branch_id: Optional[int]) -> bool:
        return self.is_master or (branch_id is not None and branch_id in self.branches)

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "modules": sorted(self.modules),
            "branches": sorted(self.branches),
            "isMaster": self.is_master,
        }


# ══════════════════════════════════════════════════════════
# CACHE
# ══════════════════════════════════════════════════════════

def _cache_key(email: str) -> str:
    return f"perm:{email}"


def _cache_get(email: str) -> Optional[dict]:
    if not config.redis_client:
        return None
    try:
        cached = config.redis_client.get(_cache_key(email))
        return json.loads(cached) if cached else None
    except Exception as e:
        logger.warning(f"Redis indisponível (lendo {email}): {e}")
        return None


def _cache_set(email: str, payload: dict):
    if not config.redis_client:
        return
    try:
        config.redis_client.setex(_cache_key(email), config.PERMISSION_CACHE_TTL, json.dumps(payload))
    except Exception as e:
        logger.warning(f"Não foi possível gravar permissão de {email} no Redis: {e}")


def invalidate_cache(email: str):
    if not config.redis_client:
        return
    try:
        config.redis_client.delete(_cache_key(normalize_email(email)))
    except Exception as e:
        logger.warning(f"Não foi possível invalidar permissão de {email} no Redis: {e}")


# ══════════════════════════════════════════════════════════
# LEITURA
# ══════════════════════════════════════════════════════════

def get_record(db: Session, email: str) -> Optional[UserPermission]:
    return db.query(UserPermission).filter(UserPermission.email == normalize_email(email)).first()


def get_permission(db: Session, email: str) -> EffectivePermission:
    email = normalize_email(email)

    if is_master(email):
        return EffectivePermission(
            email=email,
            modules=frozenset(ALL_FLAGS),
            branches=frozenset(),
            is_master=True,
        )

    payload = _cache_get(email)
    if payload is None:
        record = get_record(db, email)
        if record:
            payload = {"modules": list(record.modules or []), "branches": list(record.branches or [])}
        else:
            payload = {"modules": list(DEFAULT_MODULES), "branches": []}
        _cache_set(email, payload)

    return EffectivePermission(
        email=email,
        modules=frozenset(m for m in payload["modules"] if m in ALL_FLAGS),
        branches=frozenset(int(b) for b in payload["branches"]),
    )


def visible_cases(db: Session, perm: EffectivePermission) -> Query:
    query = db.query(Case)
    if perm.is_master:
        return query
    # in_([]) resulta em falso: sem filiais, nada é retornado
    return query.filter(Case.branch_id.in_(sorted(perm.branches)))


def visible_items(db: Session, perm: EffectivePermission) -> Query:
    query = db.query(Item).join(Case, Item.case_id == Case.id)
    if perm.is_master:
        return query
    return query.filter(Case.branch_id.in_(sorted(perm.branches)))


# ══════════════════════════════════════════════════════════
# ESCRITA (sempre o conjunto inteiro)
# ══════════════════════════════════════════════════════════

def save_permission(db: Session, email: str, modules: Iterable, branches: Iterable[int]) -> UserPermission:
    """Grava o conjunto completo de módulos e filiais. Mantém o hash de senha."""
    email = normalize_email(email)
    if not email:
        raise ValidationError("E-mail é obrigatório")

    modules = _unique(_flag_value(m) for m in modules)
    branches = _unique(int(b) for b in branches)

    record = get_record(db, email)
    if record is None:
        record = UserPermission(email=email)
        db.add(record)
    record.modules = modules
    record.branches = branches

    commit_or_raise(db)
    db.refresh(record)

    invalidate_cache(email)
    logger.info(f"Permissões de {email}: módulos={modules} filiais={branches}")
    return record


def _current_sets(db: Session, email: str):
    record = get_record(db, email)
    if record:
        return list(record.modules or []), list(record.branches or [])
    return list(DEFAULT_MODULES), []


def toggle_module(db: Session, email: str, flag) -> UserPermission:
    value = _flag_value(flag)
    modules, branches = _current_sets(db, email)
    if value in modules:
        modules.remove(value)
    else:
        modules.append(value)
    return save_permission(db, email, modules, branches)


def toggle_branch(db: Session, email: str, branch_id: int) -> UserPermission:
    modules, branches = _current_sets(db, email)
    if branch_id in branches:
        branches.remove(branch_id)
    else:
        # Remover id órfão é permitido; adicionar exige filial existente
        if not db.query(Branch.id).filter(Branch.id == branch_id).first():
            raise NotFoundError(f"Filial #{branch_id} não encontrada")
        branches.append(branch_id)
    return save_permission(db, email, modules, branches)


def delete_permission(db: Session, email: str):
    record = get_record(db, email)
    if not record:
        raise NotFoundError(f"Usuário {email} não encontrado")
    db.delete(record)
    commit_or_raise(db)
    invalidate_cache(email)


def record_to_dict(record: Optional[UserPermission], email: str = None) -> dict:
    """Formato devolvido pela API. Sem registro: permissão padrão."""
    if record is None:
        return {
            "email": normalize_email(email),
            "modules": list(DEFAULT_MODULES),
            "branches": [],
            "hasPassword": False,
        }
    return {
        "email": record.email,
        "modules": list(record.modules or []),
        "branches": list(record.branches or []),
        "hasPassword": bool(record.password_hash) and record.password_hash != config.PLACEHOLDER_HASH,
    }
