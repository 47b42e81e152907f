"""
Middleware de Autorização
app/middleware/authorization.py

Dependencies do FastAPI para exigir login, módulo liberado ou usuário master.

Uso:
    @router.get("/logs")
    async def listar(
        perm: EffectivePermission = Depends(require_module(PermissionFlag.LOGS))
    ):
        ...
"""

from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import PermissionFlag
from app.services.exceptions import AuthError, ForbiddenError
from app.services.permissions import EffectivePermission, get_permission
from app.utils.security import decode_access_token


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
) -> EffectivePermission:
    """Lê o Bearer token e devolve a permissão efetiva do usuário."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthError("Não autenticado")

    payload = decode_access_token(auth_header.replace("Bearer ", "", 1))
    if not payload or not payload.get("sub"):
        raise AuthError("Sessão expirada. Faça login novamente")

    perm = get_permission(db, payload["sub"])
    request.state.user_email = perm.email
    return perm


def require_module(flag: PermissionFlag) -> Callable:
    """Módulo liberado: require_module(PermissionFlag.FINANCE)"""
    async def verify(
        perm: EffectivePermission = Depends(get_current_user)
    ) -> EffectivePermission:
        if not perm.has(flag):
            raise ForbiddenError(f"Sem acesso ao módulo {PermissionFlag(flag).value}")
        return perm
    return verify


def require_master() -> Callable:
    async def verify(
        perm: EffectivePermission = Depends(get_current_user)
    ) -> EffectivePermission:
        if not perm.is_master:
            raise ForbiddenError("Apenas o administrador pode realizar esta ação")
        return perm
    return verify
