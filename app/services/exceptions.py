"""
Erros de domínio.

Cada erro carrega o status HTTP com que deve ser devolvido; app.main
registra um handler que responde {"error": mensagem}.
"""


class LedgerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Campo obrigatório ausente, arquivo grande demais ou de tipo não aceito."""
    status_code = 400


class AuthError(LedgerError):
    """Credenciais inválidas, usuário desconhecido ou token expirado."""
    status_code = 401


class ForbiddenError(LedgerError):
    status_code = 403


class NotFoundError(LedgerError):
    status_code = 404


class ConflictError(LedgerError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    """Transição fora da ordem PENDING → PROVISIONED → APPROVED → PAID."""


class StorageError(LedgerError):
    """Falha na camada de persistência. Mensagem original anexada."""
    status_code = 500
