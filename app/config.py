"""
Configuração: LMA Finanças
app/config.py

Tudo vem de variáveis de ambiente (Railway / docker-compose / .env do shell).
Nenhum valor aqui deve ser alterado em código para produção.
"""

import logging
import os
from datetime import timedelta, timezone

import redis

logger = logging.getLogger(__name__)


# ─── Banco de dados ─────────────────────────────────────────────
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lma_financas.db")

# ─── Autenticação ───────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET", "lma-finance-secret-key-123")
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("TOKEN_EXPIRE_HOURS", "24"))

# Usuário master: enxerga todas as filiais e todos os módulos
MASTER_USER = os.getenv("MASTER_USER", "filipe.souza@shipstore.com.br").strip().lower()

# Senha de transição aceita apenas no primeiro acesso (hash ainda não definido)
BOOTSTRAP_PASSWORD = os.getenv("BOOTSTRAP_PASSWORD", "shipstore123")
PLACEHOLDER_HASH = "sha256:default"
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72  # limite do bcrypt

# ─── Arquivos ───────────────────────────────────────────────────
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", str(800 * 1024)))       # caracteres base64
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(5 * 1024 * 1024)))  # bytes originais

ALLOWED_FILE_TYPES = (
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/jpg",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)

# ─── Diversos ───────────────────────────────────────────────────
LOGS_LIMIT = 1000
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "30"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

BRT = timezone(timedelta(hours=-3))

# ─── Redis (opcional) ───────────────────────────────────────────
# Cache de permissões efetivas. Sem REDIS_URL tudo vai direto ao banco.
PERMISSION_CACHE_TTL = 600

redis_client = None
REDIS_URL = os.getenv("REDIS_URL")
if REDIS_URL:
    try:
        redis_client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    except Exception as e:
        logger.warning(f"Redis indisponível, seguindo sem cache: {e}")
        redis_client = None
