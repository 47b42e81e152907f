from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, DateTime, Text, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


# --- ENUMS (Para restringir valores e evitar erros) ---
class ItemStatus(str, enum.Enum):
    """Etapas do contas a pagar. Ordem fixa, sem desvios."""
    PENDING = "pending"           # A pagar
    PROVISIONED = "provisioned"   # Provisionado
    APPROVED = "approved"         # Aprovado
    PAID = "paid"                 # Liquidado

class PermissionFlag(str, enum.Enum):
    """Módulos e abas que podem ser liberados por usuário."""
    ENTRY = "entry"                          # Módulo: Lançamento
    LAUNCHED = "launched"                    # Módulo: Itens Lançados
    LAUNCHED_OPEN = "launched_open"          # Aba: Em Aberto
    LAUNCHED_PAID = "launched_paid"          # Aba: Liquidados
    FINANCE = "finance"                      # Módulo: Contas a Pagar
    FINANCE_PENDING = "finance_pending"      # Aba: A Pagar
    FINANCE_PROVISION = "finance_provision"  # Aba: Provisionado
    FINANCE_APPROVED = "finance_approved"    # Aba: Aprovado
    FINANCE_PAID = "finance_paid"            # Aba: Liquidados
    LOGS = "logs"                            # Módulo: Logs
    USERS = "users"                          # Painel admin
    ALL_TABS = "all_tabs"                    # Todas as abas


# --- ESTRUTURA ---
class Branch(Base):
    __tablename__ = "filiais"
    id = Column(Integer, primary_key=True, index=True)
    name = Column("nome", String(120), nullable=False)
    created_by = Column("criado_por", String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    cases = relationship("Case", back_populates="branch")


class Case(Base):
    """Atendimento (FDA). Agrupa os lançamentos de uma escala de navio."""
    __tablename__ = "fdas"
    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(60), nullable=False)  # "FDA-2025-001", editável
    branch_id = Column("filial_id", Integer, ForeignKey("filiais.id"), index=True)
    is_open = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    branch = relationship("Branch", back_populates="cases")
    items = relationship("Item", back_populates="case")


# --- CONTAS A PAGAR ---
class Item(Base):
    """
    Lançamento (nota / boleto) vinculado a um FDA.

    Os campos do formulário ficam em `data` (JSON) e são validados
    por app.schemas.ItemFields. O status fica em coluna própria porque
    só muda pelo pipeline de aprovação.
    """
    __tablename__ = "items"
    id = Column(Integer, primary_key=True, index=True)
    case_id = Column("fda_id", Integer, ForeignKey("fdas.id"), nullable=False, index=True)
    status = Column(String(20), default=ItemStatus.PENDING.value, nullable=False, index=True)

    data = Column(JSON, default=dict)
    # Ex: [{"name": "nf.pdf", "fileId": 12, "capturedAt": "...", "sizeLabel": "1.2 MB"}]
    invoice_attachments = Column("anexos_nf", JSON, default=list)
    boleto_attachments = Column("anexos_boleto", JSON, default=list)
    receipt_attachments = Column("comprovantes", JSON, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    case = relationship("Case", back_populates="items")


# --- ACESSO ---
class UserPermission(Base):
    __tablename__ = "permissions"
    email = Column(String(255), primary_key=True)
    modules = Column(JSON, default=list)
    branches = Column("filiais", JSON, default=list)
    password_hash = Column(Text, nullable=True)  # None / 'sha256:default' = primeiro acesso


class AuditLog(Base):
    """Registro append-only das ações dos usuários."""
    __tablename__ = "logs"
    id = Column(Integer, primary_key=True)
    user_email = Column(String(255))
    action = Column(String(80), nullable=False)
    details = Column(Text)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)


# --- ARQUIVOS (base64 em pedaços) ---
class StoredFile(Base):
    __tablename__ = "files"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    size = Column(Integer)  # tamanho declarado do arquivo original, em bytes
    mime_type = Column("type", String(120))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    chunks = relationship("FileChunk", back_populates="file", order_by="FileChunk.index")


class FileChunk(Base):
    __tablename__ = "file_chunks"
    __table_args__ = (
        UniqueConstraint("file_id", "chunk_index", name="uq_file_chunk_index"),
        Index("ix_file_chunks_file_id", "file_id"),
    )
    id = Column(Integer, primary_key=True)
    file_id = Column(Integer, ForeignKey("files.id"), nullable=False)
    index = Column("chunk_index", Integer, nullable=False)
    content = Column(Text, nullable=False)

    file = relationship("StoredFile", back_populates="chunks")
