"""
Schemas de entrada/saída
app/schemas.py

ItemFields é o objeto de valor guardado em items.data (JSON).
Chaves JSON em camelCase (compatível com o front), atributos em snake_case.
"""

from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.models import ItemStatus, PermissionFlag
from app.utils.formatters import parse_amount


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ══════════════════════════════════════════════════════════
# LANÇAMENTO
# ══════════════════════════════════════════════════════════

MONEY_FIELDS = (
    "gross_value", "credit_letter_value",
    "pis", "cofins", "csll", "irrf", "inss", "iss",
    "penalty", "interest",
    "base_value", "net_value", "total_value",
    "federal_guide", "state_guide", "total_withheld",
    "paid_amount", "paid_interest",
)


class BankDetails(CamelModel):
    bank: str = ""
    bank_code: str = ""
    agency: str = ""
    account: str = ""
    pix_key: str = ""


class StatusDates(CamelModel):
    """Marcas de cada etapa. Só são gravadas, nunca apagadas (nem no estorno)."""
    provisioned_at: Optional[date] = None
    approved_at: Optional[date] = None
    paid_at: Optional[date] = None

    @field_validator("provisioned_at", "approved_at", "paid_at", mode="before")
    @classmethod
    def blank_dates(cls, value):
        return _blank_to_none(value)


class ItemFields(CamelModel):
    # Dados principais
    vessel: str = ""
    service: str = ""
    category: str = ""
    document: str = ""
    invoice_number: str = ""
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    cost_center: str = ""
    nfs: str = ""

    # Financeiro & impostos
    gross_value: float = 0.0
    credit_letter_value: float = 0.0
    pis: float = 0.0
    cofins: float = 0.0
    csll: float = 0.0
    irrf: float = 0.0
    inss: float = 0.0
    iss: float = 0.0
    penalty: float = 0.0
    interest: float = 0.0

    # Derivados (ver app.services.tax_engine)
    federal_guide: float = 0.0    # guia 5952: PIS + COFINS + CSLL
    state_guide: float = 0.0      # guia 1708: IRRF
    total_withheld: float = 0.0
    base_value: float = 0.0
    net_value: float = 0.0
    total_value: float = 0.0

    # Cliente / fornecedor
    counterparty_name: str = ""
    counterparty_tax_id: str = ""
    bank_details: BankDetails = Field(default_factory=BankDetails)

    # Pagamento
    payment_date: Optional[date] = None
    paid_amount: float = 0.0
    paid_interest: float = 0.0

    status_dates: StatusDates = Field(default_factory=StatusDates)

    @field_validator(*MONEY_FIELDS, mode="before")
    @classmethod
    def coerce_money(cls, value):
        return parse_amount(value)

    @field_validator("issue_date", "due_date", "payment_date", mode="before")
    @classmethod
    def blank_dates(cls, value):
        return _blank_to_none(value)

    @field_validator("bank_details", "status_dates", mode="before")
    @classmethod
    def none_to_default(cls, value):
        return {} if value is None else value

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class AttachmentRef(CamelModel):
    """Referência a um anexo: fileId (armazenamento em pedaços) ou dataUrl (legado)."""
    name: str
    file_id: Optional[int] = None
    data_url: Optional[str] = None
    captured_at: Optional[str] = None
    size_label: Optional[str] = None

    @model_validator(mode="after")
    def check_content(self):
        if self.file_id is None and not self.data_url:
            raise ValueError("Anexo sem fileId nem dataUrl")
        return self


def attachments_to_json(refs: Optional[List[AttachmentRef]]) -> list:
    return [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in refs or []]


class ItemCreate(CamelModel):
    case_id: int
    fields: ItemFields
    invoice_attachments: List[AttachmentRef] = []
    boleto_attachments: List[AttachmentRef] = []


class ItemUpdate(CamelModel):
    fields: ItemFields
    # None mantém a lista atual; lista vazia remove todos os anexos
    invoice_attachments: Optional[List[AttachmentRef]] = None
    boleto_attachments: Optional[List[AttachmentRef]] = None
    receipt_attachments: Optional[List[AttachmentRef]] = None


class RecomputeRequest(CamelModel):
    fields: ItemFields
    changed_field: str
    value: Any = None


class AdvanceRequest(CamelModel):
    target_status: ItemStatus


class BulkApproveRequest(CamelModel):
    item_ids: List[int]


class ReceiptRequest(CamelModel):
    attachment: AttachmentRef


# ══════════════════════════════════════════════════════════
# FDA / FILIAIS / PERMISSÕES
# ══════════════════════════════════════════════════════════

class CaseCreate(CamelModel):
    branch_id: int
    number: Optional[str] = None


class CaseUpdate(CamelModel):
    number: Optional[str] = None
    is_open: Optional[bool] = None


class BranchCreate(CamelModel):
    name: str


class PermissionUpsert(CamelModel):
    email: str
    modules: List[PermissionFlag] = [PermissionFlag.ENTRY]
    branches: List[int] = []


# ══════════════════════════════════════════════════════════
# AUTENTICAÇÃO / LOGS / ARQUIVOS
# ══════════════════════════════════════════════════════════

class LoginRequest(CamelModel):
    email: str
    password: str


class ChangePasswordRequest(CamelModel):
    email: str
    old_password: str
    new_password: str


class LogCreate(CamelModel):
    action: str
    details: str = ""


class FileCreate(CamelModel):
    name: str
    size: int
    type: str


class ChunkCreate(CamelModel):
    index: int
    content: str
