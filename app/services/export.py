"""
Exportação de Itens e Logs
app/services/export.py

Formatos:
  - csv:  UTF-8 com BOM (abre direto no Excel), separador vírgula
  - json: lista de objetos
  - xlsx: planilha com cabeçalho estilizado e formato monetário
"""

import csv
import json
from io import BytesIO, StringIO
from typing import List, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.services.exceptions import ValidationError

FORMATS = {
    "csv": ("text/csv; charset=utf-8", "csv"),
    "json": ("application/json", "json"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
}

STATUS_LABELS = {
    "pending": "A Pagar",
    "provisioned": "Provisionado",
    "approved": "Aprovado",
    "paid": "Liquidado",
}

# (chave, título, monetário?)
ITEM_COLUMNS: List[Tuple[str, str, bool]] = [
    ("id", "ID", False),
    ("caseNumber", "FDA", False),
    ("status", "Status", False),
    ("vessel", "Navio", False),
    ("service", "Serviço", False),
    ("category", "Categoria", False),
    ("counterpartyName", "Cliente/Fornecedor", False),
    ("counterpartyTaxId", "CNPJ", False),
    ("invoiceNumber", "Nº NF", False),
    ("issueDate", "Emissão", False),
    ("dueDate", "Vencimento", False),
    ("grossValue", "Valor Bruto", True),
    ("pis", "PIS", True),
    ("cofins", "COFINS", True),
    ("csll", "CSLL", True),
    ("irrf", "IRRF", True),
    ("inss", "INSS", True),
    ("iss", "ISS", True),
    ("creditLetterValue", "Carta de Crédito", True),
    ("netValue", "Valor Líquido", True),
    ("penalty", "Multa", True),
    ("interest", "Juros", True),
    ("totalValue", "Total", True),
]

LOG_COLUMNS: List[Tuple[str, str, bool]] = [
    ("timestamp", "Data/Hora", False),
    ("userEmail", "Usuário", False),
    ("action", "Ação", False),
    ("details", "Detalhes", False),
]


def check_format(fmt: str) -> str:
    fmt = (fmt or "").lower()
    if fmt not in FORMATS:
        raise ValidationError(f"Formato não suportado: {fmt}. Use csv, json ou xlsx")
    return fmt


def item_row(item: dict) -> dict:
    """Achata o item da API (campos + FDA) em uma linha de planilha."""
    fields = item.get("fields") or {}
    row = {key: fields.get(key) for key, _, _ in ITEM_COLUMNS}
    row["id"] = item.get("id")
    row["caseNumber"] = item.get("caseNumber")
    row["status"] = STATUS_LABELS.get(item.get("status"), item.get("status"))
    return row


def to_csv(rows: Sequence[dict], columns) -> bytes:
    buf = StringIO()
    writer = csv.writer(buf)
    writer.writerow([title for _, title, _ in columns])
    for r in rows:
        writer.writerow(["" if r.get(key) is None else r.get(key) for key, _, _ in columns])
    return ("\ufeff" + buf.getvalue()).encode("utf-8")


def to_json(rows: Sequence[dict]) -> bytes:
    return json.dumps(list(rows), ensure_ascii=False, indent=2, default=str).encode("utf-8")


def to_xlsx(rows: Sequence[dict], columns, title: str) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_font = Font(bold=True, color="FFFFFF", size=10, name="Arial")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    for col, (_, header, _) in enumerate(columns, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", wrap_text=True)
        cell.border = thin_border

    money_fmt = '#,##0.00'
    for i, r in enumerate(rows, 2):
        for col, (key, _, is_money) in enumerate(columns, 1):
            cell = ws.cell(row=i, column=col, value=r.get(key))
            cell.border = thin_border
            if is_money:
                cell.number_format = money_fmt
                cell.alignment = Alignment(horizontal="right")

    for col, (_, header, is_money) in enumerate(columns, 1):
        ws.column_dimensions[get_column_letter(col)].width = 14 if is_money else max(12, len(header) + 4)

    ws.freeze_panes = "A2"

    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


def render(rows: Sequence[dict], columns, fmt: str, title: str):
    """Devolve (conteúdo, media_type, extensão)."""
    fmt = check_format(fmt)
    media_type, ext = FORMATS[fmt]
    if fmt == "csv":
        content = BytesIO(to_csv(rows, columns))
    elif fmt == "json":
        content = BytesIO(to_json(rows))
    else:
        content = to_xlsx(rows, columns, title)
    return content, media_type, ext
