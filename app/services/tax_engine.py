"""
Motor de Impostos Retidos
app/services/tax_engine.py

Calcula as retenções federais de uma nota de serviço e os agregados
do lançamento (líquido e total). Funções puras: sem banco, sem relógio.

Regra de negócio que surpreende mas é intencional:
  editar o Valor Bruto SEMPRE recalcula PIS/COFINS/CSLL/IRRF pelas alíquotas
  fixas, descartando qualquer valor digitado manualmente antes. Editar um
  imposto diretamente só recalcula os agregados.

Usada por:
  1. POST /api/items/recompute (cálculo ao vivo no formulário)
  2. Criação/edição de itens (agregados sempre derivados no servidor)
"""

from typing import Any, Union

from app.schemas import ItemFields
from app.utils.formatters import parse_amount, round_cents

# Alíquotas de retenção na fonte (Lei 10.833/03 + IN RFB 1.234/12)
PIS_RATE = 0.0065
COFINS_RATE = 0.03
CSLL_RATE = 0.01
IRRF_RATE = 0.015

WITHHOLDING_RATES = {
    "pis": PIS_RATE,
    "cofins": COFINS_RATE,
    "csll": CSLL_RATE,
    "irrf": IRRF_RATE,
}

# Campos cuja edição dispara o recálculo dos agregados
TAX_FIELDS = frozenset({
    "gross_value", "credit_letter_value",
    "pis", "cofins", "csll", "irrf", "inss", "iss",
    "penalty", "interest",
})


def resolve_field(name: str) -> str:
    """Aceita o nome do atributo (gross_value) ou a chave JSON (grossValue)."""
    if name in ItemFields.model_fields:
        return name
    for attr, info in ItemFields.model_fields.items():
        if info.alias == name:
            return attr
    raise KeyError(name)


def withholdings(gross_value: float) -> dict:
    """Retenções pelas alíquotas fixas, cada uma arredondada ao centavo."""
    gross = parse_amount(gross_value)
    return {tax: round_cents(gross * rate) for tax, rate in WITHHOLDING_RATES.items()}


def aggregates(fields: ItemFields) -> dict:
    """Guias, base, líquido e total a partir dos valores atuais dos impostos."""
    gross = fields.gross_value

    federal_guide = round_cents(fields.pis + fields.cofins + fields.csll)
    state_guide = round_cents(fields.irrf)
    total_withheld = federal_guide + state_guide + fields.inss + fields.iss

    # Líquido = Bruto - Impostos - Carta de Crédito
    net_value = gross - total_withheld - fields.credit_letter_value

    return {
        "federal_guide": federal_guide,
        "state_guide": state_guide,
        "base_value": gross,
        "total_withheld": total_withheld,
        "net_value": net_value,
        "total_value": net_value + fields.penalty + fields.interest,
    }


def derive(fields: ItemFields) -> ItemFields:
    """Reaplica os agregados sem tocar nos impostos informados."""
    return fields.model_copy(update=aggregates(fields))


def recompute(current: Union[ItemFields, dict], changed_field: str, new_value: Any) -> ItemFields:
    """
    Aplica a edição de um campo e devolve o conjunto completo atualizado.

    Args:
        current:       campos atuais (ItemFields ou dict no formato JSON)
        changed_field: campo editado, em snake_case ou camelCase
        new_value:     valor digitado (string de formulário ou número)

    Returns:
        Novo ItemFields. `current` não é alterado.
    """
    if not isinstance(current, ItemFields):
        current = ItemFields.model_validate(current)

    field = resolve_field(changed_field)
    data = current.model_dump()
    data[field] = new_value
    updated = ItemFields.model_validate(data)

    if field not in TAX_FIELDS:
        return updated

    # Valor Bruto manda: sobrescreve retenções editadas à mão
    if field == "gross_value":
        updated = updated.model_copy(update=withholdings(updated.gross_value))

    return derive(updated)
