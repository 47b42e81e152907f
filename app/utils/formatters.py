from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
import math


def parse_amount(value) -> float:
    """Converte entrada de formulário em float. Vazio, inválido ou negativo vira 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def round_cents(value: float) -> float:
    """Arredonda para 2 casas, meio centavo para longe do zero."""
    try:
        quantized = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return 0.0
    return float(quantized)


def format_file_size(size: int) -> str:
    """1536 -> '1.5 KB'. Mesmo rótulo exibido nos anexos."""
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB"]
    i = 0
    while i < len(units) - 1 and size >= 1024 ** (i + 1):
        i += 1
    return f"{round(size / 1024 ** i, 2):g} {units[i]}"
