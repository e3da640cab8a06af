"""
Validação dos valores de campo, usada na criação (defaults de campos
somente leitura) e na submissão do signatário.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from app.exceptions import SigningValidationError
from app.schemas.envelope import FieldSpec, FieldType, FieldValue
from app.services.pdf_sealing import SealValue
from app.services.signature_capture import decode_png_data_url, image_has_ink


def check_value(field: FieldSpec, value: FieldValue) -> Tuple[Optional[SealValue], bool]:
    """
    Normaliza o valor de um campo. Devolve (valor, válido); valor None
    significa campo vazio.
    """
    if field.type == FieldType.CHECKBOX:
        if value is None:
            return None, True
        if not isinstance(value, bool):
            return None, False
        return (True if value else None), True

    if value is None or value == "":
        return None, True
    if not isinstance(value, str):
        return None, False

    if field.type == FieldType.SIGNATURE:
        try:
            png = decode_png_data_url(value)
            has_ink = image_has_ink(png)
        except (ValueError, OSError):
            return None, False
        # Assinatura em branco conta como não preenchida
        return (png if has_ink else None), True

    text = value.strip()
    if not text:
        return None, True
    if field.type == FieldType.DATE:
        try:
            date.fromisoformat(text)
        except ValueError:
            return None, False
    return text, True


def validate_field_values(fields: List[FieldSpec], field_values: Dict[str, FieldValue]) -> Dict[str, SealValue]:
    known_ids = {f.id for f in fields}
    unknown = [key for key in field_values if key not in known_ids]
    if unknown:
        logging.info(f"Ignoring {len(unknown)} values for unknown fields")

    values: Dict[str, SealValue] = {}
    missing = []
    invalid = []
    for field in fields:
        raw = field.default_value if field.read_only else field_values.get(field.id)
        value, valid = check_value(field, raw)
        if not valid:
            invalid.append(field.id)
        elif value is None:
            if field.required:
                missing.append(field.id)
        else:
            values[field.id] = value

    if missing or invalid:
        raise SigningValidationError(missing, invalid)
    return values


def unusable_read_only_fields(fields: List[FieldSpec]) -> List[str]:
    """
    Campos somente leitura cujo default não passaria na submissão
    (formato errado, ou obrigatório sem default). Um envelope assim
    nunca poderia ser assinado.
    """
    unusable = []
    for field in fields:
        if not field.read_only:
            continue
        value, valid = check_value(field, field.default_value)
        if not valid or (value is None and field.required):
            unusable.append(field.id or field.label or field.type.value)
    return unusable
