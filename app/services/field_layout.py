from dataclasses import dataclass
from app.schemas.envelope import FieldSpec, FieldUnit

# Campos antigos foram gravados em pixels absolutos e não têm "unit".
# Para esses, largura < 100 é tratada como porcentagem.
LEGACY_PERCENT_THRESHOLD = 100


@dataclass(frozen=True)
class Placement:
    """Caixa do campo em pixels da página renderizada, origem no canto superior esquerdo."""
    left: float
    top: float
    width: float
    height: float


def infer_unit(field: FieldSpec) -> FieldUnit:
    if field.unit is not None:
        return field.unit
    if (field.width or 0) < LEGACY_PERCENT_THRESHOLD:
        return FieldUnit.PERCENT
    return FieldUnit.PX


def resolve_placement(field: FieldSpec, rendered_page_width: float, rendered_page_height: float) -> Placement:
    # Posição é sempre porcentagem da página renderizada
    left = (field.x_position or 0) / 100 * rendered_page_width
    top = (field.y_position or 0) / 100 * rendered_page_height

    width = field.width or 0
    height = field.height or 0
    if infer_unit(field) == FieldUnit.PERCENT:
        width = width / 100 * rendered_page_width
        height = height / 100 * rendered_page_height

    return Placement(left=left, top=top, width=width, height=height)


def stamp_unit(field: FieldSpec) -> FieldSpec:
    """Grava a unidade inferida no campo, para que registros novos nunca dependam da heurística."""
    return field.model_copy(update={"unit": infer_unit(field)})
