"""
Captura da assinatura desenhada à mão.

Cada tentativa de assinatura usa a sua própria ``SignatureCapture``; nada é
compartilhado entre sessões nem entre campos de assinatura diferentes.
O bitmap só sai da memória quando ``export_png`` é chamado.
"""
import base64
import io
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageChops, ImageDraw

STROKE_COLOR = (51, 51, 51, 255)  # #333
STROKE_WIDTH = 3
# Pixels mais claros que isso contam como fundo (papel branco)
INK_THRESHOLD = 250

PNG_DATA_URL_PREFIX = "data:image/png;base64,"


@dataclass(frozen=True)
class CanvasRect:
    """Posição e tamanho do canvas na tela, em pixels CSS."""
    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class PointerEvent:
    """Evento de mouse/caneta ou de toque; em toques vale o primeiro dedo."""
    client_x: float = 0
    client_y: float = 0
    touches: Sequence[Tuple[float, float]] = field(default_factory=tuple)


def _ink_mask(image: Image.Image) -> Image.Image:
    rgba = image.convert("RGBA")
    opaque = rgba.getchannel("A").point(lambda v: 255 if v > 0 else 0)
    dark = rgba.convert("L").point(lambda v: 255 if v < INK_THRESHOLD else 0)
    return ImageChops.multiply(opaque, dark)


def image_has_ink(png_bytes: bytes) -> bool:
    """True se a imagem tem pelo menos um pixel visível e não branco."""
    with Image.open(io.BytesIO(png_bytes)) as image:
        return _ink_mask(image).getbbox() is not None


def decode_png_data_url(value: str) -> bytes:
    if not value.startswith("data:image"):
        raise ValueError("signature value is not an image data URL")
    _, _, encoded = value.partition(";base64,")
    if not encoded:
        raise ValueError("signature value is not base64 encoded")
    return base64.b64decode(encoded, validate=True)


class SignatureCapture:
    def __init__(self, width: int = 500, height: int = 160, rect: Optional[CanvasRect] = None):
        self.width = width
        self.height = height
        # Sem rect o canvas é exibido 1:1
        self.rect = rect or CanvasRect(0, 0, width, height)
        self._drawing = False
        self._last_pos: Optional[Tuple[float, float]] = None
        self._image = self._blank()

    def _blank(self) -> Image.Image:
        return Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))

    def _position(self, event: PointerEvent) -> Tuple[float, float]:
        # Converte de pixels CSS para pixels do bitmap, senão o traço
        # fica deslocado do cursor quando o canvas é esticado pelo CSS.
        scale_x = self.width / self.rect.width if self.rect.width else 1
        scale_y = self.height / self.rect.height if self.rect.height else 1
        if event.touches:
            client_x, client_y = event.touches[0]
        else:
            client_x, client_y = event.client_x, event.client_y
        return (client_x - self.rect.left) * scale_x, (client_y - self.rect.top) * scale_y

    def begin(self, event: PointerEvent) -> None:
        self._drawing = True
        self._last_pos = self._position(event)

    def extend(self, event: PointerEvent) -> None:
        if not self._drawing:
            return
        pos = self._position(event)
        draw = ImageDraw.Draw(self._image)
        draw.line([self._last_pos, pos], fill=STROKE_COLOR, width=STROKE_WIDTH, joint="curve")
        # pontas arredondadas (lineCap = round)
        radius = STROKE_WIDTH / 2
        for x, y in (self._last_pos, pos):
            draw.ellipse([x - radius, y - radius, x + radius, y + radius], fill=STROKE_COLOR)
        self._last_pos = pos

    def end(self) -> None:
        self._drawing = False
        self._last_pos = None

    def clear(self) -> None:
        self.end()
        self._image = self._blank()

    @property
    def drawing(self) -> bool:
        return self._drawing

    def is_empty(self) -> bool:
        return _ink_mask(self._image).getbbox() is None

    def export_png(self) -> bytes:
        buf = io.BytesIO()
        self._image.save(buf, format="PNG")
        return buf.getvalue()

    def export_data_url(self) -> Optional[str]:
        if self.is_empty():
            return None
        return PNG_DATA_URL_PREFIX + base64.b64encode(self.export_png()).decode("ascii")
