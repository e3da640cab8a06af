import hashlib
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Callable, Dict, List, Optional, Union

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.generic import ArrayObject, NameObject
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from app.schemas.envelope import FieldSpec, FieldType
from app.services.field_layout import resolve_placement

FONT = "Helvetica"
MIN_FONT_SIZE = 6

# Valor já preparado para desenhar: texto, checkbox ou PNG da assinatura
SealValue = Union[str, bool, bytes]


@dataclass(frozen=True)
class Box:
    """Caixa em pontos PDF, origem no canto inferior esquerdo."""
    x: float
    y: float
    width: float
    height: float


@dataclass
class CompletionCertificate:
    request_id: str
    title: str
    recipient_name: str
    recipient_email: str
    completed_at: datetime
    ip: Optional[str] = None
    user_agent: Optional[str] = None


def _fit_text(text: str, size: float, max_width: float) -> str:
    if max_width <= 0:
        return text
    while text and stringWidth(text, FONT, size) > max_width:
        text = text[:-1]
    return text


def _draw_text(c: canvas.Canvas, box: Box, value: SealValue) -> None:
    size = max(MIN_FONT_SIZE, box.height * 0.7)
    c.setFillColorRGB(0, 0, 0)
    c.setFont(FONT, size)
    c.drawString(box.x + 2, box.y + box.height * 0.2, _fit_text(str(value), size, box.width - 4))


def _draw_checkbox(c: canvas.Canvas, box: Box, value: SealValue) -> None:
    if value is not True:
        return
    inset = box.width * 0.2
    c.setStrokeColorRGB(0, 0, 0)
    c.setLineWidth(max(1, box.width * 0.1))
    top = box.y + box.height
    c.line(box.x + inset, top - inset, box.x + box.width - inset, box.y + inset)
    c.line(box.x + box.width - inset, top - inset, box.x + inset, box.y + inset)


def _draw_signature(c: canvas.Canvas, box: Box, value: SealValue) -> None:
    image = ImageReader(BytesIO(value))
    image_w, image_h = image.getSize()
    # Mantém a proporção dentro da caixa, alinhado ao topo
    scale = min(box.width / image_w, box.height / image_h)
    w, h = image_w * scale, image_h * scale
    c.drawImage(image, box.x, box.y + box.height - h, width=w, height=h, mask="auto")


FIELD_RENDERERS: Dict[FieldType, Callable[[canvas.Canvas, Box, SealValue], None]] = {
    FieldType.TEXT: _draw_text,
    FieldType.DATE: _draw_text,
    FieldType.CHECKBOX: _draw_checkbox,
    FieldType.SIGNATURE: _draw_signature,
}


def _overlay_page(width: float, height: float, ops: List[tuple]) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=(width, height))
    for field_type, box, value in ops:
        FIELD_RENDERERS[field_type](c, box, value)
    c.showPage()
    c.save()
    return buf.getvalue()


def _flatten(page) -> None:
    # Remove widgets de formulário para o documento final não ser editável
    if "/Annots" not in page:
        return
    annots = page["/Annots"]
    kept = [a for a in annots if a.get_object().get("/Subtype") != "/Widget"]
    if kept:
        page[NameObject("/Annots")] = ArrayObject(kept)
    else:
        del page["/Annots"]


def _certificate_page(cert: CompletionCertificate, template_sha256: str) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    _, page_h = letter
    c.setFont(FONT, 24)
    c.drawString(50, page_h - 50, "Certificate of Completion")
    c.setFont(FONT, 10)
    c.setFillColorRGB(0.5, 0.5, 0.5)
    c.drawString(50, page_h - 80, f"Envelope ID: {cert.request_id}")
    c.setFillColorRGB(0, 0, 0)

    lines = [
        f"DOCUMENT TITLE: {cert.title or 'Untitled Document'}",
        f"SIGNER NAME: {cert.recipient_name or 'Authorized User'}",
        f"SIGNER EMAIL: {cert.recipient_email or 'N/A'}",
        f"COMPLETED AT: {cert.completed_at.isoformat()}",
        f"IP ADDRESS: {cert.ip or 'Not recorded'}",
        f"USER AGENT: {cert.user_agent or 'N/A'}",
        "",
        "SECURITY VERIFICATION:",
        "This document was signed through a single-use secure link and sealed by the server.",
        f"Original document SHA-256: {template_sha256}",
    ]
    y = page_h - 150
    for line in lines:
        c.drawString(50, y, line[:110])
        y -= 16
    c.showPage()
    c.save()
    return buf.getvalue()


def seal_pdf(
    template_bytes: bytes,
    fields: List[FieldSpec],
    values: Dict[str, SealValue],
    certificate: CompletionCertificate,
) -> bytes:
    """
    Desenha os valores sobre o PDF original, remove os campos editáveis e
    anexa a página de certificado. Devolve os bytes do PDF selado.
    """
    reader = PdfReader(BytesIO(template_bytes))
    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)
    num_pages = len(writer.pages)

    ops_by_page = defaultdict(list)
    for field in fields:
        value = values.get(field.id)
        if value is None or value == "" or value is False:
            continue
        page_index = max(0, field.page_number - 1)
        if page_index >= num_pages:
            logging.warning(f"Field {field.id} points to page {field.page_number}, document has {num_pages}; skipped")
            continue
        ops_by_page[page_index].append((field, value))

    for page_index, items in ops_by_page.items():
        page = writer.pages[page_index]
        box = page.mediabox
        x0, y0 = float(box.left), float(box.bottom)
        width, height = float(box.width), float(box.height)
        ops = []
        for field, value in items:
            placement = resolve_placement(field, width, height)
            pdf_box = Box(
                x=x0 + placement.left,
                y=y0 + height - placement.top - placement.height,
                width=placement.width,
                height=placement.height,
            )
            ops.append((field.type, pdf_box, value))
        overlay = PdfReader(BytesIO(_overlay_page(x0 + width, y0 + height, ops)))
        page.merge_page(overlay.pages[0])

    for page in writer.pages:
        _flatten(page)

    template_sha256 = hashlib.sha256(template_bytes).hexdigest()
    cert_reader = PdfReader(BytesIO(_certificate_page(certificate, template_sha256)))
    writer.add_page(cert_reader.pages[0])
    writer.add_metadata({"/Title": certificate.title or "Signed document"})

    output = BytesIO()
    writer.write(output)
    logging.info(f"Envelope {certificate.request_id} sealed ({num_pages} pages + certificate)")
    return output.getvalue()
