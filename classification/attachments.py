"""
- Fetch stored attachment bytes from Supabase Storage (bucket + "ai/<attachment id>")
- Pick a text-extraction strategy by MIME type / filename:
    * pdf: text layer via pdfplumber; fallback to OCR (if poppler+tesseract available)
    * xlsx/xls: every sheet as "--- Sheet: <name> ---" + CSV rows (pandas)
    * docx/html/images: best-effort text extraction
    * anything else: bytes decoded as UTF-8
- Any storage or decoder failure is logged and yields None; the caller
  carries on with empty content.
"""

# =========================
# Imports
# =========================
import logging
from io import BytesIO
from typing import List, Optional

import pandas as pd
import pdfplumber
import pytesseract
import requests
from bs4 import BeautifulSoup
from docx import Document
from pdf2image import convert_from_bytes
from PIL import Image, ImageEnhance

from classification.entities import AttachmentMeta
from classification.normalize import sanitize_text
from config import Settings

log = logging.getLogger("classification.attachments")

_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".tif", ".tiff", ".webp")


# =========================
# Storage collaborator
# =========================
class StorageClient:
    """Downloads raw attachment bytes; returns None when unavailable."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return self.settings.storage_configured

    def object_url(self, attachment_id: str) -> str:
        s = self.settings
        return f"{s.supabase_url}/storage/v1/object/{s.upload_bucket}/ai/{attachment_id}"

    def download(self, attachment_id: str) -> Optional[bytes]:
        if not self.configured:
            log.warning("storage_not_configured_skipping_attachment", extra={"kv": {"attachment_id": attachment_id}})
            return None
        key = self.settings.supabase_service_role_key
        headers = {"Authorization": f"Bearer {key}", "apikey": key}
        url = self.object_url(attachment_id)
        try:
            resp = self._session.get(url, headers=headers, timeout=self.settings.storage_timeout_sec)
        except requests.RequestException as e:
            log.warning("attachment_download_failed", extra={"kv": {"attachment_id": attachment_id, "error": str(e)}})
            return None
        if resp.status_code != 200:
            log.warning(
                "attachment_download_failed",
                extra={"kv": {"attachment_id": attachment_id, "status": resp.status_code}},
            )
            return None
        return resp.content


# =========================
# Decoders
# =========================
def _extract_pdf_text_layer(pdf_bytes: bytes) -> str:
    out = []
    with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
        for page in pdf.pages:
            t = page.extract_text()
            if t:
                out.append(t)
    return "\n".join(out).strip()


def _ocr_pdf(pdf_bytes: bytes, dpi: int = 300) -> str:
    """OCR for scanned PDFs (requires poppler & tesseract on the host)."""
    lines: List[str] = []
    for img in convert_from_bytes(pdf_bytes, dpi=dpi):
        img = ImageEnhance.Contrast(img.convert("L")).enhance(2.0)
        lines.extend(pytesseract.image_to_string(img).split("\n"))
    return "\n".join(lines).strip()


def _extract_pdf(pdf_bytes: bytes) -> str:
    text = _extract_pdf_text_layer(pdf_bytes)
    if text:
        return text
    log.info("pdf_text_layer_empty_trying_ocr")
    return _ocr_pdf(pdf_bytes)


def _ocr_image(img_bytes: bytes) -> str:
    img = Image.open(BytesIO(img_bytes))
    img = ImageEnhance.Contrast(img.convert("L")).enhance(2.0)
    return pytesseract.image_to_string(img)


def _extract_spreadsheet(xls_bytes: bytes) -> str:
    out: List[str] = []
    xls = pd.ExcelFile(BytesIO(xls_bytes))
    for sheet in xls.sheet_names:
        df = pd.read_excel(xls, sheet_name=sheet, header=None, dtype=str)
        csv = df.fillna("").to_csv(index=False, header=False)
        out.append(f"\n--- Sheet: {sheet} ---\n{csv}\n")
    return "".join(out)


def _extract_docx(docx_bytes: bytes) -> str:
    doc = Document(BytesIO(docx_bytes))
    parts = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            parts.append("\t".join(cell.text for cell in row.cells))
    return "\n".join(parts).strip()


def _extract_html(html_bytes: bytes) -> str:
    soup = BeautifulSoup(html_bytes.decode("utf-8", errors="ignore"), "lxml")
    return soup.get_text(separator="\n", strip=True)


def select_decoder(mime_type: str, name: str) -> str:
    """Return the decoder tag for a MIME type / filename pair."""
    mime = (mime_type or "").lower()
    n = (name or "").lower().strip()
    if "pdf" in mime or n.endswith(".pdf"):
        return "pdf"
    if "spreadsheet" in mime or "excel" in mime or n.endswith((".xlsx", ".xls")):
        return "spreadsheet"
    if n.endswith(".docx"):
        return "docx"
    if "html" in mime or n.endswith((".htm", ".html")):
        return "html"
    if mime.startswith("image/") or n.endswith(_IMAGE_SUFFIXES):
        return "image"
    return "text"


_DECODERS = {
    "pdf": _extract_pdf,
    "spreadsheet": _extract_spreadsheet,
    "docx": _extract_docx,
    "html": _extract_html,
    "image": _ocr_image,
    "text": lambda b: b.decode("utf-8", errors="ignore"),
}


# =========================
# Public: attachment -> text
# =========================
def decode_attachment_bytes(file_bytes: bytes, mime_type: str, name: str) -> Optional[str]:
    method = select_decoder(mime_type, name)
    try:
        text = _DECODERS[method](file_bytes)
    except Exception:
        log.exception("attachment_decode_failed", extra={"kv": {"method": method, "name": name}})
        return None
    log.info("attachment_decoded", extra={"kv": {"method": method, "chars": len(text or "")}})
    return sanitize_text(text or "")


def read_attachment_content(attachment: Optional[AttachmentMeta], storage: StorageClient) -> Optional[str]:
    """Fetch and decode an attachment; None when anything along the way fails."""
    if attachment is None or not attachment.id:
        return None
    file_bytes = storage.download(attachment.id)
    if file_bytes is None:
        return None
    return decode_attachment_bytes(file_bytes, attachment.mime_type, attachment.original_name or attachment.filename)
