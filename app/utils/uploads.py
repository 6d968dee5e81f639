"""Label upload validation and image preparation"""
import io
import logging
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
ALLOWED_CONTENT_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "application/pdf",
}
PDF_CONTENT_TYPE = "application/pdf"
# Longest edge sent to the vision model
MAX_IMAGE_EDGE = 1568

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
}


def validate_label_file(content: bytes, content_type: Optional[str]) -> Optional[str]:
    """Return an error message, or None when the file is acceptable."""
    if not content:
        return "File is empty"
    if len(content) > MAX_FILE_SIZE:
        return "File size exceeds 10MB limit"
    if content_type not in ALLOWED_CONTENT_TYPES:
        return "Invalid file type. Only JPEG, PNG, WEBP and PDF files are allowed"

    if content_type == PDF_CONTENT_TYPE:
        if not content.startswith(b"%PDF"):
            return "File is not a valid PDF"
        return None

    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        return "File is not a valid image"
    return None


def extension_for(content_type: Optional[str], filename: Optional[str] = None) -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[1].lower()
    return _EXTENSIONS.get(content_type or "", "bin")


def prepare_image(content: bytes) -> Tuple[bytes, str]:
    """
    Downscale a label image for the vision model.

    Returns the encoded bytes and their mime type. PNG stays PNG (labels are
    often line art); everything else is re-encoded as JPEG.
    """
    with Image.open(io.BytesIO(content)) as img:
        fmt = (img.format or "").upper()
        if max(img.size) > MAX_IMAGE_EDGE:
            img.thumbnail((MAX_IMAGE_EDGE, MAX_IMAGE_EDGE))
        out = io.BytesIO()
        if fmt == "PNG":
            img.save(out, format="PNG", optimize=True)
            return out.getvalue(), "image/png"
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        img.save(out, format="JPEG", quality=90)
        return out.getvalue(), "image/jpeg"


def extract_pdf_text(content: bytes) -> str:
    """Text layer of a PDF label, page by page"""
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(content))
    pages = []
    for page in reader.pages:
        text = page.extract_text() or ""
        if text.strip():
            pages.append(text.strip())
    return "\n\n".join(pages)
