"""
Map metadata extraction — the out-of-band "processing" phase of an upload.

Runs after the upload response has been sent, in its own DB session, and
flips the map to ready or error. PDFs are read with pdfplumber (page count,
first page size in points); PNGs report pixel size from the IHDR chunk.
CAD drawings are not parsed — they go straight to ready with no dimensions.

Does NOT vectorize or interpret drawing content.
"""

import io
import logging
import struct

from . import models, storage
from .database import SessionLocal
from .map_registry import transition

logger = logging.getLogger(__name__)

MAX_PAGES = 500
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class MapProcessor:
    """Extracts {width, height, pages} from a stored drawing."""

    def extract_metadata(self, file_type: str, mime_type: str, file_bytes: bytes) -> dict:
        if file_type == "pdf":
            return self._extract_pdf(file_bytes)
        if file_type == "image" and mime_type == "image/png":
            return self._extract_png(file_bytes)
        return {}

    def _extract_pdf(self, file_bytes: bytes) -> dict:
        import pdfplumber

        try:
            with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
                page_count = len(pdf.pages)
                if page_count == 0:
                    raise ValueError("PDF has no pages")
                if page_count > MAX_PAGES:
                    raise ValueError(f"PDF has {page_count} pages (max {MAX_PAGES})")
                first = pdf.pages[0]
                return {
                    "pages": page_count,
                    "width": float(first.width),
                    "height": float(first.height),
                }
        except ValueError:
            raise  # Re-raise our validation errors
        except Exception as e:
            raise ValueError(f"Failed to read PDF: {e}") from e

    def _extract_png(self, file_bytes: bytes) -> dict:
        # Signature (8) + IHDR length (4) + "IHDR" (4) + width (4) + height (4)
        if len(file_bytes) < 24 or not file_bytes.startswith(PNG_SIGNATURE):
            raise ValueError("Not a valid PNG file")
        if file_bytes[12:16] != b"IHDR":
            raise ValueError("PNG is missing its IHDR header")
        width, height = struct.unpack(">II", file_bytes[16:24])
        return {"width": width, "height": height, "pages": 1}


def process_map(map_id: int, session_factory=SessionLocal) -> None:
    """
    Background task: processing → ready | error.

    Never raises — extraction failures are recorded on the map as error.
    """
    db = session_factory()
    try:
        db_map = db.query(models.Map).filter(models.Map.id == map_id).first()
        if not db_map:
            logger.warning("Map %s vanished before processing", map_id)
            return
        if db_map.status != models.MapStatus.PROCESSING:
            logger.info("Map %s is %s, skipping processing", map_id, db_map.status.value)
            return

        try:
            file_bytes = storage.read(db_map.storage_path)
            metadata = MapProcessor().extract_metadata(
                db_map.file_type.value, db_map.mime_type, file_bytes,
            )
        except Exception as e:
            logger.exception("Processing failed for map %s", map_id)
            db_map.processing_error = str(e)
            transition(db_map, models.MapStatus.ERROR)
        else:
            db_map.metadata_json = metadata
            db_map.processing_error = None
            transition(db_map, models.MapStatus.READY)
        db.commit()
        logger.info("Map %s processed: %s", map_id, db_map.status.value)
    finally:
        db.close()
