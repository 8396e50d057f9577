"""
Blob store for uploaded drawings.

Stores to Cloudflare R2 if configured, otherwise the local UPLOAD_DIR.
Callers get back {storage_path, size, mime_type}; storage_path is opaque to
everything except this module.
"""

import logging
import uuid
from io import BytesIO
from pathlib import Path

from .config import settings
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

R2_PREFIX = "r2://"

FILE_TYPES = {
    "dwg": "cad",
    "dxf": "cad",
    "pdf": "pdf",
    "png": "image",
    "jpg": "image",
    "jpeg": "image",
    "tif": "image",
    "tiff": "image",
    "webp": "image",
}

CONTENT_TYPES = {
    "dwg": "image/vnd.dwg",
    "dxf": "image/vnd.dxf",
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "webp": "image/webp",
}


def get_extension(filename: str) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def classify_file_type(filename: str) -> str:
    """Map a file extension to cad | pdf | image."""
    ext = get_extension(filename)
    if ext not in FILE_TYPES:
        raise ValidationError(
            f"File type '{ext}' not allowed. Allowed: {', '.join(sorted(FILE_TYPES))}",
        )
    return FILE_TYPES[ext]


def _r2_configured() -> bool:
    return bool(
        settings.CLOUDFLARE_R2_ACCOUNT_ID
        and settings.CLOUDFLARE_R2_ACCESS_KEY_ID
        and settings.CLOUDFLARE_R2_SECRET_ACCESS_KEY
    )


def _r2_client():
    import boto3

    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.CLOUDFLARE_R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.CLOUDFLARE_R2_ACCESS_KEY_ID,
        aws_secret_access_key=settings.CLOUDFLARE_R2_SECRET_ACCESS_KEY,
    )


def store(file_bytes: bytes, filename: str) -> dict:
    """
    Validate and persist an uploaded drawing.

    Returns: {"storage_path": str, "size": int, "mime_type": str}
    """
    ext = get_extension(filename)
    classify_file_type(filename)

    if len(file_bytes) == 0:
        raise ValidationError("Empty file.")
    max_bytes = settings.MAX_UPLOAD_MB * 1024 * 1024
    if len(file_bytes) > max_bytes:
        raise ValidationError(
            f"File too large ({len(file_bytes) / 1024 / 1024:.1f}MB). "
            f"Maximum is {settings.MAX_UPLOAD_MB}MB.",
        )

    unique_name = f"{uuid.uuid4().hex}.{ext}"
    mime_type = CONTENT_TYPES.get(ext, "application/octet-stream")

    if _r2_configured():
        _r2_client().upload_fileobj(
            BytesIO(file_bytes),
            settings.CLOUDFLARE_R2_BUCKET,
            unique_name,
            ExtraArgs={"ContentType": mime_type},
        )
        storage_path = f"{R2_PREFIX}{unique_name}"
    else:
        upload_dir = Path(settings.UPLOAD_DIR)
        upload_dir.mkdir(parents=True, exist_ok=True)
        file_path = upload_dir / unique_name
        with open(file_path, "wb") as f:
            f.write(file_bytes)
        storage_path = str(file_path)

    logger.info("Stored %s (%d bytes) at %s", filename, len(file_bytes), storage_path)
    return {
        "storage_path": storage_path,
        "size": len(file_bytes),
        "mime_type": mime_type,
    }


def read(storage_path: str) -> bytes:
    if storage_path.startswith(R2_PREFIX):
        buf = BytesIO()
        _r2_client().download_fileobj(
            settings.CLOUDFLARE_R2_BUCKET, storage_path[len(R2_PREFIX):], buf,
        )
        return buf.getvalue()
    path = Path(storage_path)
    if not path.exists():
        raise NotFoundError("File not found on server")
    return path.read_bytes()


def delete(storage_path: str) -> None:
    if storage_path.startswith(R2_PREFIX):
        _r2_client().delete_object(
            Bucket=settings.CLOUDFLARE_R2_BUCKET, Key=storage_path[len(R2_PREFIX):],
        )
        return
    Path(storage_path).unlink(missing_ok=True)
