"""Helpers: run_id generation, image loading, and output folders."""
import base64
import re
import time
import uuid
from pathlib import Path

MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}
DEFAULT_MEDIA_TYPE = "image/jpeg"

_DATA_URI_RE = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)


def generate_run_id() -> str:
    """Return a unique run ID (UUID)."""
    return str(uuid.uuid4())


def media_type_for(path: str | Path) -> str:
    """Media type from the file extension; unknown extensions are treated as JPEG."""
    ext = Path(path).suffix.lstrip(".").lower()
    return MEDIA_TYPES.get(ext, DEFAULT_MEDIA_TYPE)


def to_data_uri(image: bytes | str, media_type: str = DEFAULT_MEDIA_TYPE) -> str:
    """
    Normalize image input to a data URI.
    Accepts raw bytes, an existing data URI (returned as is), or bare base64 text.
    """
    if isinstance(image, bytes):
        return f"data:{media_type};base64,{base64.b64encode(image).decode('ascii')}"
    image = image.strip()
    if _DATA_URI_RE.match(image):
        return image
    return f"data:{media_type};base64,{image}"


def read_image(path: str | Path) -> str:
    """Read an image file as a data URI. Raises FileNotFoundError if missing."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Image file not found: {path}")
    return to_data_uri(p.read_bytes(), media_type_for(p))


def ensure_output_dir(base_out: str | Path, run_id: str) -> Path:
    """Create outputs/<run_id>/ and return the path."""
    out_dir = Path(base_out) / run_id
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


def elapsed_ms(start: float) -> int:
    """Milliseconds since a time.perf_counter() reading."""
    return int((time.perf_counter() - start) * 1000)
