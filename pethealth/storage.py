# pethealth/storage.py
"""
Almacenamiento de imágenes de mascotas en disco, bajo MEDIA_DIR/pets/<owner_id>/.
La URL devuelta es servida por el mount /media de la app.
"""
from fastapi import HTTPException, UploadFile
from pathlib import Path
from uuid import uuid4
from urllib.parse import urlparse
import io
import logging
import aiofiles
from PIL import Image, UnidentifiedImageError

from .config import get_settings

logger = logging.getLogger(__name__)

MEDIA_PREFIX = "/media"
CHUNK = 1024 * 1024

ALLOWED_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
# La extensión sale del formato detectado, nunca del nombre que manda el cliente
FORMAT_EXT = {"JPEG": ".jpg", "PNG": ".png", "GIF": ".gif", "WEBP": ".webp"}


def _owner_dir(owner_id: str) -> Path:
    return Path("pets") / owner_id


def url_to_path(url: str) -> Path | None:
    """/media/pets/<owner>/<file> -> ruta absoluta; None si no es una URL nuestra."""
    settings = get_settings()
    p = Path(urlparse(url).path)
    try:
        rel = p.relative_to(MEDIA_PREFIX)
    except ValueError:
        return None
    if ".." in rel.parts:
        return None
    return Path(settings.media_dir) / rel


async def _read_limited(file: UploadFile, max_bytes: int) -> bytes | None:
    """Lee el fichero entero; None si supera max_bytes."""
    data = bytearray()
    while chunk := await file.read(CHUNK):
        data.extend(chunk)
        if len(data) > max_bytes:
            return None
    return bytes(data)


def detect_image_ext(data: bytes) -> str | None:
    """Extensión del formato real de la imagen, o None si no es una imagen admitida."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None
    return FORMAT_EXT.get(fmt)


async def save_pet_image(file: UploadFile, owner_id: str) -> str:
    """Guarda la imagen y devuelve su URL pública."""
    settings = get_settings()
    if file.content_type not in ALLOWED_TYPES:
        raise HTTPException(status_code=415, detail=f"Tipo no permitido. Usa: {', '.join(sorted(ALLOWED_TYPES))}")

    data = await _read_limited(file, settings.max_image_mb * 1024 * 1024)
    if data is None:
        raise HTTPException(status_code=413, detail=f"La imagen supera {settings.max_image_mb}MB")

    ext = detect_image_ext(data)
    if ext is None:
        raise HTTPException(status_code=415, detail="El fichero no es una imagen válida")

    rel_path = _owner_dir(owner_id) / f"{uuid4().hex}{ext}"
    abs_path = Path(settings.media_dir) / rel_path
    abs_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(abs_path, "wb") as out:
        await out.write(data)

    return f"{MEDIA_PREFIX}/{rel_path.as_posix()}"

def delete_pet_image(url: str | None, owner_id: str) -> bool:
    """Borrado best effort. Solo toca ficheros dentro de la carpeta del dueño."""
    if not url:
        return False
    path = url_to_path(url)
    if path is None:
        logger.warning("URL de imagen ajena al almacenamiento: %s", url)
        return False
    owner_root = Path(get_settings().media_dir) / _owner_dir(owner_id)
    if owner_root not in path.parents:
        logger.warning("Imagen %s no pertenece al usuario %s", url, owner_id)
        return False
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        logger.warning(f"No se pudo borrar la imagen {url}: {e}")
        return False
