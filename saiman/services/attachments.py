"""Image attachment storage under the data directory."""

import io
import shutil
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from saiman.models.messages import MAX_IMAGE_DIMENSION, Attachment, cuid
from saiman.utils.logging import get_logger

logger = get_logger(__name__)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
}

# Size used when the image cannot be decoded
_FALLBACK_SIZE = (100, 100)


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "jpg")


def resize_if_needed(data: bytes, mime_type: str, max_dimension: int = MAX_IMAGE_DIMENSION) -> tuple[bytes, int, int]:
    """Downscale so the longer edge fits ``max_dimension``, keeping the aspect ratio.

    Returns the (possibly unchanged) bytes and the resulting width and height.
    Undecodable data is returned as-is.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError):
        logger.debug(f"Could not decode {mime_type} image, storing as-is")
        return data, *_FALLBACK_SIZE

    width, height = image.size
    if width <= max_dimension and height <= max_dimension:
        return data, width, height

    resized = image.copy()
    resized.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    output = io.BytesIO()
    if mime_type == "image/png":
        resized.save(output, format="PNG")
    elif mime_type == "image/gif":
        resized.save(output, format="GIF")
    else:
        if resized.mode not in ("RGB", "L"):
            resized = resized.convert("RGB")
        resized.save(output, format="JPEG", quality=85)

    logger.debug(f"Resized image from {width}x{height} to {resized.width}x{resized.height}")
    return output.getvalue(), resized.width, resized.height


class AttachmentStore:
    """Files live at ``<base_dir>/<conversation id>/<attachment id>.<ext>``."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, attachment: Attachment) -> Path:
        return self.base_dir / attachment.relative_path

    def conversation_dir(self, conversation_id: str) -> Path:
        """Directory holding a conversation's files.

        Raises:
            ValueError: The id would resolve outside ``base_dir``
        """
        base = self.base_dir.resolve()
        target = (base / conversation_id).resolve()
        if target.parent != base:
            raise ValueError(f"Invalid conversation id for attachment storage: {conversation_id!r}")
        return target

    def save(self, data: bytes, filename: str, conversation_id: str, attachment_id: str | None = None) -> Attachment:
        """Resize if needed, write to disk and return the stored attachment."""
        attachment_id = attachment_id or cuid()
        mime_type = Attachment.mime_type_for(filename)
        stored_data, width, height = resize_if_needed(data, mime_type)

        conversation_dir = self.conversation_dir(conversation_id)
        file_name = f"{attachment_id}.{extension_for(mime_type)}"
        relative_path = f"{conversation_id}/{file_name}"
        full_path = conversation_dir / file_name
        conversation_dir.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(stored_data)
        logger.debug(f"Saved attachment: {relative_path}")

        return Attachment(
            id=attachment_id,
            filename=filename,
            mime_type=mime_type,
            relative_path=relative_path,
            width=width,
            height=height,
        )

    def load_bytes(self, attachment: Attachment) -> bytes | None:
        """Stored bytes, or ``None`` when the file is gone."""
        try:
            return self.path_for(attachment).read_bytes()
        except OSError as e:
            logger.warning(f"Attachment {attachment.relative_path} unavailable: {e}")
            return None

    def delete(self, attachment: Attachment) -> None:
        self.path_for(attachment).unlink(missing_ok=True)
        logger.debug(f"Deleted attachment: {attachment.relative_path}")

    def delete_all(self, conversation_id: str) -> None:
        """Remove every attachment of a conversation."""
        shutil.rmtree(self.conversation_dir(conversation_id), ignore_errors=True)
        logger.debug(f"Deleted all attachments for conversation: {conversation_id}")
