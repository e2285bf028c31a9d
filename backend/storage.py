# Evidence Object Storage (Cloudinary unsigned uploads)

import logging
import os

import httpx
from dotenv import load_dotenv

from errors import StorageError

load_dotenv()

logger = logging.getLogger(__name__)

# --- Configuration ---
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_UPLOAD_PRESET = os.getenv("CLOUDINARY_UPLOAD_PRESET", "evidencias_ondas")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "evidencias")
CLOUDINARY_TIMEOUT_SECONDS = float(os.getenv("CLOUDINARY_TIMEOUT_SECONDS", "60"))

ALLOWED_EXTENSIONS = frozenset({"pdf", "docx", "zip", "txt", "xlsx", "pptx", "jpg", "jpeg", "png"})


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if filename and "." in filename else ""


class CloudinaryStorage:
    """Uploads evidence files. Blobs are never deleted by this application."""

    def __init__(self, cloud_name: str = None, upload_preset: str = None, folder: str = None,
                 timeout: float = None, transport: httpx.AsyncBaseTransport = None):
        self.cloud_name = cloud_name or CLOUDINARY_CLOUD_NAME
        self.upload_preset = upload_preset or CLOUDINARY_UPLOAD_PRESET
        self.folder = folder or CLOUDINARY_FOLDER
        self.timeout = timeout or CLOUDINARY_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def upload_url(self) -> str:
        return f"https://api.cloudinary.com/v1_1/{self.cloud_name}/auto/upload"

    async def upload(self, filename: str, content: bytes, content_type: str = "application/octet-stream") -> dict:
        """Uploads one file and returns {"url": <secure url>}."""
        if not self.cloud_name:
            raise StorageError("Object storage is not configured (CLOUDINARY_CLOUD_NAME is empty)")

        data = {
            "upload_preset": self.upload_preset,
            "folder": self.folder,
            "resource_type": "auto",
        }
        files = {"file": (filename, content, content_type)}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.upload_url, data=data, files=files)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Evidence upload rejected (%s): %s", e.response.status_code, e.response.text[:500])
            raise StorageError(f"Upload rejected with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("Evidence upload failed: %r", e)
            raise StorageError("Upload failed") from e

        url = payload.get("secure_url") or payload.get("url")
        if not url:
            raise StorageError("Upload response did not include a URL")

        logger.info("Uploaded evidence %s (%d bytes)", filename, len(content))
        return {"url": url}
