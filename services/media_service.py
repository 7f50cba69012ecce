"""
Media Service Module

This module stores post images in Cloudinary through its signed REST upload
API. Files are checked locally (image content type, size limit) before any
network call; store failures surface as MediaUploadError so callers can roll
back whatever they already uploaded.
"""

import hashlib
import time
from typing import Any, Dict, Optional

import requests

from config import settings
from data.models import ImageRef
from services.protocols import Upload
from utils.exceptions import InvalidInputError, MediaUploadError
from utils.logger import get_logger

logger = get_logger(__name__)


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """
    Compute a Cloudinary request signature.

    Parameters are sorted by name, joined as ``key=value`` pairs with ``&``,
    suffixed with the API secret and hashed with SHA-1.

    Args:
        params: Parameters to sign (file, api_key and signature excluded).
        api_secret: The account's API secret.

    Returns:
        str: Hex digest signature.
    """
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def validate_upload(upload: Upload, max_bytes: Optional[int] = None) -> None:
    """
    Reject files that are not images or exceed the size limit.

    Raises:
        InvalidInputError: If the upload is not acceptable.
    """
    max_bytes = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES
    if not (upload.content_type or "").lower().startswith("image/"):
        raise InvalidInputError("Only image files are allowed")
    if upload.size == 0:
        raise InvalidInputError("Uploaded file is empty")
    if upload.size > max_bytes:
        raise InvalidInputError(f"Image exceeds the {max_bytes // (1024 * 1024)}MB limit")


class CloudinaryStore:
    """ObjectStore implementation backed by the Cloudinary upload API."""

    def __init__(self, cloud_name: Optional[str] = None, api_key: Optional[str] = None,
                 api_secret: Optional[str] = None, folder: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.cloud_name = cloud_name or settings.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key or settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret or settings.CLOUDINARY_API_SECRET
        self.folder = folder if folder is not None else settings.CLOUDINARY_FOLDER
        self.session = session or requests.Session()

    def _endpoint(self, action: str) -> str:
        return f"{settings.CLOUDINARY_API_BASE}/{self.cloud_name}/image/{action}"

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(params, timestamp=int(time.time()))
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    def _post(self, action: str, data: Dict[str, Any], files=None) -> Dict[str, Any]:
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise MediaUploadError("Object store credentials are not configured")
        try:
            response = self.session.post(
                self._endpoint(action), data=data, files=files, timeout=settings.UPLOAD_TIMEOUT
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Object store {action} failed: {e}")
            raise MediaUploadError(f"Object store {action} failed: {e}") from e
        except ValueError as e:
            logger.error(f"Object store returned an unreadable {action} response: {e}")
            raise MediaUploadError("Object store returned an unreadable response") from e

    def put(self, upload: Upload) -> ImageRef:
        """
        Upload one image into the configured folder.

        Args:
            upload: The image to store.

        Returns:
            ImageRef: secure URL and public id of the stored image.

        Raises:
            InvalidInputError: If the file is not an image or is too large.
            MediaUploadError: If Cloudinary rejected the upload or was unreachable.
        """
        validate_upload(upload)
        params = {"folder": self.folder} if self.folder else {}
        body = self._post(
            "upload",
            self._signed(params),
            files={"file": (upload.filename, upload.data, upload.content_type)},
        )
        url = body.get("secure_url") or body.get("url")
        public_id = body.get("public_id")
        if not url or not public_id:
            raise MediaUploadError("Object store response is missing url or public_id")
        logger.info(f"Uploaded image {public_id}")
        return ImageRef(url=url, public_id=public_id)

    def delete(self, ref: ImageRef) -> None:
        """Destroy a stored image; an already missing image is not an error."""
        body = self._post("destroy", self._signed({"public_id": ref.public_id}))
        result = body.get("result")
        if result not in ("ok", "not found"):
            raise MediaUploadError(f"Object store could not delete {ref.public_id}: {result}")
        logger.info(f"Deleted image {ref.public_id} ({result})")
