from __future__ import annotations

"""
Image store for chat attachments.

Saves uploaded bytes under the upload directory with a random name and
returns the public reference ("/uploads/<file>") that the messaging engine
stores on the message. File contents are never inspected.
"""

import logging
import secrets
from pathlib import Path
from typing import Iterable, Optional, Union

from ..errors import InvalidInput, StoreUnavailable
from .atomic_store import atomic_write_bytes

log = logging.getLogger(__name__)

DEFAULT_ALLOWED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp")
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
URL_PREFIX = "/uploads"


class ImageStore:
    def __init__(
        self,
        upload_dir: Union[str, Path],
        *,
        allowed_extensions: Optional[Iterable[str]] = None,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.allowed_extensions = {
            e.lower() for e in (allowed_extensions or DEFAULT_ALLOWED_EXTENSIONS)
        }
        self.max_bytes = int(max_bytes)

    def save(self, filename: str, data: bytes) -> str:
        ext = Path(filename or "").suffix.lower()
        if ext not in self.allowed_extensions:
            raise InvalidInput(f"unsupported image type: {ext or 'none'}")
        if not data:
            raise InvalidInput("empty upload")
        if len(data) > self.max_bytes:
            raise InvalidInput(f"upload exceeds {self.max_bytes} bytes")

        stored_name = f"{secrets.token_hex(12)}{ext}"
        try:
            atomic_write_bytes(self.upload_dir / stored_name, data)
        except OSError as e:
            log.error("failed to store upload %s: %s", stored_name, e)
            raise StoreUnavailable("cannot store upload") from e

        log.info("stored upload %s (%d bytes)", stored_name, len(data))
        return f"{URL_PREFIX}/{stored_name}"

    def discard(self, ref: str) -> None:
        """Remove an upload saved for a message that was never sent."""
        name = ref.rsplit("/", 1)[-1]
        try:
            (self.upload_dir / name).unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            log.warning("failed to discard upload %s: %s", name, e)
            return
        log.info("discarded upload %s", name)
