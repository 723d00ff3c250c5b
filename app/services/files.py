# EquipTrack - Equipment Inventory and Calibration Tracking
# Copyright (C) 2025 EquipTrack contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


"""Storage for uploaded calibration certificates and movement photos."""

import logging
import os
import secrets
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from fastapi import UploadFile

from app.config import get_settings

logger = logging.getLogger(__name__)

CERTIFICATE_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

PHOTO_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
}


class UploadError(Exception):
    """An uploaded file was rejected."""


def upload_root() -> Path:
    return Path(get_settings().uploads.directory)


def _store(upload: UploadFile, subdir: str, allowed: Dict[str, str], prefix: str) -> dict:
    filename = os.path.basename(upload.filename or "")
    ext = Path(filename).suffix.lower()
    if ext not in allowed:
        raise UploadError(
            f"Invalid file type. Allowed: {', '.join(sorted(e.lstrip('.') for e in allowed))}"
        )

    max_bytes = get_settings().uploads.max_size_mb * 1024 * 1024
    content = upload.file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise UploadError(f"File too large. Maximum size is {get_settings().uploads.max_size_mb} MB")
    if not content:
        raise UploadError("Uploaded file is empty")

    target_dir = upload_root() / subdir
    target_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    stored_name = f"{prefix}_{timestamp}_{secrets.token_hex(4)}{ext}"
    target = target_dir / stored_name
    target.write_bytes(content)

    logger.info("Stored upload %s (%d bytes)", target, len(content))

    return {
        "path": str(target),
        "original_name": filename,
        "size": len(content),
        "mime_type": allowed[ext],
    }


def save_certificate(upload: UploadFile, equipment_code: str) -> dict:
    """Save a calibration certificate file."""
    safe_code = "".join(c for c in equipment_code if c.isalnum() or c in "-_") or "equipment"
    return _store(upload, "certificates", CERTIFICATE_TYPES, safe_code)


def save_photo(upload: UploadFile, action: str) -> dict:
    """Save a movement photo."""
    return _store(upload, "photos", PHOTO_TYPES, action.lower())


def delete_file(path: Optional[str]) -> bool:
    """Remove a stored file if it is inside the upload directory."""
    if not path:
        return False

    target = Path(path).resolve()
    root = upload_root().resolve()
    if root not in target.parents:
        logger.warning("Refusing to delete file outside upload directory: %s", path)
        return False

    if target.exists():
        target.unlink()
        return True
    return False


def resolve_file(path: Optional[str]) -> Optional[Path]:
    """Path to an existing stored file, or None."""
    if not path:
        return None
    target = Path(path)
    return target if target.is_file() else None
