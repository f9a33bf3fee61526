from __future__ import annotations

import time
from pathlib import Path

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
DEFAULT_IMAGE_EXTENSION = "jpg"


class UnsupportedUploadError(ValueError):
    pass


def image_extension(filename: str | None) -> str:
    name = secure_filename(filename or "")
    if "." not in name:
        return DEFAULT_IMAGE_EXTENSION
    extension = name.rsplit(".", 1)[1].lower()
    if extension not in ALLOWED_IMAGE_EXTENSIONS:
        raise UnsupportedUploadError(f"unsupported image type: .{extension}")
    return extension


def preview_image_key(user_id: int, filename: str | None) -> str:
    return f"{user_id}/{int(time.time() * 1000)}.{image_extension(filename)}"


def save_preview_image(upload_folder: str, user_id: int, upload: FileStorage) -> str:
    key = preview_image_key(user_id, upload.filename)
    target = Path(upload_folder) / key
    target.parent.mkdir(parents=True, exist_ok=True)
    upload.save(target)
    return key
