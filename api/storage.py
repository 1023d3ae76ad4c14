import logging
import os
import time

from django.core.files.storage import default_storage

from api.exceptions import BadRequest

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE = 10 * 1024 * 1024


def validate_upload(upload, allowed_types, max_size=MAX_UPLOAD_SIZE):
    if upload is None:
        raise BadRequest("No file provided")
    if upload.content_type not in allowed_types:
        raise BadRequest(f"Invalid file type. Allowed types: {', '.join(allowed_types)}")
    if upload.size > max_size:
        raise BadRequest(f"File too large. Maximum size is {max_size // (1024 * 1024)}MB")


def save_upload(folder, upload, suffix="file"):
    """Store an uploaded file under `folder` and return its storage path."""
    extension = os.path.splitext(upload.name)[1].lower() or ".bin"
    name = f"{folder}/{int(time.time() * 1000)}-{suffix}{extension}"
    return default_storage.save(name, upload)


def delete_stored_file(path):
    if not path:
        return False
    if default_storage.exists(path):
        default_storage.delete(path)
        logger.info("Deleted stored file %s", path)
        return True
    return False


def file_url(path, request=None):
    url = default_storage.url(path)
    if request is not None and url.startswith("/"):
        return request.build_absolute_uri(url)
    return url
