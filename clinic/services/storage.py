"""
Uploaded file storage.

Files go through Django's default storage backend, so the same code
writes to ``MEDIA_ROOT`` locally or to whatever backend the deployment
configures.
"""
import logging
import os
import uuid

from django.conf import settings
from django.core.files.storage import default_storage

from clinic.exceptions import ValidationError

logger = logging.getLogger(__name__)


def check_upload(f) -> str:
    size_mb = (f.size or 0) / (1024 * 1024)
    if size_mb > settings.UPLOAD_MAX_MB:
        raise ValidationError({'file': f'file is larger than {settings.UPLOAD_MAX_MB} MB'})
    ctype = getattr(f, 'content_type', '') or ''
    if not any(ctype.startswith(prefix) for prefix in settings.ALLOWED_UPLOAD_TYPES):
        raise ValidationError({'file': f'unsupported file type {ctype or "unknown"}'})
    return ctype


def store_upload(f, prefix: str) -> str:
    """Save an uploaded file under ``prefix`` and return its public URL."""
    check_upload(f)
    _, ext = os.path.splitext(f.name or '')
    name = f"{prefix.strip('/')}/{uuid.uuid4().hex}{ext.lower()}"
    saved = default_storage.save(name, f)
    logger.info('stored upload %s (%d bytes)', saved, f.size or 0)
    return default_storage.url(saved)
