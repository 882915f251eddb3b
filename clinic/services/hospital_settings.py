"""
Hospital-wide settings stored as a JSON document on disk.

The document holds branding, the token prefix and the session
templates used to generate a day's sessions.  Reads go through the
Django cache; writes replace the file and invalidate the cached copy.
"""
from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

CACHE_KEY = 'hospital:settings'

DEFAULT_SETTINGS: Dict[str, Any] = {
    'name': 'City Hospital',
    'tagline': '',
    'logo': '',
    'phone': '',
    'email': '',
    'address': '',
    'tokenPrefix': 'T',
    'maxTokensPerSession': 50,
    'allowPublicBooking': True,
    'sessionTemplates': [
        {'name': 'Morning', 'shortCode': 'S1', 'startTime': '09:00', 'endTime': '13:00',
         'maxTokens': 50, 'isActive': True},
        {'name': 'Afternoon', 'shortCode': 'S2', 'startTime': '14:00', 'endTime': '17:00',
         'maxTokens': 40, 'isActive': True},
        {'name': 'Evening', 'shortCode': 'S3', 'startTime': '17:00', 'endTime': '20:00',
         'maxTokens': 30, 'isActive': False},
    ],
}


def _read_file() -> Dict[str, Any]:
    path = settings.HOSPITAL_SETTINGS_FILE
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, ValueError):
        logger.exception('could not read hospital settings from %s, using defaults', path)
        return {}
    if not isinstance(data, dict):
        logger.warning('hospital settings file %s does not hold an object, ignoring it', path)
        return {}
    return data


def get_hospital_settings() -> Dict[str, Any]:
    """Return the merged settings (defaults overlaid with the stored file)."""
    cached = cache.get(CACHE_KEY)
    if cached is not None:
        return copy.deepcopy(cached)
    merged = copy.deepcopy(DEFAULT_SETTINGS)
    merged.update(_read_file())
    cache.set(CACHE_KEY, merged, settings.HOSPITAL_SETTINGS_CACHE_SECONDS)
    return copy.deepcopy(merged)


def update_hospital_settings(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``changes`` into the stored settings and persist them."""
    current = get_hospital_settings()
    current.update(changes)
    path = settings.HOSPITAL_SETTINGS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(current, indent=2, ensure_ascii=False), encoding='utf-8')
    cache.delete(CACHE_KEY)
    logger.info('hospital settings updated: %s', sorted(changes))
    return current


def token_prefix() -> str:
    return str(get_hospital_settings().get('tokenPrefix') or '')


def session_templates(active_only: bool = True) -> list[dict]:
    templates = get_hospital_settings().get('sessionTemplates') or []
    if active_only:
        templates = [t for t in templates if t.get('isActive', True)]
    return templates
