"""
Token authentication class referenced from the REST framework settings.

Kept apart from the login views so that DRF can import it while it
initialises without pulling in the view modules.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """Token authentication using the ``Token`` keyword."""

    keyword = 'Token'
