"""Shared slowapi limiter, keyed by client address."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from supplyhub.core.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def verification_rate_limit() -> str:
    return get_settings().verification_rate_limit
