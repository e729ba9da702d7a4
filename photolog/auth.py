import base64
import os
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Request, Response
from jose import jwe, jwt, JOSEError

from .errors import IntegrityError, Unauthorized

logger = logging.getLogger(__name__)

AUTH_COOKIE = 'AUTH'
DEFAULT_AGE = 60 * 60 * 24 * 7  # One week

# HMAC algorithm by hash key length, AES-GCM variant by block key length
HASH_ALGORITHMS = {32: 'HS256', 64: 'HS512'}
BLOCK_ENCRYPTIONS = {16: 'A128GCM', 24: 'A192GCM', 32: 'A256GCM'}

# Development keys, override AUTH_HASH_KEY / AUTH_BLOCK_KEY in production
DEV_HASH_KEY = 'd6f1c0a2' * 8
DEV_BLOCK_KEY = '3b9e07c4' * 4


def _canonical(token: str) -> bool:
    """Each segment must be exactly what re-encoding its bytes yields"""
    for segment in token.split('.'):
        try:
            raw = base64.urlsafe_b64decode(segment + '=' * (-len(segment) % 4))
        except (ValueError, TypeError):
            return False
        if base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii') != segment:
            return False
    return True


class Keyring:
    """
    Signs and optionally encrypts cookie values.

    The hash key is required and must be 32 or 64 bytes long. The block key
    is optional and must be 16, 24 or 32 bytes long; without it values are
    authenticated but legible.
    """

    def __init__(self, hash_key: bytes, block_key: Optional[bytes] = None, max_age: int = DEFAULT_AGE):
        if len(hash_key) not in HASH_ALGORITHMS:
            raise ValueError('hash key must be 32 or 64 bytes long')
        if block_key is not None and len(block_key) not in BLOCK_ENCRYPTIONS:
            raise ValueError('block key must be 16, 24 or 32 bytes long')
        self._hash_key = hash_key
        self._block_key = block_key
        self.algorithm = HASH_ALGORITHMS[len(hash_key)]
        self.encryption = BLOCK_ENCRYPTIONS[len(block_key)] if block_key else None
        self.max_age = max_age

    def encode(self, name: str, value: str) -> str:
        if self._block_key:
            value = jwe.encrypt(value, self._block_key, encryption=self.encryption, algorithm='dir').decode('ascii')
        now = datetime.utcnow()
        claims = {
            'cookie': name,
            'val': value,
            'iat': now,
            'exp': now + timedelta(seconds=self.max_age),
        }
        return jwt.encode(claims, self._hash_key, algorithm=self.algorithm)

    def decode(self, name: str, cookie_value: str) -> str:
        if not cookie_value or not _canonical(cookie_value):
            raise IntegrityError()
        try:
            claims = jwt.decode(cookie_value, self._hash_key, algorithms=[self.algorithm])
        except JOSEError:
            raise IntegrityError()
        if claims.get('cookie') != name or not isinstance(claims.get('val'), str):
            raise IntegrityError()
        value = claims['val']
        if self._block_key:
            try:
                value = jwe.decrypt(value, self._block_key).decode('utf-8')
            except (JOSEError, UnicodeDecodeError):
                raise IntegrityError()
        return value


def keyring_from_env() -> Keyring:
    hash_key = os.getenv('AUTH_HASH_KEY')
    block_key = os.getenv('AUTH_BLOCK_KEY', '')
    if not hash_key:
        logger.warning('AUTH_HASH_KEY not set, using development cookie keys')
        hash_key = DEV_HASH_KEY
        block_key = block_key or DEV_BLOCK_KEY
    return Keyring(hash_key.encode('utf-8'), block_key.encode('utf-8') if block_key else None)


# Read-only after import
KEYRING = keyring_from_env()


def _new_cookie(response: Response, value: str, max_age: int):
    response.set_cookie(AUTH_COOKIE, value, max_age=max_age, path='/', httponly=True)


def set_cookie(response: Response, keyring: Keyring, value: str):
    """Attach a fresh authentication cookie carrying value"""
    _new_cookie(response, keyring.encode(AUTH_COOKIE, value), DEFAULT_AGE)


def get_cookie(request: Request, keyring: Keyring) -> Optional[str]:
    """Return the authenticated value, None when there is no cookie at all"""
    cookie = request.cookies.get(AUTH_COOKIE)
    if cookie is None:
        return None
    return keyring.decode(AUTH_COOKIE, cookie)


def del_cookie(response: Response):
    _new_cookie(response, '', -1)


async def get_session_user(request: Request) -> Optional[str]:
    return get_cookie(request, KEYRING)


async def require_session_user(request: Request) -> str:
    try:
        username = get_cookie(request, KEYRING)
    except IntegrityError:
        raise Unauthorized()
    if not username:
        raise Unauthorized()
    return username
