import base64
import binascii
from typing import Optional

from fastapi import Request, Response

FLASH_COOKIE = 'FLASH'


def set_flash(response: Response, message: str):
    value = base64.urlsafe_b64encode(message.encode('utf-8')).decode('ascii').rstrip('=')
    response.set_cookie(FLASH_COOKIE, value, httponly=True)


def pop_flash(request: Request, response: Response) -> Optional[str]:
    """Read the flash message, if any, and remove it from the client"""
    value = request.cookies.get(FLASH_COOKIE)
    if value is None:
        return None
    response.set_cookie(FLASH_COOKIE, '', max_age=-1)
    try:
        return base64.urlsafe_b64decode(value + '=' * (-len(value) % 4)).decode('utf-8')
    except (binascii.Error, ValueError):
        return None
