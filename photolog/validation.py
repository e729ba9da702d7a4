import re

from email_validator import EmailNotValidError, validate_email
from redis.asyncio import Redis

from .crud import NAME_TAKEN, user_exists
from .errors import ValidationFailed
from .schemas.users import RegisterIn

NAME_RE = re.compile(r"^(?:[^\W_]|[ !?'.-])+$")

# Route names, rejected anywhere inside a username
RESERVED_NAMES = (
    'index',
    'register',
    'login',
    'logout',
    'registration',
    'post',
    'media',
    'static',
    'healthz',
)

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt input limit


def match_name(s: str) -> bool:
    return bool(NAME_RE.match(s))


def match_email(s: str) -> bool:
    try:
        validate_email(s, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


async def validate(conn: Redis, candidate: RegisterIn) -> None:
    """Raise ValidationFailed with the message of the first rule candidate breaks"""
    if not match_name(candidate.name):
        raise ValidationFailed('Your username is invalid!')

    for name in RESERVED_NAMES:
        if name in candidate.name:
            raise ValidationFailed('You cannot choose that name!')

    # Not atomic with the write, create_user checks again
    if await user_exists(conn, candidate.name):
        raise ValidationFailed(NAME_TAKEN)

    if not match_email(candidate.email):
        raise ValidationFailed('Your email is invalid!')

    if len(candidate.password.encode('utf-8')) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed('Your password is too short!')

    if len(candidate.password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        raise ValidationFailed('Your password is too long!')
