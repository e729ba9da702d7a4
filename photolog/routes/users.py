import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, Request, Response
from fastapi.responses import RedirectResponse
from redis.asyncio import Redis

from ..auth import KEYRING, del_cookie, get_session_user, set_cookie
from ..core import REGISTRATIONS, get_redis
from ..crud import authenticate_user, create_user
from ..errors import ValidationFailed
from ..flash import pop_flash, set_flash
from ..schemas.users import IndexOut, RegisterIn, RegisterPageOut
from ..validation import validate

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = 'Invalid username or password.'


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def login(username: str) -> RedirectResponse:
    """Set the auth cookie and send the user to their timeline"""
    response = redirect('/' + quote(username))
    set_cookie(response, KEYRING, username)
    return response


def flash_and_redirect(url: str, message: str) -> RedirectResponse:
    response = redirect(url)
    set_flash(response, message)
    return response


@router.get('/', response_model=IndexOut)
@router.get('/index', response_model=IndexOut)
async def index(request: Request, response: Response, username: str = Depends(get_session_user)):
    if username:
        return redirect('/' + quote(username))
    return IndexOut(flash=pop_flash(request, response))


@router.get('/register', response_model=RegisterPageOut)
async def register_page(request: Request, response: Response):
    return RegisterPageOut(flash=pop_flash(request, response))


@router.post('/registration')
async def registration(
    name: str = Form(''),
    email: str = Form(''),
    password: str = Form(''),
    conn: Redis = Depends(get_redis),
):
    candidate = RegisterIn(name=name, email=email, password=password)
    try:
        await validate(conn, candidate)
        user = await create_user(conn, candidate)
    except ValidationFailed as e:
        return flash_and_redirect('/register', e.detail)

    REGISTRATIONS.inc()
    logger.info({'msg': 'user_registered', 'user': user.name})
    return login(user.name)


@router.post('/login')
async def handle_login(
    name: str = Form(''),
    password: str = Form(''),
    conn: Redis = Depends(get_redis),
):
    user = await authenticate_user(conn, name, password)
    if not user:
        return flash_and_redirect('/', INVALID_CREDENTIALS)
    return login(user.name)


@router.get('/logout')
async def logout():
    response = redirect('/')
    del_cookie(response)
    return response
