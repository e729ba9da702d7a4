"""
Post ingestion pipeline
Takes an upload from an authenticated user to a committed timeline entry
"""

import uuid
import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from redis.asyncio import Redis
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request

from . import crud
from .auth import AUTH_COOKIE, KEYRING, Keyring
from .core import POST_REJECTIONS, POSTS_COMMITTED
from .errors import (
    AppError,
    BadRequest,
    IntegrityError,
    InternalError,
    LengthRequired,
    PayloadTooLarge,
    Unauthorized,
)
from .file_storage import file_storage
from .imaging import MAX_HEIGHT, MAX_PIC_BYTES, MAX_WIDTH, normalize_async
from .models import Post

logger = logging.getLogger(__name__)


class IngestState(Enum):
    UNAUTHENTICATED = 'unauthenticated'
    AUTHENTICATED = 'authenticated'
    VALIDATED = 'validated'
    NORMALIZED = 'normalized'
    COMMITTED = 'committed'
    ABORTED = 'aborted'


def capped_receive(receive, cap: int):
    """Wrap an ASGI receive channel so it never yields more than cap body bytes"""
    consumed = 0

    async def wrapper():
        nonlocal consumed
        message = await receive()
        if message['type'] == 'http.request':
            consumed += len(message.get('body', b''))
            if consumed > cap:
                raise PayloadTooLarge()
        return message
    return wrapper


class PostIngestion:
    """
    One post upload.

    run() walks the states in order; any failure moves the ingestion to
    ABORTED, keeps the error in reason and raises it.
    """

    def __init__(self, request: Request, conn: Redis, keyring: Keyring = None, byte_cap: int = MAX_PIC_BYTES):
        self.request = request
        self.conn = conn
        self.keyring = keyring or KEYRING
        self.byte_cap = byte_cap
        self.state = IngestState.UNAUTHENTICATED
        self.reason: Optional[AppError] = None
        self.username: Optional[str] = None

    async def run(self) -> Post:
        try:
            self._authenticate()
            raw, text = await self._validate()
            image = await self._normalize(raw)
            return await self._commit(image, text)
        except AppError as e:
            self._abort(e)
            raise
        except Exception as e:
            err = InternalError()
            self._abort(err)
            raise err from e

    def _abort(self, reason: AppError):
        logger.info({'msg': 'post_aborted', 'state': self.state.value, 'reason': type(reason).__name__})
        POST_REJECTIONS.labels(reason=type(reason).__name__).inc()
        self.state = IngestState.ABORTED
        self.reason = reason

    def _authenticate(self):
        cookie = self.request.cookies.get(AUTH_COOKIE)
        if not cookie:
            raise Unauthorized()
        try:
            self.username = self.keyring.decode(AUTH_COOKIE, cookie)
        except IntegrityError:
            raise Unauthorized()
        if not self.username:
            raise Unauthorized()
        self.state = IngestState.AUTHENTICATED

    async def _validate(self) -> Tuple[bytes, str]:
        length = self.request.headers.get('content-length')
        if length is None:
            raise LengthRequired()
        try:
            declared = int(length)
        except ValueError:
            raise BadRequest('Invalid content length')
        if declared > self.byte_cap:
            raise PayloadTooLarge()

        # Read only the first byte_cap bytes of the body
        capped = Request(self.request.scope, capped_receive(self.request.receive, self.byte_cap))
        try:
            form = await capped.form()
        except (MultiPartException, HTTPException):
            raise BadRequest('Malformed form')
        try:
            picture = form.get('picture')
            if not isinstance(picture, UploadFile):
                raise BadRequest('Missing picture')
            raw = await picture.read()
            text = form.get('text')
        finally:
            await form.close()

        self.state = IngestState.VALIDATED
        return raw, text if isinstance(text, str) else ''

    async def _normalize(self, raw: bytes) -> bytes:
        image = await normalize_async(raw, self.byte_cap, MAX_WIDTH, MAX_HEIGHT)
        self.state = IngestState.NORMALIZED
        return image

    async def _commit(self, image: bytes, text: str) -> Post:
        try:
            author = await crud.get_user(self.conn, self.username)

            moment = datetime.now()
            post = Post(
                author_name=author.name,
                author_pic_url=author.pic_url,
                name=uuid.uuid4().hex,
                text=text,
                time=crud.format_post_time(moment),
            )
            await file_storage.save_picture(post.name, image)

            try:
                await crud.commit_post(self.conn, post, crud.timeline_key(author.name), int(moment.timestamp()))
            except Exception:
                # Orphan cleanup, the picture must not outlive a failed commit
                await file_storage.delete_picture(post.name)
                raise
        except InternalError:
            raise
        except Exception as e:
            raise InternalError() from e

        self.state = IngestState.COMMITTED
        POSTS_COMMITTED.inc()
        logger.info({'msg': 'post_committed', 'post': post.name, 'author': post.author_name})
        return post
