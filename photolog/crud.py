import os
import hashlib
import logging
from datetime import datetime
from typing import List, Optional

import bcrypt
from redis.asyncio import Redis
from redis.exceptions import WatchError

from .core import async_wrapper
from .errors import NotFound, StoreInconsistency, ValidationFailed
from .models import Post, User

logger = logging.getLogger(__name__)

# Key prefixes, disjoint per entity
USER_TAG = 'user:'
POST_TAG = 'post:'
TIMELINE_TAG = 'timeline:'

TIMELINE_LIMIT = 100
BCRYPT_ROUNDS = int(os.getenv('BCRYPT_ROUNDS', '12'))

NAME_TAKEN = 'A user with the same name already exist!'


def user_key(name: str) -> str:
    return USER_TAG + name


def post_key(name: str) -> str:
    return POST_TAG + name


def timeline_key(name: str) -> str:
    return TIMELINE_TAG + name


def format_post_time(moment: datetime) -> str:
    """Render a post time like 'Mon 2 Jan 2006 15:04'"""
    return f"{moment:%a} {moment.day} {moment:%b %Y %H:%M}"


def gravatar_url(email: str) -> str:
    email_hash = hashlib.md5(email.strip().lower().encode('utf-8')).hexdigest()
    return f"https://www.gravatar.com/avatar/{email_hash}?d=identicon&s=256"


@async_wrapper
def hash_password(password: str) -> bytes:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))


@async_wrapper
def check_password(password: str, hashed: bytes) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed)
    except ValueError:
        return False


# users

async def get_user(conn: Redis, name: str) -> User:
    data = await conn.hgetall(user_key(name))
    if not data:
        raise NotFound('User not found')
    return User.from_redis(data)


async def user_exists(conn: Redis, name: str) -> bool:
    return await conn.exists(user_key(name)) > 0


async def create_user(conn: Redis, payload) -> User:
    """
    Hash the password, derive the picture URL and store a new user.

    The payload must have been validated in the same request. The write is
    conditional: if the name got registered after validation ran, the
    existing record is kept and the caller gets the name-taken message.
    """
    user = User(
        name=payload.name,
        email=payload.email,
        password=await hash_password(payload.password),
        pic_url=gravatar_url(payload.email),
    )
    key = user_key(user.name)
    async with conn.pipeline(transaction=True) as pipe:
        await pipe.watch(key)
        if await pipe.exists(key):
            raise ValidationFailed(NAME_TAKEN)
        pipe.multi()
        pipe.hset(key, mapping=user.to_redis())
        try:
            await pipe.execute()
        except WatchError:
            raise ValidationFailed(NAME_TAKEN)
    return user


async def authenticate_user(conn: Redis, name: str, password: str) -> Optional[User]:
    try:
        user = await get_user(conn, name)
    except NotFound:
        return None
    if not await check_password(password, user.password):
        return None
    return user


# timelines

async def commit_post(conn: Redis, post: Post, timeline: str, publish_instant: int):
    """Store post and index it in timeline, both or neither"""
    async with conn.pipeline(transaction=True) as pipe:
        pipe.hset(post_key(post.name), mapping=post.to_redis())
        pipe.zadd(timeline, {post.name: publish_instant})
        await pipe.execute()


async def recent_posts(conn: Redis, timeline: str, limit: int = TIMELINE_LIMIT) -> List[Post]:
    """Latest posts of timeline, most recent first"""
    if limit <= 0:
        return []
    names = await conn.zrevrange(timeline, 0, limit - 1)
    if not names:
        return []
    names = [n.decode('utf-8') if isinstance(n, bytes) else n for n in names]

    async with conn.pipeline(transaction=False) as pipe:
        for name in names:
            pipe.hgetall(post_key(name))
        records = await pipe.execute()

    posts = []
    for name, record in zip(names, records):
        if not record:
            logger.critical(f"Timeline {timeline} references missing post {name}")
            raise StoreInconsistency()
        posts.append(Post.from_redis(record))
    return posts
