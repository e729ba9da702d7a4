from fastapi import APIRouter, Depends, Request, Response
from redis.asyncio import Redis

from ..auth import get_session_user
from ..core import get_redis
from ..crud import get_user, recent_posts, timeline_key, TIMELINE_LIMIT
from ..file_storage import file_storage
from ..flash import pop_flash
from ..schemas.posts import PostOut, TimelineOut
from ..schemas.users import UserOut

router = APIRouter()


@router.get('/{username}', response_model=TimelineOut)
async def timeline(
    username: str,
    request: Request,
    response: Response,
    conn: Redis = Depends(get_redis),
    logged_user: str = Depends(get_session_user),
):
    user = await get_user(conn, username)
    posts = await recent_posts(conn, timeline_key(user.name), TIMELINE_LIMIT)
    return TimelineOut(
        user=UserOut(name=user.name, pic_url=user.pic_url),
        posts=[
            PostOut(
                name=p.name,
                author_name=p.author_name,
                author_pic_url=p.author_pic_url,
                text=p.text,
                time=p.time,
                image_url=file_storage.get_public_url(p.name),
            )
            for p in posts
        ],
        logged_user=logged_user,
        flash=pop_flash(request, response),
    )
