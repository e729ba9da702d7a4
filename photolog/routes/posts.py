from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from redis.asyncio import Redis

from ..core import get_redis
from ..pipeline import PostIngestion

router = APIRouter()


@router.post('/post')
async def create_post(request: Request, conn: Redis = Depends(get_redis)):
    # The body is read by the pipeline, after the session and length checks
    post = await PostIngestion(request, conn).run()
    return RedirectResponse('/' + quote(post.author_name), status_code=303)
