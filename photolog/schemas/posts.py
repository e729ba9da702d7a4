from pydantic import BaseModel
from typing import List, Optional

from .users import UserOut


class PostOut(BaseModel):
    name: str
    author_name: str
    author_pic_url: str
    text: str
    time: str
    image_url: str


class TimelineOut(BaseModel):
    user: UserOut
    posts: List[PostOut]
    logged_user: Optional[str] = None
    flash: Optional[str] = None
