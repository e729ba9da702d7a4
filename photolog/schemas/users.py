from pydantic import BaseModel
from typing import Optional


class RegisterIn(BaseModel):
    name: str
    email: str
    password: str


class UserOut(BaseModel):
    name: str
    pic_url: str


class IndexOut(BaseModel):
    logged_user: Optional[str] = None
    flash: Optional[str] = None


class RegisterPageOut(BaseModel):
    flash: Optional[str] = None
