from dataclasses import dataclass, fields
from typing import Dict


def _text(value) -> str:
    return value.decode('utf-8') if isinstance(value, bytes) else value


@dataclass
class User:
    name: str
    email: str
    password: bytes
    pic_url: str = ''

    def to_redis(self) -> Dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_redis(cls, data: Dict) -> 'User':
        data = {_text(k): v for k, v in data.items()}
        password = data.get('password', b'')
        return cls(
            name=_text(data.get('name', '')),
            email=_text(data.get('email', '')),
            password=password.encode('utf-8') if isinstance(password, str) else password,
            pic_url=_text(data.get('pic_url', '')),
        )


@dataclass
class Post:
    # author fields are copied at post time and never updated
    author_name: str
    author_pic_url: str
    name: str
    text: str
    time: str

    def to_redis(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_redis(cls, data: Dict) -> 'Post':
        data = {_text(k): _text(v) for k, v in data.items()}
        return cls(**{f.name: data.get(f.name, '') for f in fields(cls)})
