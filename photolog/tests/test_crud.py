import asyncio
import hashlib

import bcrypt
import pytest
from redis.exceptions import ConnectionError

from photolog.crud import (
    NAME_TAKEN,
    authenticate_user,
    commit_post,
    create_user,
    get_user,
    gravatar_url,
    post_key,
    recent_posts,
    timeline_key,
    user_key,
)
from photolog.errors import NotFound, StoreInconsistency, ValidationFailed
from photolog.models import Post, User
from photolog.schemas.users import RegisterIn
from photolog.validation import validate


def _candidate(name='alice', email='alice@example.com', password='password1'):
    return RegisterIn(name=name, email=email, password=password)


def _post(name, author='alice', text='hello', pic='https://example.com/a.png'):
    return Post(author_name=author, author_pic_url=pic, name=name, text=text, time='Mon 2 Jan 2006 15:04')


async def _register(conn, candidate):
    await validate(conn, candidate)
    return await create_user(conn, candidate)


class TestUsers:

    @pytest.mark.asyncio
    async def test_unknown_user_is_not_found(self, redis):
        with pytest.raises(NotFound):
            await get_user(redis, 'nobody')

    @pytest.mark.asyncio
    async def test_create_user_hashes_password(self, redis):
        await create_user(redis, _candidate())
        user = await get_user(redis, 'alice')
        assert user.name == 'alice'
        assert user.email == 'alice@example.com'
        assert user.password != b'password1'
        assert bcrypt.checkpw(b'password1', user.password)

    @pytest.mark.asyncio
    async def test_pic_url_is_derived_from_email(self, redis):
        user = await create_user(redis, _candidate(email='Alice@Example.com '))
        expected = hashlib.md5(b'alice@example.com').hexdigest()
        assert expected in user.pic_url
        assert user.pic_url == gravatar_url('alice@example.com')

    @pytest.mark.asyncio
    async def test_stored_record_shape(self, redis):
        await create_user(redis, _candidate())
        record = await redis.hgetall(user_key('alice'))
        assert set(record) == {b'name', b'email', b'password', b'pic_url'}

    @pytest.mark.asyncio
    async def test_create_never_overwrites(self, redis):
        await create_user(redis, _candidate())
        with pytest.raises(ValidationFailed) as exc:
            await create_user(redis, _candidate(email='mallory@example.com'))
        assert exc.value.detail == NAME_TAKEN
        assert (await get_user(redis, 'alice')).email == 'alice@example.com'

    @pytest.mark.asyncio
    async def test_concurrent_registration_has_one_winner(self, redis):
        results = await asyncio.gather(
            _register(redis, _candidate(email='alice@example.com')),
            _register(redis, _candidate(email='mallory@example.com')),
            return_exceptions=True,
        )
        winners = [r for r in results if isinstance(r, User)]
        losers = [r for r in results if isinstance(r, ValidationFailed)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].detail == NAME_TAKEN
        assert (await get_user(redis, 'alice')).email == winners[0].email

    @pytest.mark.asyncio
    async def test_authenticate_user(self, redis):
        await create_user(redis, _candidate())
        assert (await authenticate_user(redis, 'alice', 'password1')).name == 'alice'
        assert await authenticate_user(redis, 'alice', 'wrong-password') is None
        assert await authenticate_user(redis, 'bob', 'password1') is None


class TestValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize('candidate,message', [
        (_candidate(name='bad/name'), 'Your username is invalid!'),
        (_candidate(name=''), 'Your username is invalid!'),
        (_candidate(name='bad/name', email='nope'), 'Your username is invalid!'),
        (_candidate(name='mylogin'), 'You cannot choose that name!'),
        (_candidate(name='postman'), 'You cannot choose that name!'),
        (_candidate(name='static noise'), 'You cannot choose that name!'),
        (_candidate(email='not-an-email'), 'Your email is invalid!'),
        (_candidate(email='not-an-email', password='short'), 'Your email is invalid!'),
        (_candidate(password='short'), 'Your password is too short!'),
        (_candidate(password='p' * 73), 'Your password is too long!'),
        (_candidate(password='\u00e9' * 3), 'Your password is too short!'),
        (_candidate(password='\u00e9' * 37), 'Your password is too long!'),
    ])
    async def test_first_failing_rule_wins(self, redis, candidate, message):
        with pytest.raises(ValidationFailed) as exc:
            await validate(redis, candidate)
        assert exc.value.detail == message

    @pytest.mark.asyncio
    async def test_registered_name_is_rejected(self, redis):
        await create_user(redis, _candidate())
        with pytest.raises(ValidationFailed) as exc:
            await validate(redis, _candidate(email='not-an-email'))
        assert exc.value.detail == NAME_TAKEN

    @pytest.mark.asyncio
    @pytest.mark.parametrize('name', ['alice', 'Zoë O\'Brien', 'who?', 'r2-d2.', 'Ünal 42!'])
    async def test_valid_candidates_pass(self, redis, name):
        assert await validate(redis, _candidate(name=name)) is None

    @pytest.mark.asyncio
    async def test_password_length_counts_bytes(self, redis):
        # four two-byte characters reach the minimum
        assert await validate(redis, _candidate(password='é' * 4)) is None


class TestTimeline:

    @pytest.mark.asyncio
    async def test_empty_timeline(self, redis):
        assert await recent_posts(redis, timeline_key('alice')) == []

    @pytest.mark.asyncio
    async def test_commit_stores_record_and_index(self, redis):
        await commit_post(redis, _post('p1'), timeline_key('alice'), 1000)
        record = await redis.hgetall(post_key('p1'))
        assert set(record) == {b'author_name', b'author_pic_url', b'name', b'text', b'time'}
        assert await redis.zscore(timeline_key('alice'), 'p1') == 1000

    @pytest.mark.asyncio
    async def test_most_recent_first(self, redis):
        for name, instant in [('p1', 100), ('p3', 300), ('p2', 200)]:
            await commit_post(redis, _post(name, text=name), timeline_key('alice'), instant)
        posts = await recent_posts(redis, timeline_key('alice'))
        assert [p.name for p in posts] == ['p3', 'p2', 'p1']
        assert [p.text for p in posts] == ['p3', 'p2', 'p1']

    @pytest.mark.asyncio
    async def test_bounded_to_limit(self, redis):
        for i in range(120):
            await commit_post(redis, _post(f'p{i}'), timeline_key('alice'), 1000 + i // 3)
        posts = await recent_posts(redis, timeline_key('alice'), 100)
        assert len(posts) == 100
        scores = [await redis.zscore(timeline_key('alice'), p.name) for p in posts]
        assert all(a >= b for a, b in zip(scores, scores[1:]))

    @pytest.mark.asyncio
    async def test_timelines_are_per_owner(self, redis):
        await commit_post(redis, _post('p1'), timeline_key('alice'), 100)
        await commit_post(redis, _post('p2', author='bob'), timeline_key('bob'), 200)
        assert [p.name for p in await recent_posts(redis, timeline_key('alice'))] == ['p1']

    @pytest.mark.asyncio
    async def test_missing_record_is_inconsistency(self, redis):
        await redis.zadd(timeline_key('alice'), {'ghost': 100})
        with pytest.raises(StoreInconsistency):
            await recent_posts(redis, timeline_key('alice'))

    @pytest.mark.asyncio
    async def test_commit_is_atomic(self, redis, monkeypatch):
        pipeline_cls = type(redis.pipeline())

        def fail(self, *args, **kwargs):
            raise ConnectionError('connection lost')

        # Fault between the record write and the index write
        monkeypatch.setattr(pipeline_cls, 'zadd', fail)
        with pytest.raises(ConnectionError):
            await commit_post(redis, _post('p1'), timeline_key('alice'), 100)
        monkeypatch.undo()

        assert not await redis.exists(post_key('p1'))
        assert await redis.zcard(timeline_key('alice')) == 0
        assert await recent_posts(redis, timeline_key('alice')) == []

    @pytest.mark.asyncio
    async def test_author_fields_are_not_synced(self, redis):
        user = await create_user(redis, _candidate())
        await commit_post(redis, _post('p1', pic=user.pic_url), timeline_key('alice'), 100)
        await redis.hset(user_key('alice'), 'pic_url', 'https://example.com/new.png')

        posts = await recent_posts(redis, timeline_key('alice'))
        assert posts[0].author_pic_url == user.pic_url
        assert (await get_user(redis, 'alice')).pic_url == 'https://example.com/new.png'
