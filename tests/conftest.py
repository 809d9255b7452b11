from datetime import datetime, timedelta

import pytest

import storage.db_config as db_config
import storage.user as user_storage


class FakeClock:
    """可手动拨动的时钟，替代 datetime.now"""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
async def db():
    await db_config.init_db(":memory:")
    yield db_config.conn
    await db_config.close_db()


@pytest.fixture
async def user(db):
    return await user_storage.register_or_update_user(
        telegram_user_id=10001,
        username="alice",
        first_name="Alice",
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 8, 0, 0))
