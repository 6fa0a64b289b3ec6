import tempfile
import unittest

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from messenger.router import create_db_and_tables


class FakeConnection:
    """Connection double that records every pushed event."""

    def __init__(self, live=True):
        self.is_live = live
        self.events = []

    async def emit(self, event, payload):
        self.events.append((event, payload))

    def named(self, event):
        return [payload for name, payload in self.events if name == event]


class BrokenConnection(FakeConnection):
    async def emit(self, event, payload):
        raise ConnectionResetError("socket went away")


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Gives each test a fresh SQLite database and an open session."""

    async def asyncSetUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.engine = create_async_engine(
            f"sqlite+aiosqlite:///{self._tmpdir.name}/test.db"
        )
        await create_db_and_tables(self.engine)
        self.session_maker = async_sessionmaker(
            bind=self.engine, expire_on_commit=False
        )
        self.session = self.session_maker()

    async def asyncTearDown(self):
        await self.session.close()
        await self.engine.dispose()
        self._tmpdir.cleanup()
