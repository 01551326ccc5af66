from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from integrations.config import settings


class DatabaseHelper:
    def __init__(self, url: str, echo: bool = False):
        self.engine = create_async_engine(
            url=url,
            echo=echo,
            pool_pre_ping=True,
        )
        # Token rows are read back after commit, so keep attributes loaded.
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )

    async def dispose(self) -> None:
        await self.engine.dispose()


db_helper = DatabaseHelper(
    url=settings.db.url,
    echo=settings.db.echo,
)
