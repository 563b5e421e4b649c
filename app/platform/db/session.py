from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.platform.config import settings


def _engine_options(database_url: str) -> dict:
    options = {"echo": False, "future": True, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        return options
    options.update(
        pool_recycle=1800,
        pool_size=20,
        max_overflow=30,  # (burst capacity)
        pool_timeout=30,
    )
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session
