from contextlib import asynccontextmanager

from fastapi import FastAPI

from turnwatch import __version__
from turnwatch.bot import Bot
from turnwatch.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    from turnwatch.database import init_db
    await init_db()
    bot: Bot = app.state.bot
    await bot.start()
    yield
    await bot.stop()


def create_app(bot: Bot | None = None) -> FastAPI:
    app = FastAPI(title="Turnwatch", version=__version__, lifespan=lifespan)
    app.state.bot = bot or Bot.from_settings(settings)

    from turnwatch.api.errors import register_error_handlers
    from turnwatch.api.rooms import router as rooms_router

    register_error_handlers(app)
    app.include_router(rooms_router)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "turnwatch"}

    return app
