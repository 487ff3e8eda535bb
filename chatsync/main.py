from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatsync.auth.state import get_auth_state_stream
from chatsync.core.cors import add_cors_middleware
from chatsync.core.exception_handlers import register_exception_handlers
from chatsync.core.firebase import init_firebase
from chatsync.core.http import close_http_clients
from chatsync.core.logging import configure_logging
from chatsync.core.request_logging import add_request_logging_middleware
from chatsync.router import api_router
from chatsync.session.manager import get_session_manager
from chatsync.store.engine import close_store, get_store

configure_logging()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_firebase()
    get_store()
    manager = get_session_manager()
    detach = manager.attach(get_auth_state_stream())
    yield
    detach()
    await manager.close_all()
    get_session_manager.cache_clear()
    close_store()
    await close_http_clients()


app = FastAPI(title="ChatSync", version="0.1.0", lifespan=lifespan)

app.include_router(api_router)

add_request_logging_middleware(app)
add_cors_middleware(app)
register_exception_handlers(app)
