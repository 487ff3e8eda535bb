from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatsync.core.settings import get_settings


def add_cors_middleware(app: FastAPI):
    settings = get_settings()
    origins = settings.cors_origins_list

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentials with a wildcard origin
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
