"""Centralized dependency type aliases for FastAPI routes.

Import shared dependencies from this single module:
    from chatsync.core.deps import SettingsDep, StoreDep, SessionManagerDep
"""

from typing import Annotated

from fastapi import Depends

from chatsync.auth.service import IdentityService, get_identity_service
from chatsync.auth.state import AuthStateStream, get_auth_state_stream
from chatsync.core.settings import Settings, get_settings
from chatsync.session.manager import SessionManager, get_session_manager
from chatsync.store.base import DocumentStore
from chatsync.store.engine import get_store

# Application settings
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Document store backend
StoreDep = Annotated[DocumentStore, Depends(get_store)]

# Identity provider client
IdentityServiceDep = Annotated[IdentityService, Depends(get_identity_service)]

# Sign-in / sign-out notifications
AuthStreamDep = Annotated[AuthStateStream, Depends(get_auth_state_stream)]

# Live viewer sessions
SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
