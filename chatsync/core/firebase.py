import logging

from firebase_admin import get_app, initialize_app

logger = logging.getLogger("chatsync.firebase")


def init_firebase() -> None:
    """Initialize the Firebase Admin SDK once per process.

    Credentials come from GOOGLE_APPLICATION_CREDENTIALS.
    """
    try:
        get_app()
    except ValueError:
        initialize_app()
        logger.info("Firebase Admin SDK initialized")
