"""
Powerslides relay settings module
Environment variables and global settings
"""
import os
from dotenv import load_dotenv

# Load .env
load_dotenv()


class Settings:
    """Application settings"""

    # Service info
    SERVICE_NAME = "Powerslides Relay"
    VERSION = "1.0.0"
    DESCRIPTION = "Presentation state and remote-control relay"

    # Server
    HOST = os.getenv('HOST', "0.0.0.0")
    PORT = int(os.getenv('PORT', 4001))
    DEBUG = False
    CORS_ORIGINS = ["*"]
    # Queued outbound frames per relay connection before it is dropped as too slow
    OUTBOX_MAX_SIZE = int(os.getenv('OUTBOX_MAX_SIZE', 256))

    # Relay endpoint for the peers (no default, peers refuse to start without it)
    WEBSOCKET_URL = os.getenv('WEBSOCKET_URL')

    # Reconnect
    RECONNECT_BASE_DELAY = 1.0
    RECONNECT_MAX_DELAY = 10.0

    # Presenter
    STATE_POLL_INTERVAL = 2.0
    COMMAND_DEDUP_WINDOW = 256

    # Controller
    COMMAND_LOADING_TIMEOUT = 3.0
    COMMAND_SOURCE = os.getenv('COMMAND_SOURCE', 'evenhub')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', "INFO")
    LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


# Settings instance
settings = Settings()
