import logging.config
import os

import structlog
from dotenv import load_dotenv

# 1. Load Environment Variables
# Values can live in a .env file next to the project, e.g. HOTEL_API_URL="http://localhost:8000"
load_dotenv()

API_BASE_URL = os.getenv("HOTEL_API_URL", "http://localhost:8000")
STORAGE_URL = os.getenv("HOTEL_STORAGE_URL", "sqlite:///./hotel_client.db")

CURRENCY = os.getenv("HOTEL_CURRENCY", "INR")
CURRENCY_SYMBOL = os.getenv("HOTEL_CURRENCY_SYMBOL", "₹")
DEFAULT_PAYMENT_METHOD = os.getenv("HOTEL_PAYMENT_METHOD", "upi")

# Only the reachability check carries an explicit timeout
NETWORK_CHECK_TIMEOUT = float(os.getenv("HOTEL_NETWORK_TIMEOUT", "5.0"))
# Seconds between an optimistic booking insert and the reconciling reload
RECONCILE_DELAY = float(os.getenv("HOTEL_RECONCILE_DELAY", "1.5"))

API_DEBUG = os.getenv("HOTEL_API_DEBUG", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

MAX_CART_QUANTITY = 10


def configure_logging(level: str = LOG_LEVEL):
    """
    Install a JSON console handler for the client loggers.
    Module loggers are plain logging.getLogger(__name__); structlog only renders them.
    """
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer(),
                "foreign_pre_chain": [
                    structlog.stdlib.add_log_level,
                    structlog.processors.TimeStamper(fmt="iso"),
                ],
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "level": level,
            }
        },
        "root": {"handlers": ["console"], "level": "WARNING"},
        "loggers": {
            "api_client": {"handlers": ["console"], "level": level, "propagate": False},
            "auth_session": {"handlers": ["console"], "level": level, "propagate": False},
            "cart_store": {"handlers": ["console"], "level": level, "propagate": False},
            "bookings_store": {"handlers": ["console"], "level": level, "propagate": False},
            "checkout_manager": {"handlers": ["console"], "level": level, "propagate": False},
            "hotel_client": {"handlers": ["console"], "level": level, "propagate": False},
        },
    })
