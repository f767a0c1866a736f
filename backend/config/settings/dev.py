"""
Development settings: debug on, verbose app logging.
"""

from .base import *  # noqa: F403

DEBUG = True
ALLOWED_HOSTS = ["*"]

LOGGING["loggers"]["shop"]["level"] = "DEBUG"  # noqa: F405
LOGGING["loggers"]["loyalty"]["level"] = "DEBUG"  # noqa: F405
