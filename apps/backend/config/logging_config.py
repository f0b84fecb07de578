"""
Logging profiles for the Dossier backend.

production  - RENDER is set or ENV=production
development - the default
debug       - DEBUG=true, wins over the other two
"""
import logging
import os
from typing import Any, Dict

PROFILES: Dict[str, Dict[str, Any]] = {
    "production": {
        "level": "WARNING",
        "format": "%(levelname)s - %(name)s - %(message)s",
        # Per-query search, store and status polling chatter
        "quiet": [
            "services.web_search_service",
            "services.status_channel",
            "agents.persistence.record_store",
            "httpx",
        ],
        # Job starts and terminal outcomes stay visible
        "verbose": ["agents.generation.job_controller"],
        "trace_chunks": False,
    },
    "development": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "quiet": ["httpx"],
        "verbose": [],
        "trace_chunks": False,
    },
    "debug": {
        "level": "DEBUG",
        "format": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
        "quiet": [],
        "verbose": [],
        "trace_chunks": True,
    },
}


def detect_environment() -> str:
    if os.getenv("DEBUG", "false").lower() == "true":
        return "debug"
    if os.getenv("RENDER") is not None or os.getenv("ENV") == "production":
        return "production"
    return "development"


def get_logging_config() -> Dict[str, Any]:
    environment = detect_environment()
    profile = dict(PROFILES[environment])
    profile["environment"] = environment
    return profile


def apply_logging_config(profile: Dict[str, Any] = None) -> Dict[str, Any]:
    """Replace root handlers with one console handler for the active profile."""
    profile = profile or get_logging_config()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(profile["format"]))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(profile["level"])

    for name in profile["quiet"]:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name in profile["verbose"]:
        logging.getLogger(name).setLevel(logging.INFO)

    # Per-chunk parser traces only in the debug profile
    if not profile["trace_chunks"]:
        logging.getLogger("agents.outline.stream_parser").setLevel(logging.INFO)

    return profile
