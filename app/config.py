"""Environment-driven settings for the city geo service."""

import os

AUTH_TOKEN = os.getenv("AUTH_TOKEN", "dGhlc2VjcmV0dG9rZW4=")

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8080"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", f"http://{HOST}:{PORT}").rstrip("/")

DATASET_PATH = os.getenv("DATASET_PATH", "addresses.json")

AREA_RESULTS_BACKEND = os.getenv("AREA_RESULTS_BACKEND", "memory")
REDIS_HOST = os.getenv("REDIS_HOST", "redis")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
