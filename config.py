import os

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./webpulse.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CHECK_TIMEOUT_MS = int(os.getenv("CHECK_TIMEOUT_MS", "30000"))
USER_AGENT = "WebPulse-Analytics/1.0"
