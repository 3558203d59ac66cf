import os


class Settings:
    # Default durations for a freshly created room (seconds)
    INITIAL_SHOTCLOCK_SECONDS = int(os.environ.get("SHOTCLOCK_INITIAL_SECONDS", "30"))
    TIMEOUT_SECONDS = int(os.environ.get("SHOTCLOCK_TIMEOUT_SECONDS", "60"))
    QUARTER_SECONDS = int(os.environ.get("SHOTCLOCK_QUARTER_SECONDS", "120"))
    # Idle countdown push while the clock is stopped (seconds)
    KEEPALIVE_SECONDS = int(os.environ.get("SHOTCLOCK_KEEPALIVE_SECONDS", "10"))
    # Listener
    HOST = os.environ.get("SHOTCLOCK_HOST", "127.0.0.1")
    PORT = int(os.environ.get("SHOTCLOCK_PORT", "8888"))
    LOG_LEVEL = os.environ.get("SHOTCLOCK_LOG_LEVEL", "INFO").upper()


settings = Settings()
