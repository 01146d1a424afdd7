# post_scheduler/config.py
import os

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./post_scheduler.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() == "true"

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# auth plumbing (tokens are issued elsewhere, we only verify them)
SECRET_KEY = os.getenv("SECRET_KEY", "change_me_now")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
OAUTH_TOKEN_KEY = os.getenv("OAUTH_TOKEN_KEY")  # base64 Fernet key, required in prod

# reference timezone for calendar buckets and naive publish times
SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "UTC")

# dispatch
PUBLISH_RELAY_URL = os.getenv("PUBLISH_RELAY_URL", "")
PUBLISH_RELAY_TOKEN = os.getenv("PUBLISH_RELAY_TOKEN", "")
PUBLISH_TIMEOUT_SECONDS = int(os.getenv("PUBLISH_TIMEOUT_SECONDS", "60"))
WORKER_POLL_SECONDS = int(os.getenv("WORKER_POLL_SECONDS", "30"))
WORKER_BATCH_SIZE = int(os.getenv("WORKER_BATCH_SIZE", "50"))
DISABLE_WORKER = os.getenv("DISABLE_WORKER", "0") == "1"
# per-target publish retries: delay doubles after each failed attempt
PUBLISH_MAX_ATTEMPTS = int(os.getenv("PUBLISH_MAX_ATTEMPTS", "3"))
PUBLISH_RETRY_DELAY_SECONDS = float(os.getenv("PUBLISH_RETRY_DELAY_SECONDS", "5"))
# a post left in publishing longer than this is treated as interrupted
STALE_PUBLISHING_SECONDS = int(os.getenv("STALE_PUBLISHING_SECONDS", "900"))
