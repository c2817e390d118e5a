import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

if REDIS_PASSWORD:
    REDIS_URL = os.getenv("REDIS_URL", f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}")
else:
    REDIS_URL = os.getenv("REDIS_URL", f"redis://{REDIS_HOST}:{REDIS_PORT}")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Rooms
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 600))
MAX_ROOM_TTL_SECONDS = int(os.getenv("MAX_ROOM_TTL_SECONDS", 86400))

# Auth cookie
AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "x-auth-token")
AUTH_COOKIE_SECURE = ENVIRONMENT == "production"

# Realtime: "pubsub" pushes through Redis pub/sub, "poll" reads a capped list
REALTIME_STRATEGY = os.getenv("REALTIME_STRATEGY", "pubsub")
REALTIME_POLL_INTERVAL = float(os.getenv("REALTIME_POLL_INTERVAL", 0.5))
REALTIME_HISTORY_LIMIT = int(os.getenv("REALTIME_HISTORY_LIMIT", 100))
REALTIME_HISTORY_TTL = int(os.getenv("REALTIME_HISTORY_TTL", 1800))
HEARTBEAT_SECONDS = float(os.getenv("HEARTBEAT_SECONDS", 30))

# Store retries apply to reads only
STORE_READ_RETRIES = int(os.getenv("STORE_READ_RETRIES", 3))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
