# catalog/config.py

import os
from dotenv import load_dotenv

# Load environment variables (optional for local dev)
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    host = os.getenv("MYSQLHOST")
    if host:
        user = os.getenv("MYSQLUSER", "root")
        password = os.getenv("MYSQLPASSWORD", "")
        database = os.getenv("MYSQLDATABASE", "products")
        port = int(os.getenv("MYSQLPORT") or 3306)
        return f"mysql+pymysql://{user}:{password}@{host}:{port}/{database}"
    return "sqlite:///./products.db"


# --- Database ---
DATABASE_URL = _database_url()

# --- Object storage ---
STORAGE_URL = os.getenv("STORAGE_URL", "").rstrip("/")
STORAGE_KEY = os.getenv("STORAGE_KEY", "")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "products")
STORAGE_TIMEOUT = float(os.getenv("STORAGE_TIMEOUT", "15"))

# --- Images ---
IMAGE_MODE = os.getenv("IMAGE_MODE", "append_variable").lower()
if IMAGE_MODE not in {"append_fixed_slots", "append_variable", "replace_all"}:
    raise ValueError(f"Unknown IMAGE_MODE '{IMAGE_MODE}'")

# The fixed-slot layout is image_main + image_thumb1..3
IMAGE_CAPACITY = 4 if IMAGE_MODE == "append_fixed_slots" else int(os.getenv("IMAGE_CAPACITY", "6"))
MAX_UPLOAD_FILES = int(os.getenv("MAX_UPLOAD_FILES", "6"))
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(5 * 1024 * 1024)))
UPLOAD_DEADLINE = float(os.getenv("UPLOAD_DEADLINE", "30"))
UPLOAD_WORKERS = int(os.getenv("UPLOAD_WORKERS", "4"))

# --- Listing ---
MANUAL_ORDER = _flag("MANUAL_ORDER", "true")

# --- Server ---
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 10000))
