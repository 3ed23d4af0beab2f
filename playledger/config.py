"""Configuration: env, data location, loop intervals, Spotify credentials."""
import os
from pathlib import Path

from dotenv import load_dotenv

# Base paths (project root = parent of playledger package)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from project root so SPOTIFY_CLIENT_ID etc. are set
load_dotenv(BASE_DIR / ".env")

DATA_DIR = Path(os.getenv("PLAYLEDGER_DATA_DIR", str(BASE_DIR / "data")))
SNAPSHOT_SUFFIX = ".json.gz"
# Exports to a caller-chosen key land under this subdirectory of DATA_DIR
EXPORT_SUBDIR = "exports"

# API
API_HOST = os.getenv("PLAYLEDGER_API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("PLAYLEDGER_API_PORT", "8080"))

# Actors tracked by the background loops (comma separated)
ACTORS = [a.strip() for a in os.getenv("PLAYLEDGER_ACTORS", "default").split(",") if a.strip()]

# Background loops (seconds)
UPDATE_INTERVAL_SEC = float(os.getenv("PLAYLEDGER_UPDATE_INTERVAL_SEC", "300"))
EXPORT_INTERVAL_SEC = float(os.getenv("PLAYLEDGER_EXPORT_INTERVAL_SEC", "1800"))
SHUTDOWN_EXPORT_SEC = float(os.getenv("PLAYLEDGER_SHUTDOWN_EXPORT_SEC", "10"))

# Reports look back this many hours when no start is given; 0 means no lower bound
REPORT_WINDOW_HOURS = float(os.getenv("PLAYLEDGER_REPORT_WINDOW_HOURS", "0"))

# Spotify (OAuth; token stored inside the actor's snapshot after first connect)
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:8080/auth/callback")
SPOTIFY_SCOPES = "user-read-recently-played"
SPOTIFY_RECENT_LIMIT = 50  # API maximum
SPOTIFY_REQUEST_TIMEOUT_SEC = float(os.getenv("PLAYLEDGER_REQUEST_TIMEOUT_SEC", "10"))
SPOTIFY_RETRIES = int(os.getenv("PLAYLEDGER_SPOTIFY_RETRIES", "3"))


def ensure_data_dir() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def snapshot_key(actor: str) -> str:
    """Blob key holding an actor's snapshot."""
    return f"{actor}{SNAPSHOT_SUFFIX}"
