"""
Configuration constants and runtime settings for the file explorer.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

# --- Manifest Format ---
MANIFEST_FILENAME = "manifest.json"
MANIFEST_VERSION = "1.0"

# Entries that never appear in a manifest
EXCLUDED_NAMES = {
    '.', '..',
    '.git', '.gitignore', '.svn', '.hg',
    '.DS_Store',
    '.env', '.file-explorer.env',
    MANIFEST_FILENAME,
    'config.php',
}
# In-flight writes from ManifestStore.persist
TEMP_MANIFEST_PREFIX = ".manifest-"

# --- File Type Definitions ---
IMAGE_TYPES = {
    '.jpg': 'image/jpeg', '.jpeg': 'image/jpeg', '.png': 'image/png',
    '.gif': 'image/gif', '.webp': 'image/webp', '.svg': 'image/svg+xml',
}
DOCUMENT_TYPES = {
    '.pdf': 'application/pdf',
    '.doc': 'application/msword',
    '.docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    '.xls': 'application/vnd.ms-excel',
    '.xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}
AUDIO_TYPES = {
    '.mp3': 'audio/mpeg', '.wav': 'audio/wav',
    '.flac': 'audio/flac', '.m4a': 'audio/mp4',
}
VIDEO_TYPES = {'.mp4': 'video/mp4', '.avi': 'video/x-msvideo'}
TEXT_TYPES = {
    '.txt': 'text/plain', '.md': 'text/markdown',
    '.html': 'text/html', '.css': 'text/css',
    '.js': 'application/javascript', '.json': 'application/json',
    '.xml': 'application/xml',
}
ARCHIVE_TYPES = {'.zip': 'application/zip'}

# Extension to MIME Mapping
# Shared by the HTTP and CLI entry points so manifests agree byte for byte
MIME_TYPES = {}
for table in (IMAGE_TYPES, DOCUMENT_TYPES, AUDIO_TYPES, VIDEO_TYPES, TEXT_TYPES, ARCHIVE_TYPES):
    MIME_TYPES.update(table)

DEFAULT_MIME_TYPE = 'application/octet-stream'

# --- Traversal ---
# Hard stop for pathological trees (symlink chains the inode guard cannot see)
MAX_DEPTH = 32

# --- Audio Probe ---
FFPROBE_PATH = "ffprobe"
PROBE_TIMEOUT_SEC = 30

# --- Access Gateway ---
DEFAULT_ALLOWED_FOLDERS = (
    'pub_ab',
    'pub_ab/Expeditionary_Force',
    'assets',
    'assets/documents',
)
RATE_LIMIT_MAX_REQUESTS = 10
RATE_LIMIT_WINDOW_MINUTES = 15
CACHE_MAX_AGE_SEC = 300


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class GatewayConfig:
    """
    Process-wide settings, built once at start-up and passed to the gateway.
    """
    api_key: str = ""
    allowed_folders: Tuple[str, ...] = DEFAULT_ALLOWED_FOLDERS
    library_root: Path = field(default_factory=Path.cwd)
    environment: str = "production"

    rate_limit_enabled: bool = True
    rate_limit_max_requests: int = RATE_LIMIT_MAX_REQUESTS
    rate_limit_window_sec: float = RATE_LIMIT_WINDOW_MINUTES * 60

    probe_audio: bool = False
    ffprobe_path: str = FFPROBE_PATH

    # Serve an existing manifest.json before walking the folder
    prefer_persisted: bool = True

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "GatewayConfig":
        """Reads settings from the environment (and a .env file if present)."""
        load_dotenv(env_file)

        folders_raw = os.getenv("ALLOWED_FOLDERS")
        if folders_raw:
            allowed = tuple(f.strip().strip('/') for f in folders_raw.split(',') if f.strip())
        else:
            allowed = DEFAULT_ALLOWED_FOLDERS

        root = os.getenv("LIBRARY_ROOT")

        return cls(
            api_key=os.getenv("FILE_EXPLORER_API_KEY", ""),
            allowed_folders=allowed,
            library_root=Path(root).resolve() if root else Path.cwd(),
            environment=os.getenv("ENV_MODE", "production"),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
            rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", RATE_LIMIT_MAX_REQUESTS),
            rate_limit_window_sec=_env_int("RATE_LIMIT_WINDOW_MINUTES", RATE_LIMIT_WINDOW_MINUTES) * 60,
            probe_audio=_env_bool("FILE_EXPLORER_FFPROBE", False),
            ffprobe_path=os.getenv("FFPROBE_PATH", FFPROBE_PATH),
            prefer_persisted=_env_bool("PREFER_PERSISTED_MANIFEST", True),
        )
