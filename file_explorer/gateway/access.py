import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import GatewayConfig
from ..exceptions import (
    BadRequest,
    Forbidden,
    ManifestDecodeError,
    ManifestEncodeError,
    ManifestNotFoundError,
    ManifestWriteError,
    NotFound,
    RateLimited,
    ServerError,
    Unauthorized,
)
from ..metadata.extract import AudioProbe
from ..scanning.filesystem import ManifestBuilder, utc_timestamp
from ..storage.store import ManifestStore
from .ratelimit import RateLimiter


class AccessGateway:
    """
    Authenticated front door to the library.

    Checks run in a fixed order: rate limit, API key, folder path, whitelist,
    then resolution on disk. Every rejection is a GatewayError subclass.
    """

    def __init__(self,
                 config: GatewayConfig,
                 builder: Optional[ManifestBuilder] = None,
                 store: Optional[ManifestStore] = None,
                 limiter: Optional[RateLimiter] = None):
        self.config = config
        if builder is None:
            probe = AudioProbe(config.ffprobe_path) if config.probe_audio else None
            builder = ManifestBuilder(probe=probe)
        self.builder = builder
        self.store = store or ManifestStore()
        self.limiter = limiter or RateLimiter(config.rate_limit_max_requests, config.rate_limit_window_sec)

    # --- Operations ---

    def health(self) -> Dict[str, Any]:
        return {
            'status': 'ok',
            'timestamp': utc_timestamp(),
            'environment': self.config.environment,
        }

    def list_allowed_folders(self, api_key: Optional[str]) -> List[str]:
        self.check_api_key(api_key)
        return list(self.config.allowed_folders)

    def handle_manifest_request(self, api_key: Optional[str], folder: Optional[str],
                                source: str = "unknown") -> Dict[str, Any]:
        """
        Returns the manifest for a whitelisted folder, preferring a persisted
        manifest.json when configured to.
        """
        self.check_rate_limit(source)
        self.check_api_key(api_key, source)
        folder = self.validate_folder(folder, source)
        target = self.resolve_folder(folder)

        if self.config.prefer_persisted and self.store.exists(target):
            try:
                manifest = self.store.load(target)
            except ManifestNotFoundError as e:
                logging.error(f"Manifest unreadable for folder {folder}: {e}")
                raise NotFound("Manifest file or folder not found")
            except ManifestDecodeError as e:
                logging.error(f"Manifest request failed: {e}")
                raise ServerError("Invalid manifest file format")
            logging.info(f"Manifest served from file: {self.store.path_for(target)}")
            return manifest

        manifest = self.builder.build(target, folder).to_dict()
        logging.info(f"Manifest generated for directory: {target}")
        return manifest

    def generate_manifest(self, api_key: Optional[str], folder: Optional[str],
                          save: bool = False, source: str = "unknown") -> Dict[str, Any]:
        """Always walks the folder; optionally persists the result."""
        self.check_api_key(api_key, source)
        folder = self.validate_folder(folder, source)
        target = self.resolve_folder(folder)

        manifest = self.builder.build(target, folder)
        if not save:
            return manifest.to_dict()

        try:
            dest = self.store.persist(manifest, target)
        except ManifestEncodeError as e:
            logging.error(str(e))
            raise ServerError("Failed to encode manifest to JSON")
        except ManifestWriteError as e:
            logging.error(str(e))
            raise ServerError("Failed to write manifest.json to disk")

        return {
            'status': 'success',
            'message': f"{self.store.filename} saved to {folder}/{self.store.filename}",
            'path': str(dest),
            'size': dest.stat().st_size,
            'itemCount': len(manifest.children),
        }

    # --- Checks ---

    def check_rate_limit(self, source: str = "unknown"):
        if not self.config.rate_limit_enabled:
            return
        if not self.limiter.hit(source):
            logging.warning(f"[SECURITY] Rate limit exceeded for IP: {source}")
            raise RateLimited("Rate limit exceeded. Please try again later.")

    def check_api_key(self, api_key: Optional[str], source: str = "unknown"):
        if not api_key or not self.config.api_key or api_key != self.config.api_key:
            logging.warning(f"[SECURITY] Unauthorized access attempt - Invalid API key from {source}")
            raise Unauthorized("Invalid or missing API key")

    def validate_folder(self, folder: Optional[str], source: str = "unknown") -> str:
        """
        Returns the normalized folder path, or raises BadRequest / Forbidden.
        """
        if not folder or not folder.strip():
            raise BadRequest("Folder parameter is required (use ?folder=path)")

        if '..' in folder or '//' in folder or '\\' in folder or folder.startswith('/'):
            logging.warning(f"[SECURITY] Traversal attempt with folder: {folder} from {source}")
            raise Forbidden("Access to this folder is not allowed")

        normalized = folder.strip().rstrip('/')
        if any(seg in ('', '.') for seg in normalized.split('/')):
            logging.warning(f"[SECURITY] Forbidden access attempt to folder: {folder} from {source}")
            raise Forbidden("Access to this folder is not allowed")

        if not self.is_whitelisted(normalized):
            logging.warning(f"[SECURITY] Forbidden access attempt to folder: {folder} from {source}")
            raise Forbidden("Access to this folder is not allowed")

        return normalized

    def is_whitelisted(self, folder: str) -> bool:
        return any(
            folder == allowed or folder.startswith(allowed + '/')
            for allowed in self.config.allowed_folders
        )

    def resolve_folder(self, folder: str) -> Path:
        """Maps a validated folder onto the library root."""
        root = Path(self.config.library_root).resolve()
        target = (root / folder).resolve()

        # A symlink inside a whitelisted folder must not lead outside the library
        if target != root and root not in target.parents:
            logging.warning(f"[SECURITY] Folder {folder} resolves outside library root: {target}")
            raise Forbidden("Access to this folder is not allowed")

        if not target.is_dir():
            logging.error(f"Manifest not found for folder: {folder}")
            raise NotFound("Manifest file or folder not found")

        return target
