"""
Reading and writing manifest.json files.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

from .. import config
from ..exceptions import (
    ManifestDecodeError,
    ManifestEncodeError,
    ManifestNotFoundError,
    ManifestWriteError,
)
from ..models import Manifest


def encode_manifest(manifest: Manifest) -> str:
    """Pretty-printed JSON with slashes and non-ASCII left as-is."""
    try:
        return json.dumps(manifest.to_dict(), indent=4, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ManifestEncodeError(f"Failed to encode manifest: {e}") from e


def _current_umask() -> int:
    # os.umask can only be read by setting it
    mask = os.umask(0)
    os.umask(mask)
    return mask


class ManifestStore:
    def __init__(self, filename: str = config.MANIFEST_FILENAME):
        self.filename = filename

    def path_for(self, target_dir: Path) -> Path:
        return Path(target_dir) / self.filename

    def exists(self, target_dir: Path) -> bool:
        p = self.path_for(target_dir)
        return p.is_file() and os.access(p, os.R_OK)

    def persist(self, manifest: Manifest, target_dir: Path) -> Path:
        """
        Writes the manifest to <target_dir>/manifest.json.

        The payload goes to a temp file in the same directory first and is then
        renamed over the target, so readers never see a half-written file.
        """
        target_dir = Path(target_dir)
        if not target_dir.is_dir() or not os.access(target_dir, os.W_OK):
            raise ManifestWriteError(f"Directory is not writable: {target_dir}")

        payload = encode_manifest(manifest)
        dest = self.path_for(target_dir)

        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=target_dir,
                prefix=config.TEMP_MANIFEST_PREFIX, suffix=".tmp", delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            # NamedTemporaryFile is 0600; give the manifest ordinary umask permissions
            os.chmod(tmp_name, 0o666 & ~_current_umask())
            os.replace(tmp_name, dest)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ManifestWriteError(f"Failed to write {dest}: {e}") from e

        logging.info(f"Manifest written: {dest}")
        return dest

    def load(self, target_dir: Path) -> Dict[str, Any]:
        """Returns the parsed JSON of a persisted manifest, verbatim."""
        p = self.path_for(target_dir)
        try:
            content = p.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestNotFoundError(f"Cannot read {p}: {e}") from e

        try:
            data = json.loads(content)
        except ValueError as e:
            raise ManifestDecodeError(f"Invalid manifest file format in {p}: {e}") from e

        if not isinstance(data, dict):
            raise ManifestDecodeError(f"Manifest in {p} is not a JSON object")
        return data
