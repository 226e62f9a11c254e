import os
import logging
from pathlib import Path
from datetime import datetime, UTC
from typing import List, Optional, Set, Tuple

from .. import config
from ..models import FileNode, FolderNode, Manifest, ManifestNode
from ..metadata.extract import AudioProbe


def get_mime_type(name: str) -> str:
    """Maps a file name to its MIME type by lowercased extension."""
    ext = os.path.splitext(name)[1].lower()
    return config.MIME_TYPES.get(ext, config.DEFAULT_MIME_TYPE)


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec='seconds')


class ManifestBuilder:
    """
    Walks a directory tree and produces a Manifest.

    The caller is responsible for checking that root_path is a directory
    inside an allowed base; the builder trusts it.
    """

    def __init__(self, probe: Optional[AudioProbe] = None, max_depth: int = config.MAX_DEPTH):
        # probe=None disables audio enrichment
        self.probe = probe
        self.max_depth = max_depth

    def build(self, root_path: Path, relative_prefix: str = "") -> Manifest:
        root_path = Path(root_path)
        prefix = relative_prefix.strip('/')

        logging.info(f"Building manifest for {root_path} (folder={prefix or '.'})")

        visited: Set[Tuple[int, int]] = set()
        try:
            st = root_path.stat()
            visited.add((st.st_dev, st.st_ino))
        except OSError as e:
            logging.warning(f"Cannot stat {root_path}: {e}")

        children = self._walk(root_path, prefix, visited, depth=0)
        return Manifest(folder=prefix, generated_at=utc_timestamp(), children=children)

    def _walk(self, dir_path: Path, web_path: str, visited: Set[Tuple[int, int]], depth: int) -> List[ManifestNode]:
        """Depth-first walk. Unreadable directories yield an empty list."""
        try:
            with os.scandir(dir_path) as it:
                entries = [
                    e for e in it
                    if e.name not in config.EXCLUDED_NAMES
                    and not e.name.startswith(config.TEMP_MANIFEST_PREFIX)
                ]
        except OSError as e:
            logging.warning(f"Permission denied: {dir_path} ({e})")
            return []

        # Case-sensitive name order; folders and files interleave
        entries.sort(key=lambda e: e.name)

        items: List[ManifestNode] = []
        for entry in entries:
            item_path = f"{web_path}/{entry.name}" if web_path else entry.name
            try:
                is_dir = entry.is_dir()
                is_file = not is_dir and entry.is_file()
            except OSError:
                continue

            if is_dir:
                items.append(self._folder_node(entry, item_path, visited, depth))
            elif is_file:
                node = self._file_node(entry, item_path)
                if node:
                    items.append(node)
            # Anything else (dangling symlink, socket, fifo) is skipped

        return items

    def _folder_node(self, entry: os.DirEntry, item_path: str,
                     visited: Set[Tuple[int, int]], depth: int) -> FolderNode:
        node = FolderNode(name=entry.name, path=item_path)

        if depth + 1 > self.max_depth:
            logging.warning(f"Max depth {self.max_depth} reached at {entry.path}; not descending")
            return node

        try:
            st = entry.stat()
        except OSError as e:
            logging.warning(f"Cannot stat {entry.path}: {e}")
            return node

        key = (st.st_dev, st.st_ino)
        if key in visited:
            logging.warning(f"Symlink loop detected at {entry.path}; not descending")
            return node

        visited.add(key)
        try:
            node.children = self._walk(Path(entry.path), item_path, visited, depth + 1)
        finally:
            # Only ancestors count; the same directory may appear in sibling branches
            visited.discard(key)
        return node

    def _file_node(self, entry: os.DirEntry, item_path: str) -> Optional[FileNode]:
        try:
            size = entry.stat().st_size
        except OSError as e:
            # File vanished between listing and stat
            logging.warning(f"Failed to stat {entry.path}: {e}")
            return None

        mime_type = get_mime_type(entry.name)
        node = FileNode(name=entry.name, path=item_path, size=size, mime_type=mime_type)

        if self.probe is not None and mime_type.startswith('audio/'):
            node.audio = self.probe.get_audio_metadata(Path(entry.path))

        return node
