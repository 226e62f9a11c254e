from dataclasses import dataclass, field
from typing import Optional, List, Union, Dict, Any

from . import config


@dataclass
class AudioMetadata:
    """
    Stream details reported by the probe tool for an audio file.
    """
    duration: Optional[float] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None   # only when channel count is absent
    codec: Optional[str] = None

    def is_empty(self) -> bool:
        return all(v is None for v in (
            self.duration, self.bitrate, self.sample_rate,
            self.channels, self.channel_layout, self.codec,
        ))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.duration is not None:
            out['duration'] = self.duration
        if self.bitrate is not None:
            out['bitrate'] = self.bitrate
        if self.sample_rate is not None:
            out['sampleRate'] = self.sample_rate
        if self.channels is not None:
            out['channels'] = self.channels
        elif self.channel_layout is not None:
            out['channelLayout'] = self.channel_layout
        if self.codec is not None:
            out['codec'] = self.codec
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AudioMetadata":
        return cls(
            duration=data.get('duration'),
            bitrate=data.get('bitrate'),
            sample_rate=data.get('sampleRate'),
            channels=data.get('channels'),
            channel_layout=data.get('channelLayout'),
            codec=data.get('codec'),
        )


@dataclass
class FileNode:
    name: str
    path: str
    size: int
    mime_type: str
    audio: Optional[AudioMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            'name': self.name,
            'type': 'file',
            'path': self.path,
            'size': self.size,
            'mimeType': self.mime_type,
        }
        if self.audio is not None and not self.audio.is_empty():
            out['audio'] = self.audio.to_dict()
        return out


@dataclass
class FolderNode:
    name: str
    path: str
    children: List["ManifestNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': 'folder',
            'path': self.path,
            'children': [c.to_dict() for c in self.children],
        }


ManifestNode = Union[FileNode, FolderNode]


def node_from_dict(data: Dict[str, Any]) -> ManifestNode:
    """Rebuilds a node from its JSON form (as written to manifest.json)."""
    if data.get('type') == 'folder':
        return FolderNode(
            name=data['name'],
            path=data['path'],
            children=[node_from_dict(c) for c in data.get('children', [])],
        )
    audio = data.get('audio')
    return FileNode(
        name=data['name'],
        path=data['path'],
        size=int(data.get('size', 0)),
        mime_type=data.get('mimeType', config.DEFAULT_MIME_TYPE),
        audio=AudioMetadata.from_dict(audio) if audio else None,
    )


@dataclass
class Manifest:
    """
    The JSON document describing one folder's contents.
    """
    folder: str
    generated_at: str
    children: List[ManifestNode] = field(default_factory=list)
    version: str = config.MANIFEST_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'generatedAt': self.generated_at,
            'folder': self.folder,
            'children': [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        return cls(
            folder=data.get('folder', ''),
            generated_at=data.get('generatedAt', ''),
            children=[node_from_dict(c) for c in data.get('children', [])],
            version=data.get('version', config.MANIFEST_VERSION),
        )

    def iter_files(self):
        """Yields every FileNode in the tree, depth-first."""
        stack: List[ManifestNode] = list(reversed(self.children))
        while stack:
            node = stack.pop()
            if isinstance(node, FolderNode):
                stack.extend(reversed(node.children))
            else:
                yield node

    def count_folders(self) -> int:
        count = 0
        stack: List[ManifestNode] = list(self.children)
        while stack:
            node = stack.pop()
            if isinstance(node, FolderNode):
                count += 1
                stack.extend(node.children)
        return count
