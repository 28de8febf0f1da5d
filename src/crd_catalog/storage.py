"""
File Stores

Abstracts where topic folders, manifests and artifact files come from.
The indexer and resolver only talk to the FileStore interface; the local
filesystem is the default implementation.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class FileStore(ABC):
    """
    Base file store for the artifact tree.

    Layout:
        <root>/<Topic>/TopicMetadata.json
        <root>/<Topic>/<FhirVersion>/<kind>/<filename>
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Human readable root location."""
        pass

    @abstractmethod
    def exists(self) -> bool:
        """Whether the artifact root exists."""
        pass

    @abstractmethod
    def list_topics(self) -> list[str]:
        """Immediate subfolders of the root, sorted."""
        pass

    @abstractmethod
    def read_manifest(self, topic: str) -> Optional[bytes]:
        """Manifest bytes for a topic, or None if it has no manifest."""
        pass

    @abstractmethod
    def list_versions(self, topic: str) -> list[str]:
        """FHIR version subfolders of a topic, sorted."""
        pass

    @abstractmethod
    def list_artifacts(self, topic: str, fhir_version: str, kind: str) -> list[str]:
        """Filenames inside <topic>/<version>/<kind>, sorted."""
        pass

    @abstractmethod
    def read_file(self, topic: str, fhir_version: str, kind: str, filename: str) -> bytes:
        """Read one artifact; raises FileNotFoundError if it does not exist."""
        pass

    def describe(self, *parts: str) -> str:
        return "/".join([self.location.rstrip("/"), *parts])


class LocalFileStore(FileStore):
    """
    Filesystem-backed file store.

    Folder names below a topic (version, files, resources) and the manifest
    filename are matched case-insensitively.
    """

    def __init__(self, root: Path | str, manifest_filename: str = "TopicMetadata.json"):
        self.root = Path(root)
        self.manifest_filename = manifest_filename

    @property
    def location(self) -> str:
        return str(self.root)

    def exists(self) -> bool:
        return self.root.is_dir()

    def list_topics(self) -> list[str]:
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def read_manifest(self, topic: str) -> Optional[bytes]:
        topic_dir = self._topic_dir(topic)
        if topic_dir is None:
            return None
        wanted = self.manifest_filename.lower()
        for path in sorted(topic_dir.iterdir()):
            if path.is_file() and path.name.lower() == wanted:
                return path.read_bytes()
        return None

    def list_versions(self, topic: str) -> list[str]:
        topic_dir = self._topic_dir(topic)
        if topic_dir is None:
            return []
        return sorted(p.name for p in topic_dir.iterdir() if p.is_dir())

    def list_artifacts(self, topic: str, fhir_version: str, kind: str) -> list[str]:
        folder = self._kind_dir(topic, fhir_version, kind)
        if folder is None:
            return []
        return sorted(p.name for p in folder.iterdir() if p.is_file())

    def read_file(self, topic: str, fhir_version: str, kind: str, filename: str) -> bytes:
        if _is_plain_name(filename):
            for folder in self._kind_dirs(topic, fhir_version, kind):
                path = folder / filename
                if path.is_file():
                    return path.read_bytes()
        raise FileNotFoundError(self.describe(topic, fhir_version, kind, filename))

    def _topic_dir(self, topic: str) -> Optional[Path]:
        if not _is_plain_name(topic):
            return None
        path = self.root / topic
        return path if path.is_dir() else None

    def _kind_dirs(self, topic: str, fhir_version: str, kind: str) -> list[Path]:
        topic_dir = self._topic_dir(topic)
        if topic_dir is None:
            return []
        return [
            kind_dir
            for version_dir in _child_dirs(topic_dir, fhir_version)
            for kind_dir in _child_dirs(version_dir, kind)
        ]

    def _kind_dir(self, topic: str, fhir_version: str, kind: str) -> Optional[Path]:
        folders = self._kind_dirs(topic, fhir_version, kind)
        return folders[0] if folders else None


def _is_plain_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name


def _child_dirs(parent: Path, name: str) -> list[Path]:
    """Case-insensitive matches for a child folder, exact match first."""
    if not _is_plain_name(name):
        return []
    wanted = name.lower()
    matches = sorted(p for p in parent.iterdir() if p.is_dir() and p.name.lower() == wanted)
    matches.sort(key=lambda p: p.name != name)
    return matches
