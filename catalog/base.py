"""Data model for the Drive catalog.

Drive items are exposed as RemoteItem dataclasses. All catalog metadata
(virtual path, upload markers, favorites) lives in the item's custom
``properties`` map; Drive enforces no schema on it.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


FOLDER_MIME = "application/vnd.google-apps.folder"
SHEET_MIME = "application/vnd.google-apps.spreadsheet"

# Fields requested for every item the catalog returns
DRIVE_FIELDS = "id, name, mimeType, parents, properties, trashed, size, modifiedTime"

# Property keys recognized by the catalog
PATH_PROPERTY = "path"
DIRECT_PARENT_PROPERTY = "directParent"
STARRED_PROPERTY = "starred"

ROOT_PATH = "/"
PATH_REGEX = re.compile(r"/([\w-]+?(/[\w-]+?){0,1})*/", re.ASCII)


class CatalogError(Exception):
    """Base exception for catalog operations."""
    pass


class ItemKind(Enum):
    """Kind of a Drive item, derived from its mimeType."""
    FOLDER = FOLDER_MIME
    DOCUMENT = SHEET_MIME
    OTHER = None

    @property
    def mime(self) -> Optional[str]:
        return self.value

    @classmethod
    def from_mime(cls, mime_type: Optional[str]) -> "ItemKind":
        for kind in (cls.FOLDER, cls.DOCUMENT):
            if kind.value == mime_type:
                return kind
        return cls.OTHER


def is_valid_path(path: Optional[str]) -> bool:
    """Check whether path is a well-formed virtual path like ``/a/b/``."""
    return bool(path) and not path.isspace() and PATH_REGEX.fullmatch(path) is not None


def normalize_path(path: Optional[str]) -> str:
    """Return path unchanged if valid, otherwise the root path ``/``."""
    return path if is_valid_path(path) else ROOT_PATH


@dataclass
class RemoteItem:
    """A file or folder in Drive.

    Attributes:
        id: Drive-assigned identifier, immutable
        name: Display name
        kind: FOLDER, DOCUMENT or OTHER
        parents: Ids of parent folders
        properties: Custom key/value metadata
        trashed: Whether the item is in the trash
        size: Size in bytes (Drive omits it for folders and Google docs)
        modified_time: RFC 3339 modification timestamp
        mime_type: Raw Drive mimeType
    """
    id: str
    name: str = ""
    kind: ItemKind = ItemKind.OTHER
    parents: List[str] = field(default_factory=list)
    properties: Dict[str, str] = field(default_factory=dict)
    trashed: bool = False
    size: Optional[int] = None
    modified_time: Optional[str] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_drive(cls, data: Dict[str, Any]) -> "RemoteItem":
        """Build an item from a Drive v3 file resource."""
        size = data.get('size')
        return cls(
            id=data['id'],
            name=data.get('name', ""),
            kind=ItemKind.from_mime(data.get('mimeType')),
            parents=list(data.get('parents') or []),
            properties=dict(data.get('properties') or {}),
            trashed=bool(data.get('trashed', False)),
            size=int(size) if size is not None else None,
            modified_time=data.get('modifiedTime'),
            mime_type=data.get('mimeType'),
        )

    @property
    def path(self) -> str:
        return self.properties.get(PATH_PROPERTY, ROOT_PATH)

    @property
    def is_upload(self) -> bool:
        return self.properties.get(DIRECT_PARENT_PROPERTY) == "true"

    @property
    def starred(self) -> bool:
        return self.properties.get(STARRED_PROPERTY) == "true"

    @property
    def modified_millis(self) -> int:
        """Modification time as epoch milliseconds, 0 if unknown."""
        if not self.modified_time:
            return 0
        # Drive returns e.g. 2024-01-31T12:00:00.000Z
        stamp = datetime.fromisoformat(self.modified_time.replace("Z", "+00:00"))
        return int(stamp.timestamp() * 1000)
