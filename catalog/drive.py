"""Google Drive catalog client.

Layers the virtual path/tag model on top of the Drive v3 ``files()``
resource. Folders tagged ``directParent=true`` are upload roots; their
``path`` property groups them into virtual directories.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Union

from googleapiclient.errors import HttpError

from .base import (
    CatalogError,
    ItemKind,
    RemoteItem,
    DRIVE_FIELDS,
    DIRECT_PARENT_PROPERTY,
    PATH_PROPERTY,
    STARRED_PROPERTY,
    normalize_path,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_ROOT_NAME = "sheetStore"

ItemRef = Union[RemoteItem, str]


def _escape_query_value(value: str) -> str:
    """Escape a value for use in Google Drive API query strings."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _property_filter(key: str, value: str) -> str:
    return f"properties has {{ key='{key}' and value='{_escape_query_value(value)}' }}"


def _kind_filter(kinds: Iterable[ItemKind]) -> Optional[str]:
    """OR together mimeType clauses, parenthesized so it binds before 'and'."""
    clauses = [f"mimeType = '{kind.mime}'" for kind in kinds if kind.mime]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return "(" + " or ".join(clauses) + ")"


def _item_id(item: ItemRef) -> str:
    return item.id if isinstance(item, RemoteItem) else item


class DriveCatalog:
    """Catalog of uploads kept in Google Drive.

    All upload folders live under a single root folder (``sheetStore`` by
    default), resolved lazily and memoized for the life of the process.
    """

    def __init__(self, service, root_folder_name: str = DEFAULT_ROOT_NAME,
                 page_size: int = DEFAULT_PAGE_SIZE) -> None:
        """Initialize the catalog.

        Args:
            service: Drive v3 service from googleapiclient.discovery.build
            root_folder_name: Name of the folder that contains all uploads
            page_size: Number of items requested per list page
        """
        self.service = service
        self.root_folder_name = root_folder_name
        self.page_size = page_size
        self._sheet_store: Optional[RemoteItem] = None
        self._sheet_store_lock = threading.Lock()

    def init(self) -> RemoteItem:
        """Resolve the root folder eagerly, before serving requests."""
        root = self.get_sheet_store()
        logger.info("Using root folder %r (%s)", root.name, root.id)
        return root

    # =========================================================================
    # Single items
    # =========================================================================

    def get_file(self, file_id: str, fields: Optional[str] = None) -> Optional[RemoteItem]:
        """Return the item with the given id.

        Args:
            file_id: Drive id of the item
            fields: Partial-response field list. When given, every Drive
                error propagates, including 404.

        Returns:
            RemoteItem, or None if Drive reports 404 and no fields were given

        Raises:
            HttpError: Any other Drive error
        """
        if fields is not None:
            result = self.service.files().get(fileId=file_id, fields=fields).execute()
            return RemoteItem.from_drive(result)

        try:
            result = self.service.files().get(fileId=file_id, fields=DRIVE_FIELDS).execute()
        except HttpError as e:
            if e.resp.status == 404:
                return None
            raise
        return RemoteItem.from_drive(result)

    def get_id_of_name(self, name: str, in_sheet_store: bool = True) -> Optional[str]:
        """Return the id of the first folder whose name contains ``name``.

        Args:
            name: Substring to match. Single quotes are dropped.
            in_sheet_store: Only match direct children of the root folder

        Returns:
            The folder id, or None if nothing matched or the lookup failed
        """
        # Quotes are dropped, not escaped
        cleaned = name.replace("'", "")
        query = f"name contains '{cleaned}'"
        try:
            if in_sheet_store:
                query = f"'{self.get_sheet_store().id}' in parents and {query}"
            files = self.get_files(1, query, kinds=[ItemKind.FOLDER])
        except (HttpError, CatalogError, OSError) as e:
            logger.debug("Lookup of %r failed: %s", name, e)
            return None
        return files[0].id if files else None

    # =========================================================================
    # Listings
    # =========================================================================

    def list_uploads(self, path: str = "/", starred: bool = False,
                     trashed: bool = False) -> List[RemoteItem]:
        """List upload folders at a virtual path.

        An invalid or blank path is treated as ``/``. With ``starred`` the
        path is ignored and only starred uploads are returned.

        Returns:
            List of upload folders; empty if the Drive request failed
        """
        path = normalize_path(path)
        clauses = [_property_filter(DIRECT_PARENT_PROPERTY, "true")]
        if starred:
            clauses.append(_property_filter(STARRED_PROPERTY, "true"))
        else:
            clauses.append(_property_filter(PATH_PROPERTY, path))
        clauses.append(f"trashed = {'true' if trashed else 'false'}")

        try:
            return self.get_files(-1, " and ".join(clauses), kinds=[ItemKind.FOLDER])
        except (HttpError, OSError):
            logger.exception("An error occurred while listing uploads at %s", path)
            return []

    def get_all_sheets(self, parent_id: Optional[str] = None) -> List[RemoteItem]:
        """List uploads, or the spreadsheets inside one upload folder.

        Args:
            parent_id: Folder to list. Without it, every item tagged as an
                upload root is returned.
        """
        if parent_id is None:
            return self.get_files(-1, _property_filter(DIRECT_PARENT_PROPERTY, "true"),
                                  kinds=[ItemKind.FOLDER])
        return self.get_files(-1, f"'{_escape_query_value(parent_id)}' in parents",
                              kinds=[ItemKind.DOCUMENT])

    def get_files(self, limit: int = -1, query: Optional[str] = None,
                  fields: str = DRIVE_FIELDS,
                  kinds: Sequence[ItemKind] = ()) -> List[RemoteItem]:
        """Page through Drive and collect items of the given kinds.

        Pages are fetched one at a time, following nextPageToken, until
        ``limit`` items are collected or Drive has no more pages.

        Args:
            limit: Maximum number of items; -1 for all (use sparingly, this
                walks every matching page)
            query: Extra Drive query, and-ed with the kind filter
            fields: Fields to request for each item
            kinds: Item kinds to match; empty matches everything

        Returns:
            List of matching items, in Drive order
        """
        if limit == 0:
            return []

        clauses = [c for c in (_kind_filter(kinds), query) if c and not c.isspace()]
        q = " and ".join(clauses) or None
        wanted = set(kinds)
        found: List[RemoteItem] = []
        page_token = None

        while True:
            response = self.service.files().list(
                q=q,
                pageSize=self.page_size,
                fields=f"nextPageToken, files({fields})",
                pageToken=page_token,
            ).execute()

            for data in response.get('files', []):
                item = RemoteItem.from_drive(data)
                # Drive's mimeType filter is advisory
                if wanted and item.kind not in wanted:
                    continue
                found.append(item)
                if len(found) == limit:
                    return found

            page_token = response.get('nextPageToken')
            if not page_token:
                break

        return found

    # =========================================================================
    # Writes
    # =========================================================================

    def create_folder(self, name: str, parent: Optional[ItemRef] = None,
                      properties: Optional[Dict[str, str]] = None) -> RemoteItem:
        """Create a folder, optionally inside ``parent`` and with properties.

        Returns:
            The created folder as reported by Drive
        """
        body = {
            'name': name,
            'mimeType': ItemKind.FOLDER.mime,
        }
        if parent is not None:
            body['parents'] = [_item_id(parent)]
        if properties:
            body['properties'] = dict(properties)

        result = self.service.files().create(body=body, fields=DRIVE_FIELDS).execute()
        logger.debug("Created folder %r (%s)", name, result.get('id'))
        return RemoteItem.from_drive(result)

    def add_properties(self, item: ItemRef, properties: Dict[str, str]) -> RemoteItem:
        """Add or overwrite properties, keeping all other existing ones.

        When only an id is given, the current properties are fetched first.
        """
        if not isinstance(item, RemoteItem):
            item = self.get_file(item, "id, properties")
        combined = dict(item.properties)
        combined.update(properties)
        return self._update_properties(item.id, combined)

    def set_properties(self, item: ItemRef, properties: Dict[str, str]) -> RemoteItem:
        """Replace the item's properties with exactly ``properties``.

        Properties previously set that are not in ``properties`` are cleared.
        """
        current = self.get_file(_item_id(item), "id, properties")
        body: Dict[str, Optional[str]] = {key: None for key in current.properties
                                          if key not in properties}
        body.update(properties)
        return self._update_properties(current.id, body)

    def _update_properties(self, file_id: str, properties: Dict[str, Optional[str]]) -> RemoteItem:
        # Drive merges properties on update; a None value deletes the key
        result = self.service.files().update(
            fileId=file_id,
            body={'properties': properties},
            fields="id, properties",
        ).execute()
        return RemoteItem.from_drive(result)

    # =========================================================================
    # Root folder
    # =========================================================================

    def get_sheet_store(self) -> RemoteItem:
        """Return the root folder, finding or creating it on first use.

        Concurrent callers in this process share one lookup, so the folder is
        created at most once per process. Separate processes starting against
        an empty Drive can still each create one.

        Raises:
            CatalogError: If the folder can't be found or created
        """
        root = self._sheet_store
        if root is not None:
            return root

        with self._sheet_store_lock:
            if self._sheet_store is None:
                self._sheet_store = self._create_sheet_store()
            return self._sheet_store

    def _create_sheet_store(self) -> RemoteItem:
        name = _escape_query_value(self.root_folder_name)
        try:
            existing = self.get_files(1, f"name = '{name}' and trashed = false",
                                      kinds=[ItemKind.FOLDER])
            if existing:
                return existing[0]
            logger.info("Root folder %r not found, creating it", self.root_folder_name)
            return self.create_folder(self.root_folder_name)
        except (HttpError, OSError) as e:
            raise CatalogError(f"Failed to resolve root folder {self.root_folder_name!r}: {e}") from e
