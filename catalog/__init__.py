"""Drive-backed catalog of uploads.

Usage:
    from catalog import DriveCatalog, build_drive_service

    catalog = DriveCatalog(build_drive_service())
    uploads = catalog.list_uploads("/photos/")
"""

from .base import (
    CatalogError,
    ItemKind,
    RemoteItem,
    DRIVE_FIELDS,
    ROOT_PATH,
    is_valid_path,
    normalize_path,
)
from .drive import DriveCatalog
from .auth import build_drive_service


__all__ = [
    'CatalogError',
    'ItemKind',
    'RemoteItem',
    'DRIVE_FIELDS',
    'ROOT_PATH',
    'is_valid_path',
    'normalize_path',
    'DriveCatalog',
    'build_drive_service',
]
