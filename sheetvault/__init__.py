"""SheetVault - Application state and configuration."""

import logging
import os
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    import argparse

__version__ = "0.1.0"

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


class SheetVault:
    """Central configuration for the SheetVault backend.

    Values come from SHEETVAULT_* environment variables and can be
    overridden from parsed CLI args with configure().
    """

    # Socket server
    host: str = "127.0.0.1"
    port: int = 4567
    max_workers: int = 8

    # Drive credentials
    credentials_path: str = "credentials.json"
    service_account_file: Optional[str] = None
    token_path: str = "token.pickle"

    # Catalog
    root_folder_name: str = "sheetStore"
    page_size: int = 50

    @classmethod
    def load_env(cls) -> None:
        """Load configuration from the environment."""
        cls.host = os.environ.get("SHEETVAULT_HOST", cls.host)
        cls.port = _env_int("SHEETVAULT_PORT", cls.port)
        cls.max_workers = _env_int("SHEETVAULT_WORKERS", cls.max_workers)
        cls.credentials_path = os.environ.get("SHEETVAULT_CREDENTIALS", cls.credentials_path)
        cls.service_account_file = os.environ.get("SHEETVAULT_SERVICE_ACCOUNT",
                                                  cls.service_account_file)
        cls.token_path = os.environ.get("SHEETVAULT_TOKEN", cls.token_path)
        cls.root_folder_name = os.environ.get("SHEETVAULT_ROOT", cls.root_folder_name)

    @classmethod
    def configure(cls, args: "argparse.Namespace") -> None:
        """Initialize configuration from the environment, then parsed CLI args."""
        cls.load_env()
        if getattr(args, 'host', None):
            cls.host = args.host
        if getattr(args, 'port', None):
            cls.port = args.port
        if getattr(args, 'workers', None):
            cls.max_workers = args.workers
        if getattr(args, 'credentials', None):
            cls.credentials_path = args.credentials
        if getattr(args, 'service_account', None):
            cls.service_account_file = args.service_account

    @staticmethod
    def configure_logging(verbose: bool = False) -> None:
        """Set up root logging for the backend process."""
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=LOG_FORMAT,
        )
        # Silence the discovery client's file_cache warning
        logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
