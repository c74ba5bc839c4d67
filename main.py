#!/usr/bin/env python3
"""SheetVault - Drive catalog backend for local clients."""

import argparse
import logging
import sys

from sheetvault import SheetVault, __version__
from catalog import CatalogError, DriveCatalog, build_drive_service
from protocol import PayloadServer, default_handlers

logger = logging.getLogger("sheetvault")


def create_catalog() -> DriveCatalog:
    """Build the Drive catalog from the current configuration."""
    service = build_drive_service(
        credentials_path=SheetVault.credentials_path,
        token_path=SheetVault.token_path,
        service_account_file=SheetVault.service_account_file,
    )
    return DriveCatalog(service, root_folder_name=SheetVault.root_folder_name,
                        page_size=SheetVault.page_size)


def serve(catalog: DriveCatalog) -> None:
    """Resolve the root folder, then serve socket clients until interrupted."""
    catalog.init()
    server = PayloadServer(
        default_handlers(catalog),
        host=SheetVault.host,
        port=SheetVault.port,
        max_workers=SheetVault.max_workers,
    )
    try:
        server.start()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    finally:
        server.shutdown()


def print_uploads(catalog: DriveCatalog, path: str, starred: bool, trashed: bool) -> None:
    """Print the uploads at a virtual path."""
    uploads = catalog.list_uploads(path, starred=starred, trashed=trashed)
    if not uploads:
        print("No uploads found")
        return
    for upload in uploads:
        print(f"{upload.id}  {upload.path}{upload.name}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Drive catalog backend for local clients")
    parser.add_argument("--host", type=str,
                        help="Interface to listen on (default 127.0.0.1)")
    parser.add_argument("--port", type=int,
                        help="Port to listen on (default 4567)")
    parser.add_argument("--workers", type=int,
                        help="Number of request worker threads")
    parser.add_argument("--credentials", type=str,
                        help="OAuth client secrets file (default credentials.json)")
    parser.add_argument("--service-account", type=str,
                        help="Use a service account key file instead of OAuth")
    parser.add_argument("--list", nargs="?", const="/", metavar="PATH",
                        help="Print the uploads at PATH and exit")
    parser.add_argument("--starred", action="store_true",
                        help="With --list, show starred uploads from every path")
    parser.add_argument("--trashed", action="store_true",
                        help="With --list, show trashed uploads")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    SheetVault.configure_logging(args.verbose)
    try:
        SheetVault.configure(args)
        catalog = create_catalog()
        if args.list is not None:
            print_uploads(catalog, args.list, args.starred, args.trashed)
        else:
            serve(catalog)
    except (CatalogError, ValueError) as e:
        logger.error("Error: %s", e)
        return 1
    except OSError as e:
        logger.error("Failed to start server: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
