"""Request handlers.

A handler takes a decoded request payload and returns a Success holding the
response payload, or a Failure. Failures become ERROR payloads in the
server's dispatcher, the only place wire errors are built.
"""

import logging
import traceback
from dataclasses import dataclass
from typing import Callable, Dict, Union, TYPE_CHECKING

from googleapiclient.errors import HttpError

from catalog import CatalogError, ItemKind, RemoteItem
from .payloads import BasicPayload, ListItem, ListRequest, ListResponse, PayloadType

if TYPE_CHECKING:
    from catalog import DriveCatalog

logger = logging.getLogger(__name__)

# kindCode values sent to clients
KIND_CODES = {
    ItemKind.OTHER: 0,
    ItemKind.FOLDER: 1,
    ItemKind.DOCUMENT: 2,
}

SIZE_PROPERTY = "size"


@dataclass
class Success:
    payload: BasicPayload


@dataclass
class Failure:
    """A handled failure, with a message for the client and diagnostic detail."""
    message: str
    detail: str = ""


Result = Union[Success, Failure]
Handler = Callable[[BasicPayload], Result]


def to_list_item(item: RemoteItem) -> ListItem:
    """Summarize a catalog item for a list response.

    Upload folders have no Drive size, so the ``size`` property recorded at
    upload time is used when present.
    """
    size = item.size
    if size is None:
        try:
            size = int(item.properties.get(SIZE_PROPERTY, 0))
        except (TypeError, ValueError):
            logger.warning("Ignoring bad size property on %s: %r",
                           item.id, item.properties.get(SIZE_PROPERTY))
            size = 0
    return ListItem(
        name=item.name,
        size=size,
        kind_code=KIND_CODES[item.kind],
        modified_at_millis=item.modified_millis,
        content_hash=item.id,
    )


class ListHandler:
    """Answers LIST_REQUEST with the uploads at the requested virtual path."""

    def __init__(self, catalog: "DriveCatalog") -> None:
        self.catalog = catalog

    def __call__(self, request: ListRequest) -> Result:
        logger.info("Got list request. Query: %s", request.query)
        try:
            uploads = self.catalog.list_uploads(request.query)
        except (HttpError, CatalogError, OSError) as e:
            logger.exception("Listing uploads failed")
            return Failure(f"Failed to list uploads: {e}", traceback.format_exc())

        return Success(ListResponse(
            code=1,
            message="Success",
            state=request.state,
            items=[to_list_item(upload) for upload in uploads],
        ))


def default_handlers(catalog: "DriveCatalog") -> Dict[PayloadType, Handler]:
    """Handlers for every receivable payload type."""
    return {
        PayloadType.LIST_REQUEST: ListHandler(catalog),
    }
