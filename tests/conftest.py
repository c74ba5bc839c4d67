"""Shared fixtures: an in-memory stand-in for the Drive v3 files() resource."""

import copy
import itertools
import json
import threading
import time
from typing import Callable, Dict, List, Optional

import httplib2
import pytest
from googleapiclient.errors import HttpError

from catalog.base import FOLDER_MIME


def make_http_error(status: int, message: str = "error") -> HttpError:
    """Build an HttpError like the one googleapiclient raises."""
    resp = httplib2.Response({'status': status})
    content = json.dumps({'error': {'code': status, 'message': message}}).encode('utf-8')
    return HttpError(resp, content)


class FakeRequest:
    def __init__(self, func: Callable[[], Dict]) -> None:
        self._func = func

    def execute(self) -> Dict:
        return self._func()


class FakeFiles:
    def __init__(self, drive: "FakeDrive") -> None:
        self.drive = drive

    def get(self, fileId, fields=None, **kwargs):
        return FakeRequest(lambda: self.drive.do_get(fileId, fields))

    def list(self, q=None, pageSize=100, fields=None, pageToken=None, **kwargs):
        return FakeRequest(lambda: self.drive.do_list(q, pageSize, fields, pageToken))

    def create(self, body, fields=None, **kwargs):
        return FakeRequest(lambda: self.drive.do_create(body))

    def update(self, fileId, body=None, fields=None, **kwargs):
        return FakeRequest(lambda: self.drive.do_update(fileId, body or {}))


class FakeDrive:
    """Minimal Drive: items by id, paged listing, PATCH-style updates.

    Listing does not evaluate Drive queries. It pages over ``listing`` when
    set, otherwise over every stored item, optionally narrowed by
    ``matcher(q, item)``. Every list call is recorded in ``list_calls``.
    """

    def __init__(self) -> None:
        self.items: Dict[str, Dict] = {}
        self.listing: Optional[List[Dict]] = None
        self.matcher: Optional[Callable[[str, Dict], bool]] = None
        self.list_calls: List[Dict] = []
        self.created: List[Dict] = []
        self.updates: List[Dict] = []
        self.error: Optional[Exception] = None
        self.list_delay = 0.0
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def files(self) -> FakeFiles:
        return FakeFiles(self)

    def add(self, name: str, mime: str = FOLDER_MIME, **extra) -> Dict:
        item = {
            'id': f"id{next(self._ids)}",
            'name': name,
            'mimeType': mime,
            'parents': [],
            'properties': {},
            'trashed': False,
        }
        item.update(extra)
        self.items[item['id']] = item
        return item

    def _raise_if_failing(self) -> None:
        if self.error is not None:
            raise self.error

    def do_get(self, file_id: str, fields: Optional[str]) -> Dict:
        self._raise_if_failing()
        if file_id not in self.items:
            raise make_http_error(404, f"File not found: {file_id}")
        return copy.deepcopy(self.items[file_id])

    def do_list(self, q, page_size, fields, page_token) -> Dict:
        self._raise_if_failing()
        with self._lock:
            self.list_calls.append({'q': q, 'pageSize': page_size,
                                    'fields': fields, 'pageToken': page_token})
        if self.list_delay:
            time.sleep(self.list_delay)

        if self.listing is not None:
            source = self.listing
        else:
            source = [item for item in self.items.values()
                      if self.matcher is None or self.matcher(q, item)]

        start = int(page_token) if page_token else 0
        end = start + page_size
        response = {'files': copy.deepcopy(source[start:end])}
        if end < len(source):
            response['nextPageToken'] = str(end)
        return response

    def do_create(self, body: Dict) -> Dict:
        self._raise_if_failing()
        with self._lock:
            extra = {key: value for key, value in body.items() if key not in ('name', 'mimeType')}
            item = self.add(body['name'], body.get('mimeType'), **extra)
            self.created.append(item)
        return copy.deepcopy(item)

    def do_update(self, file_id: str, body: Dict) -> Dict:
        self._raise_if_failing()
        if file_id not in self.items:
            raise make_http_error(404, f"File not found: {file_id}")
        self.updates.append({'fileId': file_id, 'body': copy.deepcopy(body)})
        item = self.items[file_id]
        for key, value in body.get('properties', {}).items():
            if value is None:
                item['properties'].pop(key, None)
            else:
                item['properties'][key] = value
        return {'id': file_id, 'properties': dict(item['properties'])}


@pytest.fixture
def drive():
    """An empty fake Drive."""
    return FakeDrive()


@pytest.fixture
def http_error():
    """Factory for googleapiclient HttpErrors."""
    return make_http_error
