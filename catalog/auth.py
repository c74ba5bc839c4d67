"""Credentials and Drive service construction."""

import logging
import os
import pickle
from typing import Optional

import google_auth_httplib2
import httplib2
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.http import HttpRequest

from .base import CatalogError

logger = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/drive']


def load_user_credentials(credentials_path: str = "credentials.json",
                          token_path: str = "token.pickle"):
    """Load OAuth user credentials, running the consent flow if needed.

    A cached token is reused and refreshed when it has expired. Otherwise
    the installed-app flow opens a browser for consent, and the resulting
    token is saved to ``token_path``.

    Raises:
        CatalogError: If there is no cached token and no client secrets file
    """
    creds = None
    if os.path.exists(token_path):
        with open(token_path, 'rb') as token:
            creds = pickle.load(token)

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        logger.info("Refreshing expired Drive token")
        creds.refresh(Request())
    else:
        if not os.path.exists(credentials_path):
            raise CatalogError(f"Client secrets file not found: {credentials_path}")
        flow = InstalledAppFlow.from_client_secrets_file(credentials_path, SCOPES)
        creds = flow.run_local_server(port=0)

    with open(token_path, 'wb') as token:
        pickle.dump(creds, token)
    return creds


def load_service_account_credentials(service_account_file: str):
    """Load service account credentials from a key file."""
    try:
        return service_account.Credentials.from_service_account_file(
            service_account_file, scopes=SCOPES
        )
    except (OSError, ValueError) as e:
        raise CatalogError(f"Failed to load service account key {service_account_file}: {e}") from e


def build_drive_service(credentials_path: str = "credentials.json",
                        token_path: str = "token.pickle",
                        service_account_file: Optional[str] = None):
    """Build a Drive v3 service that is safe to share between threads.

    httplib2.Http is not thread-safe, so every request gets its own
    authorized Http instead of sharing the service's.
    """
    if service_account_file:
        creds = load_service_account_credentials(service_account_file)
    else:
        creds = load_user_credentials(credentials_path, token_path)

    def build_request(http, *args, **kwargs):
        new_http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http())
        return HttpRequest(new_http, *args, **kwargs)

    authorized_http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http())
    return build('drive', 'v3', requestBuilder=build_request, http=authorized_http,
                 cache_discovery=False)
