#!/usr/bin/env python3
"""
Google API service construction (Sheets v4, Drive v3).
"""

import logging
from typing import Optional

import google.auth
from google.oauth2 import service_account
from googleapiclient.discovery import build

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


def get_credentials(
    service_account_file: Optional[str] = None,
    client_email: Optional[str] = None,
    private_key: Optional[str] = None,
):
    """
    Resolve Google credentials.

    Order: service account key file, inline client email + private key,
    then application default credentials.
    """
    if service_account_file:
        logging.info("Using service account file %s", service_account_file)
        return service_account.Credentials.from_service_account_file(service_account_file, scopes=SCOPES)

    if client_email and private_key:
        info = {
            "type": "service_account",
            "client_email": client_email,
            # Keys pasted into env vars usually carry escaped newlines
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": "https://oauth2.googleapis.com/token",
        }
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)

    credentials, _ = google.auth.default(scopes=SCOPES)
    return credentials


def get_sheets_service(credentials):
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def get_drive_service(credentials):
    return build("drive", "v3", credentials=credentials, cache_discovery=False)
