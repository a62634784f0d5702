#!/usr/bin/env python3
"""
Google Drive image storage: incoming folder, archive folder and the
changes watch that drives the webhook.
"""

import io
import logging
import uuid
from typing import Dict, List, Optional

from googleapiclient.http import MediaIoBaseDownload

from backoff import RetryPolicy, is_transient_error
from filenames import RawImageFile
from storage import FileContent, ImageStorage, StorageError

LIST_FIELDS = "nextPageToken, files(id, name, mimeType, size, modifiedTime)"

# Config tab keys
DRIVE_CHANNEL_ID = "DRIVE_CHANNEL_ID"
DRIVE_RESOURCE_ID = "DRIVE_RESOURCE_ID"
DRIVE_CHANNEL_EXPIRATION = "DRIVE_CHANNEL_EXPIRATION"
DRIVE_START_PAGE_TOKEN = "DRIVE_START_PAGE_TOKEN"
DRIVE_LATEST_PAGE_TOKEN = "DRIVE_LATEST_PAGE_TOKEN"


class DriveStorage(ImageStorage):
    def __init__(
        self,
        drive_service,
        folder_id: str,
        archive_folder_id: str,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.drive = drive_service
        self.folder_id = folder_id
        self.archive_folder_id = archive_folder_id
        self.retry = retry_policy or RetryPolicy(name="drive", should_retry=is_transient_error)

    def list_files(self) -> List[RawImageFile]:
        query = f"('{self.folder_id}' in parents) and trashed = false"
        files = []
        page_token = None

        while True:
            response = self.retry.run(
                lambda: self.drive.files().list(
                    q=query,
                    pageToken=page_token,
                    fields=LIST_FIELDS,
                    spaces="drive",
                    pageSize=1000,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                ).execute(),
                "list files",
            )

            for item in response.get("files", []):
                if not item.get("id") or not item.get("name"):
                    continue
                files.append(RawImageFile(
                    file_id=item["id"],
                    filename=item["name"],
                    mime_type=item.get("mimeType"),
                    size_bytes=int(item["size"]) if item.get("size") else None,
                    modified_time=item.get("modifiedTime"),
                ))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        return files

    def get_file_metadata(self, file_id: str, fields: str = "id, name, mimeType, parents") -> Dict:
        return self.retry.run(
            lambda: self.drive.files().get(fileId=file_id, fields=fields, supportsAllDrives=True).execute(),
            f"get metadata {file_id}",
        )

    def describe_file(self, file_id: str) -> RawImageFile:
        item = self.get_file_metadata(file_id, fields="id, name, mimeType, size, modifiedTime")
        if not item.get("id") or not item.get("name"):
            raise StorageError(f"Drive file {file_id} has no id/name")
        return RawImageFile(
            file_id=item["id"],
            filename=item["name"],
            mime_type=item.get("mimeType"),
            size_bytes=int(item["size"]) if item.get("size") else None,
            modified_time=item.get("modifiedTime"),
        )

    def read_file_bytes(self, file_id: str) -> FileContent:
        def download():
            buffer = io.BytesIO()
            request = self.drive.files().get_media(fileId=file_id, supportsAllDrives=True)
            downloader = MediaIoBaseDownload(buffer, request)
            done = False
            while not done:
                _, done = downloader.next_chunk()
            return buffer.getvalue()

        data = self.retry.run(download, f"download {file_id}")
        metadata = self.get_file_metadata(file_id, fields="mimeType")
        return FileContent(data=data, mime_type=metadata.get("mimeType") or "application/octet-stream")

    def move_file(self, file_id: str) -> None:
        parents = self.get_file_metadata(file_id, fields="parents").get("parents") or []
        if not parents:
            logging.warning("Drive file %s has no parents; skipping archive move", file_id)
            return

        self.retry.run(
            lambda: self.drive.files().update(
                fileId=file_id,
                addParents=self.archive_folder_id,
                removeParents=",".join(parents),
                fields="id, parents",
                supportsAllDrives=True,
            ).execute(),
            f"archive {file_id}",
        )
        logging.info("Moved Drive file %s to archive", file_id)

    def renew_watch(self, ledger, app_base_url: str) -> Dict[str, str]:
        """
        Replace the Drive changes channel pointing at /webhooks/drive.

        The previous channel (if recorded in the Config tab) is stopped first;
        failing to stop it is only a warning.
        """
        previous_channel = ledger.get_config_value(DRIVE_CHANNEL_ID)
        previous_resource = ledger.get_config_value(DRIVE_RESOURCE_ID)
        if previous_channel and previous_resource:
            try:
                self.retry.run(
                    lambda: self.drive.channels().stop(
                        body={"id": previous_channel, "resourceId": previous_resource}
                    ).execute(),
                    "stop channel",
                )
                logging.info("Stopped previous Drive channel %s", previous_channel)
            except Exception as e:
                logging.warning("Failed to stop previous Drive channel: %s", e)

        token_response = self.retry.run(
            lambda: self.drive.changes().getStartPageToken(supportsAllDrives=True).execute(),
            "start page token",
        )
        start_page_token = token_response.get("startPageToken")
        if not start_page_token:
            raise StorageError("Unable to retrieve Drive start page token")

        channel_id = str(uuid.uuid4())
        address = f"{app_base_url.rstrip('/')}/webhooks/drive"
        watch = self.retry.run(
            lambda: self.drive.changes().watch(
                pageToken=start_page_token,
                includeRemoved=False,
                supportsAllDrives=True,
                restrictToMyDrive=True,
                body={
                    "id": channel_id,
                    "type": "web_hook",
                    "address": address,
                    "token": self.folder_id,
                },
            ).execute(),
            "watch changes",
        )

        stored = {
            DRIVE_CHANNEL_ID: channel_id,
            DRIVE_CHANNEL_EXPIRATION: str(watch.get("expiration") or ""),
            DRIVE_START_PAGE_TOKEN: start_page_token,
            DRIVE_LATEST_PAGE_TOKEN: start_page_token,
        }
        if watch.get("resourceId"):
            stored[DRIVE_RESOURCE_ID] = watch["resourceId"]

        for key, value in stored.items():
            ledger.set_config_value(key, value)

        logging.info("Drive folder watch renewed (channel %s)", channel_id)
        return stored
