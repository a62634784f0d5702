#!/usr/bin/env python3
"""
Cloudflare R2 image storage (S3 API via boto3).

Incoming images live under one key prefix; archiving copies the object
under the archive prefix and deletes the original.
"""

import logging
from typing import List, Optional

import boto3
from botocore.config import Config

from backoff import RetryPolicy, is_transient_error
from filenames import RawImageFile
from storage import FileContent, ImageStorage


def get_r2_client(account_id: str, access_key_id: str, secret_access_key: str):
    """Create S3 client for Cloudflare R2."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name="auto",  # R2 requires 'auto' as region
        config=Config(signature_version="s3v4"),
    )


class R2Storage(ImageStorage):
    def __init__(
        self,
        s3_client,
        bucket_name: str,
        incoming_prefix: str = "incoming/",
        archive_prefix: str = "archive/",
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.s3 = s3_client
        self.bucket = bucket_name
        self.incoming_prefix = incoming_prefix
        self.archive_prefix = archive_prefix
        self.retry = retry_policy or RetryPolicy(name="r2", should_retry=is_transient_error)

    def list_files(self) -> List[RawImageFile]:
        paginator = self.s3.get_paginator("list_objects_v2")

        def list_all():
            objects = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.incoming_prefix):
                objects.extend(page.get("Contents", []))
            return objects

        files = []
        for obj in self.retry.run(list_all, "list objects"):
            key = obj["Key"]
            filename = key[len(self.incoming_prefix):]
            # Only direct children of the incoming prefix
            if not filename or "/" in filename:
                continue
            modified = obj.get("LastModified")
            files.append(RawImageFile(
                file_id=key,
                filename=filename,
                size_bytes=obj.get("Size"),
                modified_time=modified.isoformat() if modified else None,
            ))
        return files

    def describe_file(self, file_id: str) -> RawImageFile:
        head = self.retry.run(lambda: self.s3.head_object(Bucket=self.bucket, Key=file_id), f"head {file_id}")
        modified = head.get("LastModified")
        return RawImageFile(
            file_id=file_id,
            filename=file_id.rsplit("/", 1)[-1],
            mime_type=head.get("ContentType"),
            size_bytes=head.get("ContentLength"),
            modified_time=modified.isoformat() if modified else None,
        )

    def read_file_bytes(self, file_id: str) -> FileContent:
        response = self.retry.run(
            lambda: self.s3.get_object(Bucket=self.bucket, Key=file_id),
            f"get {file_id}",
        )
        return FileContent(
            data=response["Body"].read(),
            mime_type=response.get("ContentType") or "application/octet-stream",
        )

    def move_file(self, file_id: str) -> None:
        filename = file_id.rsplit("/", 1)[-1]
        archive_key = f"{self.archive_prefix}{filename}"
        self.retry.run(
            lambda: self.s3.copy_object(
                Bucket=self.bucket,
                Key=archive_key,
                CopySource={"Bucket": self.bucket, "Key": file_id},
            ),
            f"copy {file_id}",
        )
        self.retry.run(lambda: self.s3.delete_object(Bucket=self.bucket, Key=file_id), f"delete {file_id}")
        logging.info("Archived %s -> %s", file_id, archive_key)
