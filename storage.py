import logging
import mimetypes
import os
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from errors import InternalServerError

logger = logging.getLogger(__name__)


class S3Uploader:
    """Uploads images to a public bucket and returns their URLs."""

    def __init__(self, bucket, region):
        self.bucket = bucket
        self.region = region
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    def public_url(self, key):
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quote(key)}"

    def upload(self, file, folder, name):
        extension = os.path.splitext(file.filename or "")[1]
        key = f"{folder}/{name}{extension}"
        content_type = (
            file.mimetype
            or mimetypes.guess_type(file.filename or "")[0]
            or "application/octet-stream"
        )

        if not self.bucket:
            raise InternalServerError("Object storage is not configured")

        try:
            self.client.upload_fileobj(
                file.stream,
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type, "ContentDisposition": "inline"},
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Error uploading %s to S3: %s", key, exc)
            raise InternalServerError("Failed to upload file") from exc

        logger.info("Uploaded %s (%s)", key, content_type)
        return self.public_url(key)


def upload_file(file, folder, name):
    return current_app.extensions["uploader"].upload(file, folder, name)
