"""
Attachment upload service.

WHAT: Stores ticket and comment attachments in S3 and returns their URLs.

WHY: Tickets and comments only keep an ordered list of opaque URLs. Keeping
storage behind this service means the workflow engine never touches file
bytes, and the count, size and type limits are enforced in one place.

HOW: Validates the whole batch first, then uploads each file with boto3
under attachments/<yyyy>/<mm>/<uuid>-<name>. If one upload fails, files
already stored for the batch are deleted again.
"""

import io
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from quickdesk.core.config import settings
from quickdesk.core.exceptions import StorageError, UploadError

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class UploadedFile:
    """A file received from the client, fully read into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""


def create_s3_client() -> Any:
    """S3 client for the configured endpoint (AWS when S3_ENDPOINT is unset)."""
    return boto3.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT,
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )


class UploadService:
    """
    Validates and stores attachment files.

    Example:
        service = UploadService()
        urls = service.upload_files(user.id, [UploadedFile("log.txt", "text/plain", b"...")])
    """

    def __init__(self, s3_client: Optional[Any] = None, bucket_name: Optional[str] = None):
        """
        Initialize UploadService.

        Args:
            s3_client: boto3 S3 client (created from settings if not given)
            bucket_name: Target bucket (defaults to S3_BUCKET)
        """
        self.s3_client = s3_client or create_s3_client()
        self.bucket_name = bucket_name or settings.S3_BUCKET

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        """
        Reduce a client filename to a safe object-key component.

        Path separators, spaces and other special characters become "_"; the
        result is capped at 100 characters, keeping the extension.
        """
        name = filename.replace("\x00", "").rsplit("/", 1)[-1].rsplit("\\", 1)[-1]
        name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._") or "file"

        if len(name) > 100:
            stem, ext = name.rsplit(".", 1) if "." in name else (name, "")
            name = f"{stem[:90]}.{ext[:9]}" if ext else name[:100]
        return name

    def generate_key(self, filename: str, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        return f"attachments/{now:%Y}/{now:%m}/{uuid.uuid4()}-{self.sanitize_filename(filename)}"

    def public_url(self, key: str) -> str:
        """URL clients use to fetch a stored object."""
        if settings.S3_PUBLIC_URL:
            return f"{settings.S3_PUBLIC_URL.rstrip('/')}/{key}"
        if settings.S3_ENDPOINT:
            return f"{settings.S3_ENDPOINT.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{settings.S3_REGION}.amazonaws.com/{key}"

    def validate(self, files: List[UploadedFile]) -> None:
        """
        Check the batch against the upload limits.

        Raises:
            UploadError: No files, too many files, a file too large, or a
                disallowed extension
        """
        if not files:
            raise UploadError("No files uploaded")

        if len(files) > settings.UPLOAD_MAX_FILES:
            raise UploadError(
                f"Too many files. Maximum is {settings.UPLOAD_MAX_FILES}",
                file_count=len(files),
            )

        allowed = {ext.lower() for ext in settings.UPLOAD_ALLOWED_EXTENSIONS}
        for uploaded in files:
            if uploaded.size > settings.UPLOAD_MAX_FILE_SIZE:
                raise UploadError(
                    f"File too large: {uploaded.filename}",
                    file_size=uploaded.size,
                    max_size=settings.UPLOAD_MAX_FILE_SIZE,
                )
            if uploaded.extension not in allowed:
                raise UploadError(
                    f"File type not allowed: {uploaded.filename}",
                    allowed_extensions=sorted(allowed),
                )

    def upload_files(self, uploader_id: uuid.UUID, files: List[UploadedFile]) -> List[str]:
        """
        Store a batch of files.

        Args:
            uploader_id: User uploading the files (stored as object metadata)
            files: Files in the order their URLs should be returned

        Returns:
            Public URLs, same order as files

        Raises:
            UploadError: If the batch breaks the upload limits
            StorageError: If S3 rejects an upload
        """
        self.validate(files)

        stored_keys: List[str] = []
        for uploaded in files:
            key = self.generate_key(uploaded.filename)
            try:
                self.s3_client.upload_fileobj(
                    io.BytesIO(uploaded.data),
                    self.bucket_name,
                    key,
                    ExtraArgs={
                        "ContentType": uploaded.content_type or "application/octet-stream",
                        "Metadata": {"uploaded_by": str(uploader_id)},
                    },
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(f"S3 upload failed for {key}: {e}")
                self._delete_keys(stored_keys)
                raise StorageError(message="Failed to upload file to storage", error=str(e))
            stored_keys.append(key)

        logger.info(f"User {uploader_id} uploaded {len(stored_keys)} file(s)")
        return [self.public_url(key) for key in stored_keys]

    def _delete_keys(self, keys: List[str]) -> None:
        for key in keys:
            try:
                self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"Could not remove orphaned upload {key}: {e}")
