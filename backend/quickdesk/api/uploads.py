"""
Attachment upload API endpoint.

WHAT: Accepts a multipart batch of files and returns their URLs.

WHY: Tickets and comments never carry file bytes; clients upload first and
send the returned URLs in the ticket or comment body.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status

from quickdesk.core.deps import get_current_user
from quickdesk.models.user import User
from quickdesk.schemas.common import ApiResponse
from quickdesk.services.upload_service import UploadService, UploadedFile


router = APIRouter(prefix="/upload", tags=["uploads"])


def get_upload_service() -> UploadService:
    return UploadService()


@router.post(
    "",
    response_model=ApiResponse[List[str]],
    status_code=status.HTTP_201_CREATED,
    summary="Upload attachments",
    description="Store up to UPLOAD_MAX_FILES files and return their URLs in order",
)
async def upload_files(
    files: Optional[List[UploadFile]] = File(default=None, description="Files to upload"),
    current_user: User = Depends(get_current_user),
    upload_service: UploadService = Depends(get_upload_service),
) -> ApiResponse[List[str]]:
    """
    Upload attachment files.

    Security: Count, size and extension are validated before anything is
    stored.

    Raises:
        UploadError (400): Batch breaks the upload limits
        StorageError (502): Object storage rejected a file
    """
    batch = [
        UploadedFile(
            filename=upload.filename or "file",
            content_type=upload.content_type or "application/octet-stream",
            data=await upload.read(),
        )
        for upload in files or []
    ]
    urls = upload_service.upload_files(current_user.id, batch)
    return ApiResponse(data=urls, message="Files uploaded successfully")
