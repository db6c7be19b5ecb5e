"""Voice-training audio endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.core.dependencies import CurrentUser
from app.schemas.audio import AudioListResponse, AudioSampleResponse
from app.schemas.common import ApiResponse, ok
from app.services.audio_service import AudioService, get_audio_service

router = APIRouter()

Audio = Annotated[AudioService, Depends(get_audio_service)]


@router.post("/upload-audio", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def upload_audio(
    current_user: CurrentUser,
    audio_service: Audio,
    audio: Optional[UploadFile] = File(None),
    owner_name: Optional[str] = Form(None, alias="ownerName"),
):
    """
    Upload one recorded sample (multipart field ``audio``).
    ``ownerName`` defaults to the authenticated user's username.
    """
    data = b""
    if audio:
        if audio.size is not None:
            audio_service.ensure_size_allowed(audio.size)
        # One byte past the limit is enough for the service to reject it
        data = await audio.read(audio_service.max_upload_bytes + 1)
    stored = await audio_service.upload_training_audio(
        data,
        filename=audio.filename if audio else "",
        content_type=audio.content_type if audio else "",
        owner=owner_name or current_user.username,
    )
    return ok("File uploaded successfully", AudioSampleResponse.model_validate(stored))


@router.get("/list-audio", response_model=ApiResponse)
async def list_audio(current_user: CurrentUser, audio_service: Audio):
    """List training samples, newest first."""
    files = await audio_service.list_training_audio()
    return ok(
        "Audio files fetched successfully",
        AudioListResponse(
            count=len(files),
            files=[AudioSampleResponse.model_validate(f) for f in files],
        ),
    )


@router.delete("/delete-audio/{public_id}", response_model=ApiResponse)
async def delete_audio(public_id: str, current_user: CurrentUser, audio_service: Audio):
    """Delete one training sample by public id."""
    await audio_service.delete_training_audio(public_id)
    return ok("Audio file deleted successfully", {})
