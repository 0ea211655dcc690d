"""
Recording upload and transcript parsing routes.
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import TranscriptParseRequest

router = APIRouter()


@router.post("/projects/{project_id}/parse-transcript", status_code=201)
def parse_transcript(
    project_id: str,
    body: TranscriptParseRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    estimate, parsed = services.transcription.parse_transcript(user_id, project_id, body.transcript)
    return {"estimate_id": estimate.id, "total": estimate.total, "data": parsed.model_dump()}


@router.post("/projects/{project_id}/recordings", status_code=202)
def upload_recording(
    project_id: str,
    file: UploadFile = File(...),
    client_transcript: str | None = Form(default=None),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    """Store the audio and queue transcription + parsing."""
    content = file.file.read()
    upload = services.transcription.create_recording(
        user_id, project_id, file.filename or "recording.webm", content, client_transcript
    )

    queued = False
    if services.enqueue_recording is not None:
        queued = services.enqueue_recording(upload.id)
    else:
        services.transcription.process_recording(upload.id)

    upload = services.transcription.get_upload(user_id, upload.id)
    return {**upload.to_dict(), "queued": queued}


@router.get("/uploads/{upload_id}")
def get_upload(
    upload_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.transcription.get_upload(user_id, upload_id).to_dict()
