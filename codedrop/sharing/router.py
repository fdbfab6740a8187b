from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from codedrop.common.exceptions import DownloadError, UploadError
from codedrop.sharing.schemas import ErrorResponse, UploadResponse
from codedrop.sharing.service import ArtifactService


router = APIRouter(tags=["sharing"])

_UPLOAD_ERRORS = {
    UploadError.NO_FILE_PROVIDED: (status.HTTP_400_BAD_REQUEST, "No file uploaded"),
    UploadError.STORAGE_WRITE_FAILED: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload failed due to server error"),
    UploadError.DUPLICATE_CODE: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload failed due to server error"),
    UploadError.METADATA_FAILED: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload failed due to server error"),
}

_DOWNLOAD_ERRORS = {
    DownloadError.INVALID_OR_EXPIRED_CODE: (status.HTTP_404_NOT_FOUND, "Invalid or expired code"),
    DownloadError.ARTIFACT_MISSING: (status.HTTP_404_NOT_FOUND, "Image expired or missing"),
    DownloadError.STORAGE_FAILED: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error"),
}


def get_artifact_service(request: Request) -> ArtifactService:
    """FastAPI dependency returning the ArtifactService built at startup."""
    service = getattr(request.app.state, "artifact_service", None)
    if service is None:
        raise RuntimeError("ArtifactService not initialized")
    return service


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_artifact(
    image: Optional[UploadFile] = File(None),
    service: ArtifactService = Depends(get_artifact_service),
):
    data, filename = None, None
    if image is not None:
        data, filename = await image.read(), image.filename
        await image.close()

    result = await service.upload(data, filename)
    if not result.ok:
        status_code, message = _UPLOAD_ERRORS[result.error]
        return JSONResponse(status_code=status_code, content={"error": message})
    return UploadResponse(code=result.code)


@router.get("/download/{code}")
async def download_artifact(
    code: str,
    service: ArtifactService = Depends(get_artifact_service),
):
    result = await service.download(code)
    if not result.ok:
        status_code, message = _DOWNLOAD_ERRORS[result.error]
        return PlainTextResponse(message, status_code=status_code)

    artifact = result.artifact
    return StreamingResponse(
        artifact.iter_chunks(),
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )
