import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from upload_server.config import cors_origins_from_env
from upload_server.dependencies import UploadServiceDep, get_cleanup_service
from upload_server.exceptions import UploadServerError
from upload_server.models.upload_models import (
    AbortUploadRequest,
    CompleteUploadRequest,
    CompleteUploadResponse,
    DeleteFileRequest,
    DownloadUrlResponse,
    FileListResponse,
    InitiateUploadRequest,
    InitiateUploadResponse,
    SignedUrlResponse,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    cleanup_service = get_cleanup_service()
    cleanup_task = asyncio.create_task(cleanup_service.start_cleanup_scheduler())

    yield

    # Shutdown
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass


app = FastAPI(title="S3 Multipart Upload API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_from_env(),
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["ETag"],
    max_age=86400,
)


@app.exception_handler(UploadServerError)
async def upload_error_handler(request: Request, exc: UploadServerError):
    logger.warning(
        "Request failed", extra={"path": request.url.path, "status_code": exc.status_code, "error": str(exc)}
    )
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": details or "Invalid request"})


@app.get("/")
async def root():
    return {"message": "S3 Uploader API is running"}


@app.post("/api/initiate-upload", response_model=InitiateUploadResponse)
async def initiate_upload(body: InitiateUploadRequest, upload_service: UploadServiceDep):
    """Initialize a new multipart upload"""
    result = await upload_service.initiate_upload(body.file_name, body.content_type)
    return InitiateUploadResponse(upload_id=result["uploadId"], key=result["key"])


@app.get("/api/get-signed-url", response_model=SignedUrlResponse)
async def get_signed_url(
    upload_service: UploadServiceDep,
    key: str = Query(..., min_length=1),
    upload_id: str = Query(..., alias="uploadId", min_length=1),
    part_number: int = Query(..., alias="partNumber"),
):
    """Generate a presigned URL for uploading one part"""
    url = upload_service.generate_part_url(key, upload_id, part_number)
    return SignedUrlResponse(signed_url=url, part_number=part_number)


@app.post("/api/complete-upload", response_model=CompleteUploadResponse)
async def complete_upload(body: CompleteUploadRequest, upload_service: UploadServiceDep):
    """Complete the multipart upload"""
    location = await upload_service.complete_upload(body.key, body.upload_id, body.parts)
    return CompleteUploadResponse(location=location)


@app.post("/api/abort-upload")
async def abort_upload(body: AbortUploadRequest, upload_service: UploadServiceDep):
    """Abort an ongoing upload"""
    await upload_service.abort_upload(body.key, body.upload_id)
    return {"message": "Upload aborted successfully"}


@app.get("/api/files", response_model=FileListResponse)
async def list_files(upload_service: UploadServiceDep, prefix: str = ""):
    files = await upload_service.list_files(prefix)
    return FileListResponse(files=files, count=len(files))


@app.get("/api/download-url", response_model=DownloadUrlResponse)
async def get_download_url(upload_service: UploadServiceDep, key: str = Query(..., min_length=1)):
    return DownloadUrlResponse(download_url=upload_service.get_download_url(key))


@app.delete("/api/files")
async def delete_file(body: DeleteFileRequest, upload_service: UploadServiceDep):
    return await upload_service.delete_file(body.key)


@app.post("/api/configure-cors")
async def configure_cors(upload_service: UploadServiceDep):
    await upload_service.configure_cors()
    return {"message": "CORS configured successfully"}


@app.get("/api/uploads/active")
async def get_active_uploads(upload_service: UploadServiceDep):
    """List uploads that were initiated but neither completed nor aborted"""
    uploads = await upload_service.get_active_uploads()
    return {"uploads": uploads, "count": len(uploads)}
