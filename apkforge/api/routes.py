"""
HTTP routes for job submission, status and direct downloads.

Form field names follow the existing client (camelCase), so they are
read verbatim and mapped onto a Job here.
"""

from __future__ import annotations

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError as ModelValidationError

from ..core.config import Config
from ..core.exceptions import ValidationError
from ..models.job import Job
from ..orchestration import JobRunner
from ..storage import ScratchArea

router = APIRouter()

APK_MEDIA_TYPE = "application/vnd.android.package-archive"


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in {"true", "1", "on", "yes"}


def _public_base_url(request: Request, config: Config) -> str:
    if config.server.public_url:
        return config.server.public_url.rstrip("/")
    proto = request.headers.get("x-forwarded-proto", request.url.scheme).split(",")[0].strip()
    host = request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def root() -> str:
    return "APK Generator Service Running"


@router.post("/generate", status_code=202)
async def generate(
    request: Request,
    uuid: str | None = Form(None),
    appName: str | None = Form(None),
    hideApp: str | None = Form(None),
    webLink: str | None = Form(None),
    callbackUrl: str | None = Form(None),
    enableSmsPermission: str | None = Form(None),
    enableContactsPermission: str | None = Form(None),
    icon: UploadFile | None = File(None),
) -> dict:
    """Accept a build job; the build itself runs in the background."""
    config: Config = request.app.state.config
    jobs: JobRunner = request.app.state.jobs

    icon_data: bytes | None = None
    if icon is not None:
        try:
            icon_data = await icon.read() or None
        finally:
            await icon.close()

    try:
        job = Job(
            job_id=uuid or "",
            app_name=appName,
            hide_app=_flag(hideApp),
            web_link=webLink or "",
            callback_url=callbackUrl,
            enable_sms_permission=_flag(enableSmsPermission),
            enable_contacts_permission=_flag(enableContactsPermission),
            icon=icon_data,
            public_base_url=_public_base_url(request, config),
        )
    except ModelValidationError as e:
        detail = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        raise HTTPException(status_code=422, detail=detail)

    try:
        jobs.submit(job)
    except ValidationError as e:
        raise HTTPException(status_code=409, detail=e.message)

    return {"message": "Processing started"}


@router.get("/download/{file_name}")
async def download(request: Request, file_name: str, filename: str | None = None) -> Response:
    """Serve a locally published APK."""
    scratch: ScratchArea = request.app.state.orchestrator.scratch
    path = scratch.public_path(file_name)
    if path is None:
        return PlainTextResponse("Not Found", status_code=404)
    return FileResponse(path, media_type=APK_MEDIA_TYPE, filename=filename or file_name)


@router.get("/jobs/{job_id}")
async def job_status(request: Request, job_id: str) -> JSONResponse:
    """Current state of an accepted job."""
    jobs: JobRunner = request.app.state.jobs
    record = jobs.get(job_id)
    if record is None:
        return JSONResponse({"detail": "Job not found"}, status_code=404)
    return JSONResponse(record.model_dump(mode="json"))
