"""
Gateway API route handlers.

Provides:
- Tool operations (POST /api/{family}/{operation})
- Downloads (GET /download/{grantId}/{fileName})
- Health check (GET /health)

Operations accept multipart/form-data (file parts plus form fields) or a
JSON body. Either way, the text payload travels in the operation's text
field ("text", or "html" for HTML to PDF) and every other field is a
camelCase parameter.
"""

from typing import Any, Dict, List
from urllib.parse import quote

from starlette.background import BackgroundTask
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from toolhub.core.errors import (
    ExecutionError,
    FileTooLarge,
    NotFound,
    PackagingError,
    UnsupportedOperation,
    ValidationError,
)
from toolhub.core.logging_config import get_logger, set_operation, short_id
from toolhub.pipeline.intake import IncomingFile, Submission, format_limit
from toolhub.pipeline.registry import OperationSpec
from toolhub.pipeline.settings import PipelineSettings

logger = get_logger(__name__)

ROUTED_OPERATIONS = [
    # PDF
    "pdf.merge",
    "pdf.split",
    "pdf.compress",
    "pdf.rotate",
    "pdf.protect",
    "pdf.unlock",
    "pdf.watermark",
    "pdf.page-numbers",
    "pdf.pdf-to-jpg",
    "pdf.pdf-to-png",
    "pdf.jpg-to-pdf",
    "pdf.pdf-to-word",
    "pdf.word-to-pdf",
    # Image
    "image.resize",
    "image.compress",
    "image.convert",
    "image.crop",
    "image.rotate",
    "image.flip",
    # Text
    "text.text-to-pdf",
    "text.html-to-pdf",
    "text.word-count",
    "text.summarize",
    "text.grammar-check",
    "text.case-convert",
    "text.extract-from-pdf",
    # Utility
    "util.qr-generate",
    "util.password-generate",
    "util.hash-generate",
    "util.base64-convert",
    "util.url-encode",
    "util.color-palette",
]

# Extra paths kept for older clients: path -> operation id
ROUTE_ALIASES = {
    "/api/text/word-counter": "text.word-count",
    "/api/utility/qr-generate": "util.qr-generate",
    "/api/utility/password-generate": "util.password-generate",
}


def operation_path(operation_id: str) -> str:
    family, slug = operation_id.split(".", 1)
    return f"/api/{family}/{slug}"


def error_response(error, status_code: int = None) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=status_code or error.status_code)


# =============================================================================
# Request parsing
# =============================================================================

def _is_json(request: Request) -> bool:
    return request.headers.get("content-type", "").split(";")[0].strip().lower() == "application/json"


async def read_json_submission(request: Request, spec: OperationSpec) -> Submission:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    text = body.pop(spec.text_field, None) if spec.takes_text else None
    return Submission(text=text if text is None else str(text), params=body)


def form_submission(form, spec: OperationSpec) -> Submission:
    """Split parsed form data into files, text payload and parameters."""
    files: List[IncomingFile] = []
    params: Dict[str, Any] = {}
    text = None
    for key in dict.fromkeys(form.keys()):
        values = form.getlist(key)
        uploads = [v for v in values if isinstance(v, UploadFile)]
        for upload in uploads:
            # Browsers send an empty part for an untouched file input.
            if not upload.filename and not upload.size:
                continue
            files.append(IncomingFile.from_upload(upload))
        fields = [v for v in values if not isinstance(v, UploadFile)]
        if not fields:
            continue
        if key == spec.text_field and spec.takes_text:
            text = fields[0]
        else:
            params[key] = fields[0] if len(fields) == 1 else fields
    return Submission(files=files, text=text, params=params)


# =============================================================================
# Route handlers
# =============================================================================

def check_declared_length(request: Request, settings: PipelineSettings) -> None:
    """Refuse a body whose Content-Length is over the request ceiling before reading it."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > settings.max_request_bytes:
        raise FileTooLarge(f"Request body exceeds the {format_limit(settings.max_request_bytes)} limit")


async def read_form(request: Request, spec: OperationSpec, settings: PipelineSettings):
    # Non-file fields carry the text payload, so they may be as large as the
    # text limit; one byte more lets intake report the overrun itself.
    try:
        return await request.form(max_part_size=settings.text_max_bytes + 1)
    except (MultiPartException, HTTPException) as e:
        detail = getattr(e, "message", None) or getattr(e, "detail", "") or str(e)
        logger.warning(f"{spec.id}: malformed form body: {detail}")
        if "exceeded maximum size" in detail:
            raise FileTooLarge(f"Text exceeds the {format_limit(settings.text_max_bytes)} limit") from e
        raise ValidationError("Malformed form data") from e


async def run_operation(request: Request, spec: OperationSpec) -> JSONResponse:
    pipeline = request.app.state.pipeline
    settings = request.app.state.settings
    form = None
    try:
        check_declared_length(request, settings)
        if _is_json(request):
            submission = await read_json_submission(request, spec)
        else:
            form = await read_form(request, spec, settings)
            submission = form_submission(form, spec)

        outcome = await pipeline.run(spec, submission)
    except ValidationError as e:
        logger.warning(f"{spec.id} rejected: {e.message}")
        return error_response(e)
    except (ExecutionError, PackagingError) as e:
        logger.error(f"{spec.id} failed ({e.code}): {e.message}")
        return JSONResponse({"error": f"Failed to {spec.title}", "code": e.code}, status_code=500)
    finally:
        if form is not None:
            await form.close()

    logger.info(
        f"{spec.id} succeeded: {outcome.processed} input(s)"
        + (f", grant {short_id(outcome.grant.grant_id)}" if outcome.grant else "")
    )
    return JSONResponse(outcome.to_response())


def operation_endpoint(operation_id: str):
    """Starlette endpoint bound to one registered operation."""
    async def endpoint(request: Request) -> JSONResponse:
        spec = request.app.state.pipeline.registry.lookup(operation_id)
        set_operation(spec.id)
        return await run_operation(request, spec)
    endpoint.__name__ = f"api_{operation_id.replace('.', '_').replace('-', '_')}"
    return endpoint


async def api_unknown_operation(request: Request) -> JSONResponse:
    """Any other /api/{family}/{operation} path."""
    family = request.path_params["family"]
    slug = request.path_params["slug"]
    return error_response(UnsupportedOperation(f"Unsupported operation: {family}.{slug}"))


def content_disposition(file_name: str) -> str:
    ascii_name = file_name.encode("ascii", "replace").decode("ascii").replace('"', "")
    if ascii_name == file_name:
        return f'attachment; filename="{file_name}"'
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name)}"


async def api_download(request: Request):
    """
    Stream a deliverable.

    GET /download/{grant_id}/{file_name}

    Every miss is 404 {"error": "File not found or expired"}.
    """
    grant_id = request.path_params["grant_id"]
    file_name = request.path_params["file_name"]
    try:
        stream = request.app.state.downloads.resolve(grant_id, file_name)
    except NotFound as e:
        logger.info(f"Download miss for grant {short_id(grant_id)}")
        return JSONResponse({"error": e.message}, status_code=404)

    return StreamingResponse(
        stream,
        media_type=stream.media_type,
        headers={
            "Content-Disposition": content_disposition(stream.file_name),
            "Content-Length": str(stream.size_bytes),
        },
        background=BackgroundTask(stream.close),
    )


async def api_health(request: Request) -> JSONResponse:
    """
    Health check endpoint.

    GET /health
    GET /health?detailed=true  (full per-check report)
    """
    detailed = request.query_params.get("detailed", "false").lower() == "true"
    health_status = await request.app.state.health_checker.check_all()
    status_code = 200 if health_status.healthy else 503

    if detailed:
        return JSONResponse(health_status.model_dump(mode="json"), status_code=status_code)
    return JSONResponse(health_status.summary(), status_code=status_code)


# =============================================================================
# Route definitions
# =============================================================================

def build_routes() -> List[Route]:
    routes = [
        Route(operation_path(op), operation_endpoint(op), methods=["POST"])
        for op in ROUTED_OPERATIONS
    ]
    routes += [
        Route(path, operation_endpoint(op), methods=["POST"])
        for path, op in ROUTE_ALIASES.items()
    ]
    routes += [
        Route("/api/{family}/{slug}", api_unknown_operation, methods=["POST"]),
        Route("/download/{grant_id}/{file_name}", api_download, methods=["GET"]),
        Route("/health", api_health, methods=["GET"]),
    ]
    return routes
