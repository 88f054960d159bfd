"""Submission endpoints.

``/submib`` is kept as an alias of ``/submit`` for clients that were
deployed with the misspelt path.
"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse

from intake.app.core.logging import get_log_context, get_logger
from intake.app.exceptions import MalformedBodyError, ValidationError
from intake.app.middleware.request_id import get_request_id
from intake.app.services.normalizer import CanonicalForm
from intake.app.services.origin import format_peer, resolve_origin
from intake.app.services.submission import SubmissionService

logger = get_logger(__name__)
router = APIRouter()

SUBMIT_PATHS = ("/submit", "/submib")
_ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def get_submission_service(request: Request) -> SubmissionService:
    service = getattr(request.app.state, "submission_service", None)
    if service is None:
        raise RuntimeError("Submission service not initialized. Ensure lifespan context is active.")
    return service


async def submit(request: Request) -> Response:
    """Accept a case submission and forward it to the recipients."""
    if request.method == "OPTIONS":
        return Response(status_code=204)
    if request.method != "POST":
        logger.info(f"reject method={request.method} path={request.url.path}")
        return PlainTextResponse(
            "method not allowed",
            status_code=405,
            headers={"Allow": "POST, OPTIONS"},
        )

    request_id = get_request_id(request)
    content_type = request.headers.get("content-type", "")
    raw_body = await request.body()
    origin = resolve_origin(request.headers, format_peer(request.client))
    query = CanonicalForm(request.query_params.multi_items())

    service = get_submission_service(request)
    try:
        await service.submit(content_type, raw_body, origin, query=query, request_id=request_id)
    except MalformedBodyError as e:
        logger.info(
            f"Malformed submission: {e.reason}",
            extra=get_log_context(request_id=request_id, origin=origin or None),
        )
        raise
    except ValidationError as e:
        logger.info(
            f"Invalid submission: {e.message}",
            extra=get_log_context(request_id=request_id, origin=origin or None),
        )
        raise

    return PlainTextResponse("ok")


for _path in SUBMIT_PATHS:
    router.add_api_route(
        _path,
        submit,
        methods=_ROUTED_METHODS,
        include_in_schema=False,
        response_class=PlainTextResponse,
    )
