"""
Analysis route: sends the uploaded startup report to the active LLM profile.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Tuple

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.errors import AnalyzerError, PreconditionError
from app.models.request import AnalyzeRequest
from app.services.analyzer import AnalysisOrchestrator, RequestContext, get_orchestrator
from app.utils.cancellation import CancellationToken
from app.utils.exceptions import raise_bad_request
from app.utils.sse import format_sse

logger = logging.getLogger(__name__)

router = APIRouter()


def error_payload(error: Exception) -> dict:
    """SSE ``error`` event body; unclassified failures get the generic title."""
    if isinstance(error, AnalyzerError):
        title = error.user_message
        message = str(error) or title
    else:
        title = AnalyzerError.user_message
        message = f"{title}: {type(error).__name__}"
    return {
        "type": type(error).__name__,
        "title": title,
        "message": message,
        "status": getattr(error, "status", None),
        "retryable": getattr(error, "retryable", False),
    }


async def stream_analysis(
    orchestrator: AnalysisOrchestrator,
    context: RequestContext,
    request: AnalyzeRequest,
    token: CancellationToken,
) -> AsyncIterator[str]:
    """
    Run one analysis and relay it as SSE events.

    Yields ``status`` events for retry/fallback notifications, then exactly
    one ``result`` or ``error`` event. Closing the stream cancels the token.
    """
    queue: asyncio.Queue[Optional[Tuple[str, dict]]] = asyncio.Queue()

    async def run():
        try:
            text = await orchestrator.run(
                context,
                on_status=lambda message: queue.put_nowait(("status", {"message": message})),
                cancellation_token=token,
                attempts=request.attempts,
                allow_fallback=request.allow_fallback,
            )
            await queue.put(("result", {"text": text, "model": context.model}))
        except AnalyzerError as e:
            await queue.put(("error", error_payload(e)))
        except Exception as e:
            logger.exception(f"Analysis failed with an unclassified error: {e}")
            await queue.put(("error", error_payload(e)))
        finally:
            await queue.put(None)

    task = asyncio.create_task(run())
    try:
        while True:
            item = await queue.get()
            if item is None:
                break
            event, data = item
            yield format_sse(event, data)
    finally:
        # Client went away (or we are done): stop any further attempts
        token.cancel()
        if not task.done():
            logger.info("Analysis stream closed early; cancellation requested")
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


@router.post("/analyze")
async def analyze(
    request: AnalyzeRequest,
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """
    POST /api/analyze - analyze a startup report with the active profile

    Returns SSE stream with events:
    - status: Retry/fallback notification {message}
    - result: Narrative analysis {text, model}
    - error: Classified failure {type, title, message, status, retryable}

    Profile problems (missing base URL, API key or model) are reported as
    HTTP 400 before any request is sent.
    """
    try:
        context = orchestrator.prepare(request.report, full_json=request.full_json)
    except PreconditionError as e:
        raise_bad_request(str(e))

    return StreamingResponse(
        stream_analysis(orchestrator, context, request, CancellationToken()),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
