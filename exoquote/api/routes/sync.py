"""Manual sync trigger. Shares the scheduler's CatalogSync, so the in-flight guard covers both."""

from fastapi import APIRouter, Request

from exoquote.models.contracts import ErrorResponse, SyncResponse

router = APIRouter(tags=["sync"])


@router.post("/sync", response_model=SyncResponse, responses={502: {"model": ErrorResponse}})
async def trigger_sync(request: Request) -> SyncResponse:
    """Run a full sync and report the counts once it finishes.

    Returns status "already_running" immediately when another run is in flight.
    An upstream listing failure surfaces as 502 via the UpstreamError handler.
    """
    report = await request.app.state.catalog_sync.run()
    if report is None:
        return SyncResponse(status="already_running")
    return SyncResponse(
        status="completed",
        synced=report.synced,
        skipped=report.skipped,
        failed=report.failed,
        total=report.total,
        duration_seconds=report.duration_seconds,
    )
