"""
Correction request endpoints — submit, review, cancel and bulk decisions.

Authorization and state checks live in the workflow services; this module
only maps HTTP bodies onto service calls.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from clockfix.api.v1.deps import (get_current_actor, get_query_service,
                                  get_workflow)
from clockfix.schemas.correction import (ApprovalRequest, BulkApprovalRequest,
                                         BulkOperationResponse,
                                         BulkRejectionRequest,
                                         CancellationRequest, CorrectionCreate,
                                         CorrectionListResponse,
                                         CorrectionRead, RejectionRequest,
                                         to_bulk_response, to_correction_read,
                                         to_list_response)
from clockfix.services.correction_query import WorkflowQueryService
from clockfix.services.correction_store import SORT_RECENT
from clockfix.services.correction_workflow import CorrectionWorkflow
from clockfix.services.identity import Actor

router = APIRouter(prefix="/correction-requests", tags=["corrections"])


# ── Submit ──────────────────────────────────────────────────────────
@router.post("", response_model=CorrectionRead, status_code=status.HTTP_201_CREATED)
async def submit_correction(
    body: CorrectionCreate,
    actor: Actor = Depends(get_current_actor),
    workflow: CorrectionWorkflow = Depends(get_workflow),
    query: WorkflowQueryService = Depends(get_query_service),
) -> CorrectionRead:
    request = await workflow.submit(
        actor,
        requested=body.requested_values(),
        reason=body.reason,
        attendance_record_id=body.attendance_record_id,
        work_date=body.work_date,
    )
    return to_correction_read(await query.describe(request))


# ── Listings ────────────────────────────────────────────────────────
@router.get("/mine", response_model=CorrectionListResponse)
async def list_my_corrections(
    status_filter: str | None = Query(None, alias="status"),
    page: int = Query(0, ge=0),
    size: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    query: WorkflowQueryService = Depends(get_query_service),
) -> CorrectionListResponse:
    """Own requests, newest first. ``status=ALL`` or no status lists everything."""
    return to_list_response(await query.list_own(actor, status_filter, page, size))


@router.get("/pending", response_model=CorrectionListResponse)
async def list_review_queue(
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None, max_length=100),
    sort: str = Query(SORT_RECENT),
    page: int = Query(0, ge=0),
    size: int | None = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    query: WorkflowQueryService = Depends(get_query_service),
) -> CorrectionListResponse:
    """Admin review queue; defaults to PENDING requests."""
    return to_list_response(
        await query.list_queue(actor, status_filter, search, sort, page, size)
    )


# ── Bulk decisions ──────────────────────────────────────────────────
@router.post("/bulk/approve", response_model=BulkOperationResponse)
async def bulk_approve_corrections(
    body: BulkApprovalRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CorrectionWorkflow = Depends(get_workflow),
) -> BulkOperationResponse:
    return to_bulk_response(await workflow.bulk_approve(body.request_ids, actor, body.note))


@router.post("/bulk/reject", response_model=BulkOperationResponse)
async def bulk_reject_corrections(
    body: BulkRejectionRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CorrectionWorkflow = Depends(get_workflow),
) -> BulkOperationResponse:
    return to_bulk_response(await workflow.bulk_reject(body.request_ids, actor, body.reason))


# ── Single request ──────────────────────────────────────────────────
@router.get("/{request_id}", response_model=CorrectionRead)
async def get_correction(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    query: WorkflowQueryService = Depends(get_query_service),
) -> CorrectionRead:
    return to_correction_read(await query.get_detail(actor, request_id))


@router.post("/{request_id}/approve", response_model=CorrectionRead)
async def approve_correction(
    request_id: int,
    body: ApprovalRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    workflow: CorrectionWorkflow = Depends(get_workflow),
    query: WorkflowQueryService = Depends(get_query_service),
) -> CorrectionRead:
    note = body.note if body else None
    request = await workflow.approve(request_id, actor, note)
    return to_correction_read(await query.describe(request))


@router.post("/{request_id}/reject", response_model=CorrectionRead)
async def reject_correction(
    request_id: int,
    body: RejectionRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CorrectionWorkflow = Depends(get_workflow),
    query: WorkflowQueryService = Depends(get_query_service),
) -> CorrectionRead:
    request = await workflow.reject(request_id, actor, body.reason)
    return to_correction_read(await query.describe(request))


@router.post("/{request_id}/cancel", response_model=CorrectionRead)
async def cancel_correction(
    request_id: int,
    body: CancellationRequest,
    actor: Actor = Depends(get_current_actor),
    workflow: CorrectionWorkflow = Depends(get_workflow),
    query: WorkflowQueryService = Depends(get_query_service),
) -> CorrectionRead:
    request = await workflow.cancel(request_id, actor, body.reason)
    return to_correction_read(await query.describe(request))
