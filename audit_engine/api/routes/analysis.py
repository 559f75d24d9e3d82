"""Security analysis routes."""

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, status

from audit_engine.api.deps import AnalysisServiceDep, ReportValidatorDep
from audit_engine.schemas.analysis import (
    AnalysisRequest,
    AnalysisResponse,
    ExtractRequest,
    TaskSummary,
    ValidationErrorDetail,
    ValidationResponse,
)
from audit_engine.services.analysis_service import AnalysisOutcome, summarize
from audit_engine.services.report_validator import ReportValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(outcome: AnalysisOutcome) -> AnalysisResponse:
    error = None
    if outcome.validation_error is not None:
        error = ValidationErrorDetail(
            rule=outcome.validation_error.rule.value,
            message=outcome.validation_error.message,
        )
    return AnalysisResponse(
        report=outcome.report,
        summary=TaskSummary(**summarize(outcome.report)),
        extraction_tier=outcome.tier.value,
        degraded_fields=outcome.degraded_fields,
        static_detection=outcome.static_detection,
        accepted=outcome.accepted,
        validation_error=error,
    )


@router.post("/execute", response_model=AnalysisResponse, response_model_by_alias=False)
async def execute_analysis(request: AnalysisRequest, service: AnalysisServiceDep):
    """Analyze source code and return the merged, validated report."""
    if not request.code.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="code must not be empty",
        )

    try:
        outcome = await service.analyze(request.code)
    except Exception as e:
        logger.error(f"Analysis failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Analysis service unavailable",
        )

    return _to_response(outcome)


@router.post("/extract", response_model=AnalysisResponse, response_model_by_alias=False)
async def extract_report(request: ExtractRequest, service: AnalysisServiceDep):
    """Replay a captured response through extraction, merge and validation."""
    return _to_response(service.process_response(request.response, request.code))


@router.post("/validate", response_model=ValidationResponse)
async def validate_report(validator: ReportValidatorDep, report: dict[str, Any] = Body(...)):
    """Validate a persisted report."""
    try:
        validator.validate(report)
    except ReportValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"rule": e.rule.value, "message": e.message},
        )
    return ValidationResponse(valid=True)
