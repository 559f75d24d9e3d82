"""API dependencies for dependency injection."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from audit_engine.config import get_settings
from audit_engine.services.analysis_service import AnalysisService
from audit_engine.services.report_validator import ReportValidator


@lru_cache
def get_analysis_service() -> AnalysisService:
    """Shared analysis service; audit guidelines are read once here."""
    return AnalysisService(get_settings())


def get_report_validator() -> ReportValidator:
    return ReportValidator()


# Type aliases for cleaner signatures
AnalysisServiceDep = Annotated[AnalysisService, Depends(get_analysis_service)]
ReportValidatorDep = Annotated[ReportValidator, Depends(get_report_validator)]
