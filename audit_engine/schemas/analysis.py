"""Request and response schemas for the analysis API."""

from pydantic import BaseModel, Field

from audit_engine.schemas.report import SecurityReport, StaticDetectionResult


class AnalysisRequest(BaseModel):
    """Source code to analyze."""

    code: str = Field(..., description="Solidity source code")


class ExtractRequest(BaseModel):
    """A captured generated response to replay through the pipeline."""

    response: str
    code: str = Field(default="", description="Source the response was generated for")


class TaskSummary(BaseModel):
    vulnerabilities_count: int
    risk_level: str
    is_vulnerable: bool


class ValidationErrorDetail(BaseModel):
    rule: str
    message: str


class AnalysisResponse(BaseModel):
    """Merged report plus how it was recovered and whether it was accepted."""

    report: SecurityReport
    summary: TaskSummary
    extraction_tier: str
    degraded_fields: list[str]
    static_detection: StaticDetectionResult
    accepted: bool
    validation_error: ValidationErrorDetail | None = None


class ValidationResponse(BaseModel):
    valid: bool
