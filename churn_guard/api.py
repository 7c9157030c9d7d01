# churn_guard/api.py
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import configure_logging
from .data import build_inputs
from .errors import InvalidArgument
from .projection import calculate_results, comparison_stats, customer_lifespan_years, monthly_revenue_lost
from .scenarios import CalculatorResults
from .scoring import LifecycleStage, lead_score, lifecycle_stage
from .sync import LeadFormData, SubmitResult, SyncPipeline, build_pipeline

logger = logging.getLogger(__name__)

app = FastAPI(title="ChurnGuard Calculator API", version="1.0")


# -----------------------
# Schemas
# -----------------------
RawNumber = Union[int, float, str]


class CalculateRequest(BaseModel):
    # raw form values: "$1,200", "12.5%", or plain numbers
    averageOrderValue: RawNumber
    totalCustomers: RawNumber
    purchaseFrequency: RawNumber
    currentChurnRate: Optional[RawNumber] = None
    customerAcquisitionCost: Optional[RawNumber] = None
    grossMargin: Optional[RawNumber] = None


class ScenarioOut(BaseModel):
    reductionPercentage: int
    annualSavings: float
    threeYearSavings: float


class CalculateResponse(BaseModel):
    annualRevenueLost: float
    monthlyRevenueLost: float
    lifetimeValueLost: Dict[str, float]
    replacementCost: float
    reducedChurnScenarios: List[ScenarioOut]
    customerLifespanYears: Optional[float]  # null when churn is 0 (infinite lifespan)
    leadScore: int
    lifecycleStage: str
    comparisons: List[Dict[str, Any]]


class LeadRequest(BaseModel):
    email: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    company: Optional[str] = None
    storeName: Optional[str] = None
    lifecycleStage: Optional[LifecycleStage] = None
    metadata: Optional[Dict[str, Any]] = None
    calculator: Optional[CalculateRequest] = None


class SecondaryOut(BaseModel):
    operation: str
    success: bool
    message: str
    skipped: bool


class LeadResponse(BaseModel):
    success: bool
    contactId: Optional[str] = None
    fallbackUsed: bool
    message: str
    state: str
    secondary: List[SecondaryOut]


# -----------------------
# Utilities
# -----------------------
def _pipeline(request: Request) -> SyncPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        pipeline = build_pipeline()
        request.app.state.pipeline = pipeline
    return pipeline


def _is_finite(results: CalculatorResults) -> bool:
    amounts = [results.annual_revenue_lost, results.replacement_cost]
    amounts += list(results.lifetime_value_lost.values())
    for s in results.reduced_churn_scenarios:
        amounts += [s.annual_savings, s.three_year_savings]
    return all(math.isfinite(a) for a in amounts)


def _lead_response(result: SubmitResult) -> LeadResponse:
    return LeadResponse(
        success=result.success,
        contactId=result.contact_id,
        fallbackUsed=result.fallback_used,
        message=result.message,
        state=result.state.value,
        secondary=[
            SecondaryOut(operation=s.operation, success=s.success, message=s.message, skipped=s.skipped)
            for s in result.secondary
        ],
    )


# -----------------------
# Startup
# -----------------------
@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = build_pipeline()


@app.on_event("shutdown")
def _shutdown() -> None:
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is not None:
        pipeline.client.close()


# -----------------------
# Endpoints
# -----------------------
@app.get("/")
def root():
    return {
        "service": "ChurnGuard Calculator API",
        "version": "1.0",
        "endpoints": {
            "health": "/health",
            "docs": "/docs",
            "openapi": "/openapi.json",
            "calculate": "POST /calculate",
            "leads": "POST /leads",
        },
    }


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/calculate", response_model=CalculateResponse)
def calculate(req: CalculateRequest):
    """
    Project churn losses from raw form values.
    Out-of-range or unparseable inputs return 422.
    """
    try:
        inputs = build_inputs(req.model_dump())
    except InvalidArgument as e:
        raise HTTPException(status_code=422, detail=str(e))

    results = calculate_results(inputs)
    if not _is_finite(results):
        raise HTTPException(status_code=422, detail="Inputs are too large to project.")

    score = lead_score(results.annual_revenue_lost)
    lifespan = customer_lifespan_years(inputs.churn_rate)
    payload = results.to_dict()

    return CalculateResponse(
        annualRevenueLost=payload["annualRevenueLost"],
        monthlyRevenueLost=monthly_revenue_lost(results),
        lifetimeValueLost=payload["lifetimeValueLost"],
        replacementCost=payload["replacementCost"],
        reducedChurnScenarios=payload["reducedChurnScenarios"],
        customerLifespanYears=None if math.isinf(lifespan) else lifespan,
        leadScore=score,
        lifecycleStage=lifecycle_stage(score).value,
        comparisons=comparison_stats(results),
    )


@app.post("/leads", response_model=LeadResponse)
def submit_lead(req: LeadRequest, request: Request):
    """
    Save a lead to HubSpot. Always 200 once the request validates: CRM failures
    are reported in the body (success=false, fallbackUsed=...).
    """
    inputs = None
    if req.calculator is not None:
        try:
            inputs = build_inputs(req.calculator.model_dump())
        except InvalidArgument as e:
            raise HTTPException(status_code=422, detail=str(e))

    form_data = LeadFormData(
        email=req.email,
        first_name=req.firstName,
        last_name=req.lastName,
        company=req.company,
        store_name=req.storeName,
        total_customers=inputs.number_of_customers if inputs else None,
        average_order_value=inputs.average_order_value if inputs else None,
        churn_rate=inputs.churn_rate if inputs else None,
        lifecycle_stage=req.lifecycleStage,
        metadata=req.metadata,
    )

    results = calculate_results(inputs) if inputs is not None else None
    if results is not None and not _is_finite(results):
        raise HTTPException(status_code=422, detail="Inputs are too large to project.")

    pipeline = _pipeline(request)
    if results is None:
        result = pipeline.submit_lead_capture(form_data)
    else:
        result = pipeline.sync_lead(form_data, results)

    logger.info("Lead submission finished: state=%s fallback=%s", result.state.value, result.fallback_used)
    return _lead_response(result)
