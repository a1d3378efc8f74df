"""
Intelligence Routes
Company intelligence scores and regulatory risk assessments.
"""
import logging

from fastapi import APIRouter, Depends

from spacenexus.api.deps import require_module
from spacenexus.core.errors import success_response, validation_error
from spacenexus.models.schemas import CompanyScoreRequest, RiskAssessmentRequest
from spacenexus.models.tables import User
from spacenexus.services import risk_scoring
from spacenexus.services.company_scoring import calculate_company_scores, scores_to_records

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["intel"])


@router.post("/companies/score")
async def score_company(body: CompanyScoreRequest):
    scores = calculate_company_scores(body)
    return success_response({"scores": scores, "records": scores_to_records(scores)})


@router.post("/regulatory/risk")
async def regulatory_risk(
    body: RiskAssessmentRequest,
    user: User = Depends(require_module("compliance")),
):
    if body.sector not in risk_scoring.SECTOR_RISK_PROFILES:
        raise validation_error(f"Unknown sector: {body.sector}", {"sector": "Unknown sector"})
    assessment = risk_scoring.assess_profile(body)
    logger.info(
        f"[INTEL] Risk assessment sector={body.sector} flags={len(body.activitiesFlags)} "
        f"score={assessment['overallScore']}"
    )
    return success_response(assessment)


@router.get("/regulatory/sectors")
async def regulatory_sectors():
    return success_response({
        "sectors": risk_scoring.SECTORS,
        "activityFlags": [
            {"id": f["id"], "label": f["label"]} for f in risk_scoring.ACTIVITY_FLAGS
        ],
        "categories": risk_scoring.CATEGORY_LABELS,
    })
