"""
Public API v1
=============
Key-authenticated read access to the intelligence services.

Authenticate with `Authorization: Bearer snx_...` or `X-API-Key: snx_...`.
Every response carries `meta.requestId` and the key tier.
"""
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacenexus.core.database import get_db
from spacenexus.core.errors import success_response, validation_error
from spacenexus.models.schemas import CompanyScoreRequest, RiskAssessmentRequest
from spacenexus.services import risk_scoring
from spacenexus.services.api_keys import AuthenticatedKey, authenticate_api_key
from spacenexus.services.company_scoring import calculate_company_scores
from spacenexus.services.freshness_tracker import FreshnessTracker

router = APIRouter(prefix="/api/v1", tags=["public-api"])


def _with_meta(data: Any, key: AuthenticatedKey):
    return success_response(data, meta={"requestId": key.request_id, "tier": key.tier})


@router.post("/companies/score")
def v1_company_score(body: CompanyScoreRequest, key: AuthenticatedKey = Depends(authenticate_api_key)):
    return _with_meta(calculate_company_scores(body), key)


@router.post("/regulatory/risk")
def v1_regulatory_risk(body: RiskAssessmentRequest, key: AuthenticatedKey = Depends(authenticate_api_key)):
    if body.sector not in risk_scoring.SECTOR_RISK_PROFILES:
        raise validation_error(f"Unknown sector: {body.sector}", {"sector": "Unknown sector"})
    return _with_meta(risk_scoring.assess_profile(body), key)


@router.get("/freshness")
def v1_freshness(
    key: AuthenticatedKey = Depends(authenticate_api_key),
    db: Session = Depends(get_db),
):
    return _with_meta(FreshnessTracker(db).report(), key)
