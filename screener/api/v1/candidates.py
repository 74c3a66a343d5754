from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from screener.core.candidate_store import get_candidate_store
from screener.core.rate_limit import rate_limit
from screener.core.security import check_bearer_token
from screener.schemas.screening import CandidateListResponse, CandidateRecord, NormalizedVerdict

router = APIRouter()


def _auth(authorization: str | None = Header(default=None)):
    check_bearer_token(authorization)


@router.get("/candidates", response_model=CandidateListResponse)
@rate_limit()
def list_candidates(
    request: Request,
    role: str | None = Query(default=None, max_length=100),
    min_score: int = Query(default=0, ge=0, le=100),
    verdict: NormalizedVerdict | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    _: None = Depends(_auth),
):
    candidates = get_candidate_store().list_candidates(
        role=role,
        min_score=min_score,
        verdict=verdict,
        limit=limit,
    )
    return CandidateListResponse(candidates=candidates, total=len(candidates))


@router.get("/candidates/{candidate_id}", response_model=CandidateRecord)
@rate_limit()
def get_candidate(request: Request, candidate_id: str, _: None = Depends(_auth)):
    record = get_candidate_store().get_candidate(candidate_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Candidate not found.")
    return record
