from fastapi import APIRouter, Query, Request

router = APIRouter(tags=["debug"])


@router.get("/debug/oracle-interactions")
async def oracle_interactions(request: Request, limit: int = Query(50, ge=1, le=1000)):
    """Recent oracle audit records (request, response, error), newest first."""
    trail = request.app.state.audit_trail
    interactions = trail.recent(limit)
    return {"count": len(interactions), "retained": len(trail), "interactions": interactions}
