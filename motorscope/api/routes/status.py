"""
Session, refresh status and timer overview.
"""

from fastapi import APIRouter, Depends

from motorscope.api.auth import verify_api_key
from motorscope.api.dependencies import get_orchestrator
from motorscope.api.models import AlarmInfo, StatusResponse
from motorscope.orchestrator.router import Orchestrator

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
async def get_status(
    orchestrator: Orchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> StatusResponse:
    status = await orchestrator.status_store.get()
    alarms = [
        AlarmInfo(
            name=alarm.name,
            scheduled_time=alarm.scheduled_time.isoformat(),
            period_minutes=alarm.period_seconds / 60 if alarm.period_seconds else None,
        )
        for alarm in orchestrator.alarms.get_all()
    ]
    return StatusResponse(
        session=orchestrator.sessions.session.to_dict(),
        refresh=status.to_wire(),
        alarms=alarms,
    )
