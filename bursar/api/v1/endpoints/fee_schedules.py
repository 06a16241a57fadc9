from typing import List

from fastapi import APIRouter, Depends, HTTPException

from bursar.api.deps import get_fee_schedule_repo
from bursar.core.auth import FINANCE_ROLES, require_roles
from bursar.models.enrollment import FeeSchedule
from bursar.models.user import Actor
from bursar.repositories.fee_schedule_repo import FeeScheduleRepository
from bursar.schemas.enrollment import FeeScheduleResponse, FeeScheduleUpdate
from bursar.utils.identifiers import normalize_grade

router = APIRouter()


def to_response(schedule: FeeSchedule) -> FeeScheduleResponse:
    return FeeScheduleResponse(
        grade=schedule.grade,
        admission_fee=schedule.admission_fee,
        tuition_fee=schedule.tuition_fee,
        updated_at=schedule.updated_at
    )


@router.get("/", response_model=List[FeeScheduleResponse])
async def list_fee_schedules(
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    repo: FeeScheduleRepository = Depends(get_fee_schedule_repo)
):
    return [to_response(s) for s in await repo.list()]


@router.get("/{grade}", response_model=FeeScheduleResponse)
async def get_fee_schedule(
    grade: str,
    actor: Actor = Depends(require_roles(*FINANCE_ROLES)),
    repo: FeeScheduleRepository = Depends(get_fee_schedule_repo)
):
    schedule = await repo.get_by_grade(normalize_grade(grade))
    if not schedule:
        raise HTTPException(status_code=404, detail="Fee schedule not found")
    return to_response(schedule)


@router.put("/{grade}", response_model=FeeScheduleResponse)
async def put_fee_schedule(
    grade: str,
    schedule_in: FeeScheduleUpdate,
    actor: Actor = Depends(require_roles("admin")),
    repo: FeeScheduleRepository = Depends(get_fee_schedule_repo)
):
    """Set the admission and tuition fee charged on enrollment into a grade"""
    schedule = await repo.upsert(FeeSchedule(
        grade=normalize_grade(grade),
        admission_fee=schedule_in.admission_fee,
        tuition_fee=schedule_in.tuition_fee
    ))
    return to_response(schedule)
