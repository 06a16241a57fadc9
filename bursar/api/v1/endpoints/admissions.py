from fastapi import APIRouter, Depends

from bursar.api.deps import get_enrollment_service
from bursar.core.auth import require_roles
from bursar.models.user import Actor
from bursar.schemas.enrollment import EnrollmentResponse
from bursar.services.enrollment_service import EnrollmentService

router = APIRouter()


@router.post("/admissions/{admission_id}/approve", response_model=EnrollmentResponse)
async def approve_admission(
    admission_id: str,
    actor: Actor = Depends(require_roles("admin")),
    service: EnrollmentService = Depends(get_enrollment_service)
):
    """Approve an admission: create the student, its account and its fees"""
    result = await service.approve_admission(admission_id, actor_role=actor.role)
    return EnrollmentResponse.from_result(result)


@router.post("/enrollments/{saga_id}/resume", response_model=EnrollmentResponse)
async def resume_enrollment(
    saga_id: str,
    actor: Actor = Depends(require_roles("admin")),
    service: EnrollmentService = Depends(get_enrollment_service)
):
    """Retry the steps of an approval that finished with warnings"""
    result = await service.resume(saga_id)
    return EnrollmentResponse.from_result(result)
