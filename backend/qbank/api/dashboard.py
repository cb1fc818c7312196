"""
Dashboard route: per-user question and exam book counters.
"""
from fastapi import APIRouter, Depends

from qbank.api.deps import get_container, get_current_user
from qbank.container import Container
from qbank.schemas.dashboard import DashboardStats
from qbank.schemas.user import UserProfile

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardStats)
def dashboard(
    current_user: UserProfile = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    return DashboardStats(
        is_verified=current_user.is_verified,
        total_exams=len(container.assembly.visible_exam_books(current_user)),
        **container.workflow.stats_for(current_user),
    )
