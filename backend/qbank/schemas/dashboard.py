"""
Dashboard counters for the signed-in user.
"""
from qbank.schemas.base import CamelModel


class DashboardStats(CamelModel):
    is_verified: bool
    submitted: int  # questions authored by the user
    approved: int  # of those, approved
    pending_review: int  # under review with the user as one of the two reviewers
    total_questions: int
    approved_questions: int
    total_exams: int  # exam books the user may view
