import logging
from typing import List

from libdesk.models.models import STUDENT_ACTIVE, Student, Transaction
from libdesk.schemas.schemas import Eligibility
from libdesk.services.repository import CirculationRepository
from libdesk.services.settings import Policy

logger = logging.getLogger("libdesk.eligibility")

INACTIVE = "inactive"
AT_CAPACITY = "at_capacity"


class EligibilityEvaluator:
    """Decides whether a student may take out another book.

    Only status and the active-loan count matter. Unpaid fines are reported
    alongside the decision but never refuse a borrow.
    """

    def __init__(self, repo: CirculationRepository, policy: Policy):
        self.repo = repo
        self.policy = policy

    def current_borrowed_books(self, student: Student) -> List[Transaction]:
        return self.repo.list_active(student.id)

    def remaining_capacity(self, student: Student) -> int:
        return max(0, self.policy.max_books_per_student - self.repo.count_active(student.id))

    def can_borrow(self, student: Student) -> Eligibility:
        active = self.repo.count_active(student.id)
        limit = self.policy.max_books_per_student
        reason = None
        if student.status != STUDENT_ACTIVE:
            reason = INACTIVE
        elif active >= limit:
            reason = AT_CAPACITY
        if reason:
            logger.debug(f"Student {student.id} not eligible to borrow: {reason}")
        return Eligibility(
            eligible=reason is None,
            reason=reason,
            active_count=active,
            max_books=limit,
            remaining_capacity=max(0, limit - active),
            unpaid_fines=self.repo.total_unpaid_fines(student.id),
        )
