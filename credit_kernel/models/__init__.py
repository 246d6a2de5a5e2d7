"""ORM models for the credit kernel."""

from credit_kernel.models.certificate import (
    CertificateMappingLineModel,
    CertificateMappingModel,
)
from credit_kernel.models.claim import (
    CertificationClaimModel,
    ClaimContributionModel,
    ClaimDecisionModel,
)
from credit_kernel.models.course import COURSE_FROZEN_FIELDS, CourseModel
from credit_kernel.models.reservation import CreditReservationModel
from credit_kernel.models.sequence import SequenceCounter

__all__ = [
    "COURSE_FROZEN_FIELDS",
    "CertificateMappingLineModel",
    "CertificateMappingModel",
    "CertificationClaimModel",
    "ClaimContributionModel",
    "ClaimDecisionModel",
    "CourseModel",
    "CreditReservationModel",
    "SequenceCounter",
]
