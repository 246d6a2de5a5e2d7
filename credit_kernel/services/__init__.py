"""Write-side kernel services.  All are flush-only; callers own commits."""

from credit_kernel.services.approval_workflow import ApprovalWorkflow
from credit_kernel.services.certificate_writer import CertificateMappingWriter
from credit_kernel.services.claim_allocator import ClaimAllocator
from credit_kernel.services.credit_ledger import CreditLedger
from credit_kernel.services.decision_log import DecisionLog
from credit_kernel.services.locks import (
    LockScope,
    ResourceLockRegistry,
    claim_key,
    course_key,
    student_key,
)
from credit_kernel.services.sequence_service import SequenceService

__all__ = [
    "ApprovalWorkflow",
    "CertificateMappingWriter",
    "ClaimAllocator",
    "CreditLedger",
    "DecisionLog",
    "LockScope",
    "ResourceLockRegistry",
    "SequenceService",
    "claim_key",
    "course_key",
    "student_key",
]
