"""
Module: credit_kernel.models.certificate
Responsibility: ORM persistence for certificate mappings -- the permanent
    certificate-to-course credit record written when a claim is approved.
Architecture position: Kernel > Models.

Invariants enforced:
    - One mapping per claim (unique claim_id) and per certificate number.
    - Mappings and their lines are immutable after insert
      (db/immutability.py).
    - content_hash is computed at creation and verified on every load by
      ClaimSelector.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_kernel.db.base import Base, UTCDateTime, UUIDString
from credit_kernel.domain.dtos import CertificateMappingView, MappingLineView
from credit_kernel.domain.values import Qualification


class CertificateMappingModel(Base):
    """Header row of a certificate mapping."""

    __tablename__ = "certificate_mappings"

    __table_args__ = (
        UniqueConstraint("claim_id", name="uq_certificate_mapping_claim"),
        UniqueConstraint("certificate_id", name="uq_certificate_mapping_certificate_id"),
        UniqueConstraint("certificate_no", name="uq_certificate_mapping_certificate_no"),
        Index("ix_certificate_mappings_student", "student_id"),
    )

    certificate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    certificate_no: Mapped[str] = mapped_column(String(200), nullable=False)
    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("certification_claims.id"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(100), nullable=False)
    umbrella_key: Mapped[str] = mapped_column(String(100), nullable=False)
    qualification: Mapped[str] = mapped_column(String(50), nullable=False)
    total_credits_required: Mapped[Decimal] = mapped_column(nullable=False)
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    lines: Mapped[list["CertificateMappingLineModel"]] = relationship(
        "CertificateMappingLineModel",
        back_populates="mapping",
        order_by="CertificateMappingLineModel.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<CertificateMapping {self.certificate_no}: claim={self.claim_id}>"

    def to_dto(self) -> CertificateMappingView:
        """Convert ORM model to frozen domain DTO."""
        return CertificateMappingView(
            mapping_id=self.id,
            certificate_id=self.certificate_id,
            certificate_no=self.certificate_no,
            claim_id=self.claim_id,
            student_id=self.student_id,
            umbrella_key=self.umbrella_key,
            qualification=Qualification(self.qualification),
            total_credits_required=self.total_credits_required,
            issued_at=self.issued_at,
            content_hash=self.content_hash,
            lines=tuple(line.to_dto() for line in self.lines),
        )


class CertificateMappingLineModel(Base):
    """One contributing course as frozen on the certificate."""

    __tablename__ = "certificate_mapping_lines"

    __table_args__ = (
        UniqueConstraint("mapping_id", "position", name="uq_certificate_mapping_line_position"),
        Index("ix_certificate_mapping_lines_course", "course_id"),
    )

    mapping_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("certificate_mappings.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    course_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("courses.id"), nullable=False
    )
    course_name: Mapped[str] = mapped_column(String(500), nullable=False)
    organization: Mapped[str] = mapped_column(String(500), nullable=False)
    theory_hours: Mapped[Decimal] = mapped_column(nullable=False)
    practical_hours: Mapped[Decimal] = mapped_column(nullable=False)
    total_credits: Mapped[Decimal] = mapped_column(nullable=False)
    credits_used: Mapped[Decimal] = mapped_column(nullable=False)
    completion_date: Mapped[date] = mapped_column(Date, nullable=False)
    document_ref: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    mapping: Mapped["CertificateMappingModel"] = relationship(
        "CertificateMappingModel", back_populates="lines"
    )

    def to_dto(self) -> MappingLineView:
        return MappingLineView(
            position=self.position,
            course_id=self.course_id,
            course_name=self.course_name,
            organization=self.organization,
            theory_hours=self.theory_hours,
            practical_hours=self.practical_hours,
            total_credits=self.total_credits,
            credits_used=self.credits_used,
            completion_date=self.completion_date,
            document_ref=self.document_ref,
        )
