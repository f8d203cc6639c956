"""Verified-data guardian: protects manually verified fields from automated overwrites.

A field listed in a subject's VerificationRecord was confirmed through
primary-document research. Automated changes to it go through only when the
conflict with the verified value is LOW or MEDIUM; HIGH and CRITICAL
conflicts are blocked and surfaced for human review.

Subjects on the override allow-list skip the gate. Overrides are meant to be
rare, so every use is logged at warning level.
"""

from typing import Any, Iterable, Optional

import structlog

from broadway_ingest.config.settings import settings
from broadway_ingest.data_management.schemas import (
    GuardDecision,
    ProposedChange,
    VerificationRecord,
)
from broadway_ingest.sifters.corroboration.severity import (
    assess_severity,
    describe_discrepancy,
)


class VerifiedDataGuardian:
    """Terminal gate for changes to verified fields.

    Usage:
        guardian = VerifiedDataGuardian()
        decision = guardian.guard(validated_change, verification_record)
        if decision.blocked:
            ...  # route to human review
    """

    def __init__(self, override_subjects: Optional[Iterable[str]] = None) -> None:
        """Initialize guardian.

        Args:
            override_subjects: Subject ids allowed past the gate. Defaults to
                the GUARDIAN_OVERRIDE_SUBJECTS setting.
        """
        if override_subjects is None:
            override_subjects = settings.override_subject_set
        self.override_subjects = frozenset(s.strip().lower() for s in override_subjects)
        self._logger = structlog.get_logger().bind(component="VerifiedDataGuardian")

    def guard(
        self,
        change: ProposedChange,
        verification_record: Optional[VerificationRecord],
        verified_value: Any = None,
    ) -> GuardDecision:
        """
        Decide whether an automated change to a verified field may proceed.

        Args:
            change: Proposed (usually already validated) change
            verification_record: The subject's record, or None if never verified
            verified_value: Current value of the field in the canonical
                record; falls back to ``change.old_value`` when None

        Returns:
            GuardDecision; ``blocked`` is True only for HIGH/CRITICAL
            conflicts on verified fields of non-overridden subjects
        """
        base = {
            "subject_id": change.subject_id,
            "field": change.field,
            "proposed_value": change.new_value,
        }

        if verification_record is None or not verification_record.protects(change.field):
            return GuardDecision(blocked=False, reason="Field not verified", **base)

        current = verified_value if verified_value is not None else change.old_value
        severity = assess_severity(change.field, current, change.new_value)
        discrepancy = describe_discrepancy(change.field, current, change.new_value)

        if change.subject_id.lower() in self.override_subjects:
            self._logger.warning(
                "guardian_override_used",
                subject_id=change.subject_id,
                field=change.field,
                severity=severity.value,
                discrepancy=discrepancy,
            )
            return GuardDecision(
                blocked=False,
                severity=severity,
                verified_value=current,
                discrepancy=discrepancy,
                overridden=True,
                reason="Manual override - guardian bypassed",
                **base,
            )

        if severity.is_blocking:
            self._logger.warning(
                "verified_field_change_blocked",
                subject_id=change.subject_id,
                field=change.field,
                severity=severity.value,
                discrepancy=discrepancy,
                verified_date=verification_record.verified_date,
            )
            return GuardDecision(
                blocked=True,
                severity=severity,
                verified_value=current,
                discrepancy=discrepancy,
                reason=f"{severity.value} conflict with verified value: {discrepancy}",
                **base,
            )

        self._logger.info(
            "verified_field_change_allowed",
            subject_id=change.subject_id,
            field=change.field,
            severity=severity.value,
        )
        return GuardDecision(
            blocked=False,
            severity=severity,
            verified_value=current,
            discrepancy=discrepancy,
            reason=f"{severity.value} discrepancy within tolerance",
            **base,
        )


def protected_subjects(records: Iterable[VerificationRecord]) -> list[VerificationRecord]:
    """Verification records that actually protect at least one field."""
    return [record for record in records if record.verified_fields]
