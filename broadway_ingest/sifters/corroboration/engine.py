"""Source corroboration for proposed record changes.

Given a ProposedChange and a pool of independently observed values, decide
how much to trust the change:

1. Filter: same (subject_id, field); drop the change's own source (same
   source_type and URL); for cost fields drop evidence whose methodology is
   not comparable to the change's.
2. Partition: values_match decides support vs. contradiction. Evidence with
   no value never contradicts.
3. Confidence, in this order:
   - 2+ supporting records -> HIGH (even when contradictions outnumber them)
   - contradictions > supports -> FLAGGED
   - otherwise the proposal's own confidence
4. Severity of old_value -> new_value for the guardian and reviewers.

The engine is synchronous and pure. It never raises for lack of evidence:
no evidence is a valid, low-information outcome.

Usage:
    engine = CorroborationEngine()
    validated = engine.validate(change, evidence_store.snapshot(change.subject_id, change.field))
"""

from typing import Iterable

import structlog

from broadway_ingest.config.source_credibility import (
    METHODOLOGY_SENSITIVE_FIELDS,
    get_source_weight,
)
from broadway_ingest.data_management.schemas import (
    Confidence,
    EvidenceRecord,
    ProposedChange,
    ValidatedChange,
)
from broadway_ingest.sifters.corroboration.matching import (
    methodologies_comparable,
    values_match,
)
from broadway_ingest.sifters.corroboration.severity import (
    assess_severity,
    describe_discrepancy,
)


def calculate_confidence(
    original: Confidence,
    supporting_count: int,
    contradicting_count: int,
) -> Confidence:
    """Apply the three confidence rules in order.

    Two or more supporting sources win over any number of contradictions:
    cross-source agreement is the stronger signal.
    """
    if supporting_count >= 2:
        return Confidence.HIGH
    if contradicting_count > supporting_count:
        return Confidence.FLAGGED
    return original


class CorroborationEngine:
    """Cross-references proposed changes against observed evidence."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger().bind(component="CorroborationEngine")

    def relevant_evidence(
        self,
        change: ProposedChange,
        evidence_pool: Iterable[EvidenceRecord],
    ) -> list[EvidenceRecord]:
        """Step 1: evidence about the same fact from other sources, comparable methodology."""
        relevant = []
        for record in evidence_pool:
            if record.subject_id != change.subject_id or record.field != change.field:
                continue
            if self._is_self(change, record):
                continue
            if change.field in METHODOLOGY_SENSITIVE_FIELDS and not methodologies_comparable(
                change.methodology, record.methodology
            ):
                self._logger.debug(
                    "evidence_methodology_excluded",
                    subject_id=change.subject_id,
                    field=change.field,
                    source=record.source_type,
                    methodology=record.methodology,
                    change_methodology=change.methodology,
                )
                continue
            relevant.append(record)
        return relevant

    @staticmethod
    def _is_self(change: ProposedChange, record: EvidenceRecord) -> bool:
        return (
            record.source_type.strip().lower() == change.source_type.strip().lower()
            and record.source_url == change.source_url
        )

    @staticmethod
    def partition(
        change: ProposedChange,
        evidence: Iterable[EvidenceRecord],
    ) -> tuple[list[EvidenceRecord], list[EvidenceRecord]]:
        """Step 2: split evidence into (supporting, contradicting)."""
        supporting: list[EvidenceRecord] = []
        contradicting: list[EvidenceRecord] = []
        for record in evidence:
            if values_match(change.new_value, record.value):
                supporting.append(record)
            elif record.value is not None:
                contradicting.append(record)
        return supporting, contradicting

    def validate(
        self,
        change: ProposedChange,
        evidence_pool: Iterable[EvidenceRecord],
    ) -> ValidatedChange:
        """
        Corroborate a proposed change.

        Args:
            change: Proposed update
            evidence_pool: Snapshot of observed values (any subjects/fields)

        Returns:
            ValidatedChange with confidence, evidence partitions, notes and severity
        """
        relevant = self.relevant_evidence(change, evidence_pool)
        supporting, contradicting = self.partition(change, relevant)
        validated_confidence = calculate_confidence(
            change.confidence, len(supporting), len(contradicting)
        )

        notes = self._build_notes(change.confidence, validated_confidence, supporting, contradicting)
        severity = assess_severity(change.field, change.old_value, change.new_value)

        validated = ValidatedChange(
            **{name: getattr(change, name) for name in ProposedChange.model_fields},
            validated_confidence=validated_confidence,
            supporting_evidence=supporting,
            contradicting_evidence=contradicting,
            notes=notes,
            severity=severity,
            discrepancy=describe_discrepancy(
                change.field, change.old_value, change.new_value, label="current"
            ),
            support_weight=round(sum(get_source_weight(r.source_type) for r in supporting), 3),
            contradiction_weight=round(
                sum(get_source_weight(r.source_type) for r in contradicting), 3
            ),
        )

        log = self._logger.warning if validated_confidence is Confidence.FLAGGED else self._logger.info
        log(
            "change_validated",
            subject_id=change.subject_id,
            field=change.field,
            source=change.source_type,
            supporting=len(supporting),
            contradicting=len(contradicting),
            confidence=change.confidence.value,
            validated_confidence=validated_confidence.value,
            severity=severity.value,
        )
        return validated

    @staticmethod
    def _build_notes(
        original: Confidence,
        validated: Confidence,
        supporting: list[EvidenceRecord],
        contradicting: list[EvidenceRecord],
    ) -> str:
        notes = []
        if supporting:
            notes.append(
                f"{len(supporting)} supporting source(s): "
                + ", ".join(r.source_type for r in supporting)
            )
        if contradicting:
            notes.append(
                f"{len(contradicting)} contradicting source(s): "
                + ", ".join(r.source_type for r in contradicting)
            )
        if validated is not original:
            notes.append(f"Confidence adjusted: {original.value} -> {validated.value}")
        return "; ".join(notes) if notes else "No corroborating sources found"
