"""Ingestion pipeline wiring the gateway, sifters and stores together.

Two entry points:

ingest_document(request, context)
    fetch -> extract -> quality tier -> optional LLM relevance check.
    The LLM check only ever demotes a usable document to invalid.

review_change(change, verification_record, verified_value)
    evidence snapshot -> corroboration -> verified-data guard. A change is
    accepted only when the guard does not block it and corroboration did
    not flag it; otherwise the prior value stands. The proposal itself is
    then added to the evidence pool as a new observation.

Every outcome, accepted or not, leaves an AuditNote in the audit store.
"""

import functools
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import aiometer
from pydantic import BaseModel, Field
from structlog.contextvars import bound_contextvars

from broadway_ingest.config.settings import settings
from broadway_ingest.crawlers.errors import AllProvidersExhausted
from broadway_ingest.crawlers.extractors import ContentExtractor
from broadway_ingest.crawlers.fetch_gateway import FetchGateway
from broadway_ingest.data_management import AuditStore, EvidenceStore
from broadway_ingest.data_management.schemas import (
    AssessmentContext,
    AuditNote,
    AuditOutcome,
    AuditStage,
    Confidence,
    ContentAssessment,
    EvidenceRecord,
    FetchRequest,
    FetchResult,
    GuardDecision,
    ProposedChange,
    ValidatedChange,
    VerificationRecord,
)
from broadway_ingest.llm import SemanticClassifier
from broadway_ingest.sifters.corroboration import CorroborationEngine
from broadway_ingest.sifters.guardian import VerifiedDataGuardian
from broadway_ingest.sifters.quality import ContentQualityClassifier
from broadway_ingest.utils.logging import get_correlation_id, get_structured_logger


@dataclass
class PipelineStats:
    """Counters for one pipeline instance."""

    documents_fetched: int = 0
    fetch_failures: int = 0
    documents_usable: int = 0
    documents_rejected: int = 0
    semantic_demotions: int = 0
    changes_accepted: int = 0
    changes_held: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "documents_fetched": self.documents_fetched,
            "fetch_failures": self.fetch_failures,
            "documents_usable": self.documents_usable,
            "documents_rejected": self.documents_rejected,
            "semantic_demotions": self.semantic_demotions,
            "changes_accepted": self.changes_accepted,
            "changes_held": self.changes_held,
        }


class DocumentOutcome(BaseModel):
    """Result of ingesting one document."""

    url: str
    correlation_id: str
    result: Optional[FetchResult] = Field(default=None, description="None when the fetch failed")
    text: str = Field(default="", description="Extracted plain text")
    assessment: Optional[ContentAssessment] = Field(default=None)
    semantic_label: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None, description="Fetch failure summary")

    model_config = {"frozen": True}

    @property
    def is_usable(self) -> bool:
        return self.assessment is not None and self.assessment.is_usable


class ChangeDecision(BaseModel):
    """Result of reviewing one proposed change."""

    correlation_id: str
    validated: ValidatedChange
    guard: GuardDecision
    accepted: bool
    resulting_value: Any = Field(default=None, description="Value the record should hold afterwards")

    model_config = {"frozen": True}

    @property
    def needs_review(self) -> bool:
        return not self.accepted


class IngestionPipeline:
    """
    End-to-end document ingestion and change review.

    Components are created lazily when not injected, the same way the
    stores and sifters are used standalone.

    Usage:
        pipeline = IngestionPipeline()
        outcome = await pipeline.ingest_document(
            FetchRequest(url=url, subject_id="hamilton-2015"),
            AssessmentContext(subject_id="hamilton-2015", subject_title="Hamilton"),
        )
        decision = await pipeline.review_change(change, verification_record)
    """

    def __init__(
        self,
        gateway: Optional[FetchGateway] = None,
        extractor: Optional[ContentExtractor] = None,
        classifier: Optional[ContentQualityClassifier] = None,
        semantic_classifier: Optional[SemanticClassifier] = None,
        engine: Optional[CorroborationEngine] = None,
        guardian: Optional[VerifiedDataGuardian] = None,
        evidence_store: Optional[EvidenceStore] = None,
        audit_store: Optional[AuditStore] = None,
        use_semantic_check: bool = True,
    ) -> None:
        self._gateway = gateway
        self._extractor = extractor
        self._classifier = classifier
        self._semantic_classifier = semantic_classifier
        self._engine = engine
        self._guardian = guardian
        self._evidence_store = evidence_store
        self._audit_store = audit_store
        self.use_semantic_check = use_semantic_check

        self.stats = PipelineStats()
        self.logger = get_structured_logger("IngestionPipeline")

    @property
    def gateway(self) -> FetchGateway:
        if self._gateway is None:
            self._gateway = FetchGateway()
        return self._gateway

    @property
    def extractor(self) -> ContentExtractor:
        if self._extractor is None:
            self._extractor = ContentExtractor()
        return self._extractor

    @property
    def classifier(self) -> ContentQualityClassifier:
        if self._classifier is None:
            self._classifier = ContentQualityClassifier()
        return self._classifier

    @property
    def semantic_classifier(self) -> SemanticClassifier:
        if self._semantic_classifier is None:
            self._semantic_classifier = SemanticClassifier()
        return self._semantic_classifier

    @property
    def engine(self) -> CorroborationEngine:
        if self._engine is None:
            self._engine = CorroborationEngine()
        return self._engine

    @property
    def guardian(self) -> VerifiedDataGuardian:
        if self._guardian is None:
            self._guardian = VerifiedDataGuardian()
        return self._guardian

    @property
    def evidence_store(self) -> EvidenceStore:
        if self._evidence_store is None:
            self._evidence_store = EvidenceStore(settings.evidence_store_path)
        return self._evidence_store

    @property
    def audit_store(self) -> AuditStore:
        if self._audit_store is None:
            self._audit_store = AuditStore(settings.audit_store_path)
        return self._audit_store

    async def _note(
        self,
        stage: AuditStage,
        outcome: AuditOutcome,
        reason: str,
        subject_id: Optional[str],
        correlation_id: str,
        **details: Any,
    ) -> None:
        await self.audit_store.add_note(
            AuditNote(
                subject_id=subject_id,
                stage=stage,
                outcome=outcome,
                reason=reason,
                details=details,
                correlation_id=correlation_id,
            )
        )

    async def ingest_document(
        self,
        request: FetchRequest,
        context: Optional[AssessmentContext] = None,
    ) -> DocumentOutcome:
        """
        Fetch and grade one document.

        Args:
            request: What to fetch
            context: Expected subject and excerpts; defaults to the request's
                subject_id and URL

        Returns:
            DocumentOutcome. Fetch failures are reported in ``error`` rather
            than raised.
        """
        context = context or AssessmentContext(subject_id=request.subject_id)
        if context.source_url is None:
            context = context.model_copy(update={"source_url": request.url})
        correlation_id = get_correlation_id()
        subject_id = context.subject_id

        with bound_contextvars(correlation_id=correlation_id, subject_id=subject_id):
            try:
                result = await self.gateway.fetch(request)
            except AllProvidersExhausted as e:
                self.stats.fetch_failures += 1
                self.logger.warning("document_fetch_failed", url=request.url, error=str(e))
                await self._note(
                    AuditStage.FETCH,
                    AuditOutcome.FAILED,
                    str(e),
                    subject_id,
                    correlation_id,
                    url=request.url,
                    attempts=[f"{kind.value}: {reason}" for kind, reason in e.attempts],
                )
                return DocumentOutcome(url=request.url, correlation_id=correlation_id, error=str(e))

            self.stats.documents_fetched += 1
            text = self.extractor.extract(result)
            assessment = self.classifier.assess(text, context)

            semantic_label = None
            if assessment.is_usable and self.use_semantic_check and context.subject_title:
                assessment, semantic_label = await self._semantic_check(
                    assessment, text, context, correlation_id
                )

            await self.audit_store.save_assessment(assessment)
            if assessment.is_usable:
                self.stats.documents_usable += 1
                outcome = AuditOutcome.ACCEPTED
            else:
                self.stats.documents_rejected += 1
                outcome = AuditOutcome.REJECTED
            await self._note(
                AuditStage.ASSESS,
                outcome,
                assessment.reason,
                subject_id,
                correlation_id,
                url=request.url,
                tier=assessment.tier.value,
                signals=list(assessment.signals),
                provider=result.provider_used.value,
            )

            self.logger.info(
                "document_ingested",
                url=request.url,
                provider=result.provider_used.value,
                tier=assessment.tier.value,
                words=assessment.word_count,
            )
            return DocumentOutcome(
                url=request.url,
                correlation_id=correlation_id,
                result=result,
                text=text,
                assessment=assessment,
                semantic_label=semantic_label,
            )

    async def _semantic_check(
        self,
        assessment: ContentAssessment,
        text: str,
        context: AssessmentContext,
        correlation_id: str,
    ) -> Tuple[ContentAssessment, Optional[str]]:
        classifier = self.semantic_classifier
        if not classifier.enabled:
            return assessment, None

        verdict = await classifier.classify(text, context.subject_title)
        if verdict is None:
            # No provider answered; the rule-based tier stands
            return assessment, None
        if verdict.relevant:
            return assessment, verdict.label

        self.stats.semantic_demotions += 1
        provider = verdict.provider.value if verdict.provider else "llm"
        demoted = assessment.demote(
            "semantic:not_relevant",
            f"{provider} judged the text not about {context.subject_title}",
        )
        await self._note(
            AuditStage.SEMANTIC,
            AuditOutcome.REJECTED,
            demoted.reason,
            context.subject_id,
            correlation_id,
            url=context.source_url,
            previous_tier=assessment.tier.value,
        )
        return demoted, None

    async def ingest_many(
        self,
        items: Sequence[Tuple[FetchRequest, Optional[AssessmentContext]]],
        max_at_once: int = 4,
    ) -> list[DocumentOutcome]:
        """Ingest several documents concurrently; outcomes keep input order."""
        if not items:
            return []
        return await aiometer.run_all(
            [functools.partial(self.ingest_document, request, context) for request, context in items],
            max_at_once=max_at_once,
        )

    async def review_change(
        self,
        change: ProposedChange,
        verification_record: Optional[VerificationRecord] = None,
        verified_value: Any = None,
    ) -> ChangeDecision:
        """
        Corroborate and guard a proposed change.

        Args:
            change: Proposed update from some source
            verification_record: The subject's verification record, if any
            verified_value: Current canonical value; defaults to change.old_value

        Returns:
            ChangeDecision with the value the record should hold afterwards
        """
        correlation_id = get_correlation_id()

        with bound_contextvars(correlation_id=correlation_id, subject_id=change.subject_id):
            pool = await self.evidence_store.snapshot(change.subject_id, change.field)
            validated = self.engine.validate(change, pool)
            guard = self.guardian.guard(validated, verification_record, verified_value)

            flagged = validated.validated_confidence is Confidence.FLAGGED
            accepted = not guard.blocked and not flagged
            if accepted:
                resulting_value = change.new_value
            else:
                resulting_value = verified_value if verified_value is not None else change.old_value

            await self.evidence_store.add(EvidenceRecord.from_change(change))
            await self.audit_store.save_change(validated)

            if guard.blocked:
                stage, outcome, reason = AuditStage.GUARD, AuditOutcome.HELD, guard.reason
            elif flagged:
                stage, outcome, reason = AuditStage.VALIDATE, AuditOutcome.HELD, validated.notes
            else:
                stage, outcome, reason = AuditStage.VALIDATE, AuditOutcome.ACCEPTED, validated.notes
            await self._note(
                stage,
                outcome,
                reason,
                change.subject_id,
                correlation_id,
                field=change.field,
                source=change.source_type,
                validated_confidence=validated.validated_confidence.value,
                severity=validated.severity.value,
                overridden=guard.overridden,
            )

            if accepted:
                self.stats.changes_accepted += 1
            else:
                self.stats.changes_held += 1
            self.logger.info(
                "change_reviewed",
                field=change.field,
                accepted=accepted,
                blocked=guard.blocked,
                validated_confidence=validated.validated_confidence.value,
            )
            return ChangeDecision(
                correlation_id=correlation_id,
                validated=validated,
                guard=guard,
                accepted=accepted,
                resulting_value=resulting_value,
            )

    async def close(self) -> None:
        if self._gateway is not None:
            await self._gateway.close()
        if self._semantic_classifier is not None:
            await self._semantic_classifier.close()
