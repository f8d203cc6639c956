"""Sifters judge fetched content and proposed changes.

- quality: ContentQualityClassifier (is the fetched text usable?)
- corroboration: CorroborationEngine (do other sources agree?)
- guardian: VerifiedDataGuardian (may this change touch a verified field?)

All sifters are synchronous and side-effect free apart from logging.
"""

from broadway_ingest.sifters.corroboration import CorroborationEngine
from broadway_ingest.sifters.guardian import VerifiedDataGuardian, protected_subjects
from broadway_ingest.sifters.quality import ContentQualityClassifier

__all__ = [
    "ContentQualityClassifier",
    "CorroborationEngine",
    "VerifiedDataGuardian",
    "protected_subjects",
]
