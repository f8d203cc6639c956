"""Reference list of known Broadway shows.

Consumed as pure lookups by the content classifier to tell a review of the
expected show apart from an index or listing page that names many shows.
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple

# canonical id -> aliases (lowercase)
KNOWN_SUBJECTS: Dict[str, Tuple[str, ...]] = {
    "purlie-victorious-2023": ("purlie",),
    "ghosts-2025": ("ghosts",),
    "maybe-happy-ending-2024": ("maybe happy ending",),
    "death-becomes-her-2024": ("death becomes her",),
    "stereophonic-2024": ("stereophonic",),
    "cabaret-2024": ("cabaret",),
    "sunset-boulevard-2024": ("sunset boulevard", "sunset blvd"),
    "the-outsiders-2024": ("the outsiders",),
    "hamilton-2015": ("hamilton",),
    "wicked-2003": ("wicked",),
    "the-lion-king-1997": ("the lion king", "lion king"),
    "chicago-1996": ("chicago",),
    "the-phantom-of-the-opera-1988": ("phantom of the opera", "phantom"),
    "hadestown-2019": ("hadestown",),
    "moulin-rouge-2019": ("moulin rouge",),
    "back-to-the-future-2023": ("back to the future",),
    "merrily-we-roll-along-2023": ("merrily we roll along",),
    "sweeney-todd-2023": ("sweeney todd",),
    "the-notebook-2024": ("the notebook",),
    "the-great-gatsby-2024": ("the great gatsby", "great gatsby"),
    "water-for-elephants-2024": ("water for elephants",),
    "hells-kitchen-2024": ("hell's kitchen", "hells kitchen"),
    "the-whos-tommy-2024": ("the who's tommy",),
    "suffs-2024": ("suffs",),
    "the-wiz-2024": ("the wiz",),
    "gypsy-2024": ("gypsy",),
    "oh-mary-2024": ("oh, mary", "oh mary"),
    "appropriate-2023": ("appropriate",),
    "prayer-for-the-french-republic-2024": ("prayer for the french republic",),
    "mother-play-2024": ("mother play",),
    "an-enemy-of-the-people-2024": ("enemy of the people",),
    "mary-jane-2024": ("mary jane",),
    "our-town-2024": ("our town",),
    "mcneal-2024": ("mcneal",),
    "romeo-juliet-2024": ("romeo + juliet", "romeo juliet"),
    "yellowjackets-2024": ("yellowjackets",),
    "queen-of-versailles-2025": ("queen of versailles",),
    "once-upon-a-mattress-2024": ("once upon a mattress",),
    "left-on-tenth-2025": ("left on tenth",),
}

_STOP_WORDS = frozenset({"the", "and", "for", "of", "a", "an"})
_YEAR_SUFFIX = re.compile(r"-\d{4}$")


def subject_id_words(subject_id: str) -> List[str]:
    """Significant words of a subject id: ``back-to-the-future-2023`` -> ``[back, future]``."""
    base = _YEAR_SUFFIX.sub("", subject_id.lower())
    return [w for w in base.split("-") if len(w) > 3 and w not in _STOP_WORDS]


class SubjectDirectory:
    """Lookup of known subjects and their aliases."""

    def __init__(self, subjects: Optional[Dict[str, Iterable[str]]] = None) -> None:
        source = KNOWN_SUBJECTS if subjects is None else subjects
        self._subjects: Dict[str, Tuple[str, ...]] = {
            sid: tuple(a.lower() for a in aliases) for sid, aliases in source.items()
        }
        self._patterns: Dict[str, List[re.Pattern]] = {
            sid: [re.compile(r"(?<!\w)" + re.escape(alias) + r"(?!\w)") for alias in aliases]
            for sid, aliases in self._subjects.items()
        }

    def __contains__(self, subject_id: str) -> bool:
        return subject_id in self._subjects

    def aliases(self, subject_id: str) -> Tuple[str, ...]:
        return self._subjects.get(subject_id, ())

    def mentioned_subjects(self, text: str) -> List[str]:
        """Canonical ids of every known subject named in ``text``."""
        lower = text.lower()
        return [
            sid
            for sid, patterns in self._patterns.items()
            if any(p.search(lower) for p in patterns)
        ]

    def mentions(
        self,
        text: str,
        subject_id: Optional[str] = None,
        subject_title: Optional[str] = None,
    ) -> bool:
        """Whether ``text`` names the expected subject by title, alias or id words."""
        lower = text.lower()

        if subject_title and len(subject_title) > 3:
            title = subject_title.lower()
            if title in lower:
                return True
            without_the = re.sub(r"^the\s+", "", title)
            if len(without_the) > 3 and without_the in lower:
                return True

        if not subject_id:
            return False

        if any(p.search(lower) for p in self._patterns.get(subject_id, [])):
            return True

        words = subject_id_words(subject_id)
        if len(words) >= 2:
            return sum(1 for w in words if w in lower) >= 2
        if len(words) == 1 and len(words[0]) > 4:
            return words[0] in lower
        return False

    def is_expected(self, candidate_id: str, subject_id: Optional[str]) -> bool:
        """Whether a known subject is the expected one (same id or overlapping id words)."""
        if not subject_id:
            return False
        if candidate_id == subject_id:
            return True
        expected = set(subject_id_words(subject_id))
        return bool(expected) and bool(expected & set(subject_id_words(candidate_id)))
