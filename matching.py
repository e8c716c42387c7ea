"""
Match strategies used to relate products and vendor orders to a vendor.

Brand tagging in the catalogue is inconsistent, so a vendor's records are
found with an ordered list of strategies, exact ones first and a fuzzy
first-word match last. A FieldMatch works both as a MongoDB clause (see
database.MongoStore) and as a plain predicate over a document.
"""

import re
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

MatchKind = Literal["id", "exact", "fuzzy"]


@dataclass(frozen=True)
class FieldMatch:
    field: str
    value: Any
    kind: MatchKind = "exact"

    @property
    def label(self) -> str:
        return f"{self.field}~" if self.kind == "fuzzy" else self.field

    @property
    def pattern(self) -> str:
        return re.escape(str(self.value))

    def matches(self, doc: dict) -> bool:
        actual = doc.get(self.field)
        if actual is None:
            return False
        if self.kind == "fuzzy":
            return re.search(self.pattern, str(actual), re.IGNORECASE) is not None
        if self.kind == "id":
            return str(actual) == str(self.value)
        return actual == self.value


def first_word(name: Optional[str]) -> str:
    parts = (name or "").split()
    return parts[0] if parts else ""


def first_match(matchers: Sequence[FieldMatch], doc: dict) -> Optional[FieldMatch]:
    """Return the highest-priority strategy that matches ``doc``."""
    for matcher in matchers:
        if matcher.matches(doc):
            return matcher
    return None
