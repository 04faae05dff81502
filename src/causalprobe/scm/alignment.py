"""
Variable alignment against a canonical ontology.

The detector consumes alignment through ``ModelRegistry.align_variables``;
this module supplies the data shapes and the reference matcher used by the
in-memory registry.  Matching is tried in decreasing order of trust:

1. canonical name (confidence 1.0)
2. declared alias (confidence 0.92)
3. normalized token of either (confidence 0.75)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Sequence

from causalprobe.scm.normalize import normalize_token


class MatchKind(str, Enum):
    """How an input name was matched to the ontology."""

    CANONICAL = "canonical"
    ALIAS = "alias"
    NORMALIZED = "normalized"
    NONE = "none"


MATCH_CONFIDENCE: dict[MatchKind, float] = {
    MatchKind.CANONICAL: 1.0,
    MatchKind.ALIAS: 0.92,
    MatchKind.NORMALIZED: 0.75,
    MatchKind.NONE: 0.0,
}


@dataclass(frozen=True)
class OntologyVariable:
    """One canonical variable with its accepted aliases."""

    id: str
    canonical_name: str
    aliases: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OntologyVariable":
        canonical = data.get("canonical_name") or data.get("canonicalName") or data["id"]
        return cls(
            id=str(data.get("id") or canonical),
            canonical_name=str(canonical),
            aliases=tuple(str(a) for a in data.get("aliases") or ()),
        )


@dataclass(frozen=True)
class VariableOntology:
    """An immutable collection of canonical variables."""

    variables: tuple[OntologyVariable, ...] = ()

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "VariableOntology":
        """Build an alias-free ontology where every name is its own canonical term."""
        return cls(tuple(OntologyVariable(id=n, canonical_name=n) for n in names))

    def __len__(self) -> int:
        return len(self.variables)


@dataclass(frozen=True)
class VariableAlignment:
    """Alignment outcome for a single input name."""

    input: str
    matched_by: MatchKind
    canonical: str | None = None
    variable_id: str | None = None
    confidence: float = 0.0

    @property
    def matched(self) -> bool:
        return self.matched_by is not MatchKind.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "canonical": self.canonical,
            "variable_id": self.variable_id,
            "confidence": self.confidence,
            "matched_by": self.matched_by.value,
        }


@dataclass(frozen=True)
class AlignmentResult:
    """Alignment of a batch of names, in input order."""

    aligned: tuple[VariableAlignment, ...] = ()
    unknown: tuple[str, ...] = field(default=())

    @property
    def matched_count(self) -> int:
        return sum(1 for a in self.aligned if a.matched)


def align_variables(
    inputs: Sequence[str],
    ontology: VariableOntology,
) -> AlignmentResult:
    """
    Align raw variable names to ontology terms.

    Every input yields exactly one ``VariableAlignment``; unmatched names
    are also listed in ``unknown`` (input order, duplicates kept).
    """
    direct: dict[str, OntologyVariable] = {}
    alias: dict[str, OntologyVariable] = {}
    normalized: dict[str, OntologyVariable] = {}

    for variable in ontology.variables:
        direct.setdefault(variable.canonical_name, variable)
        normalized.setdefault(normalize_token(variable.canonical_name), variable)
        for name in variable.aliases:
            alias.setdefault(name, variable)
            normalized.setdefault(normalize_token(name), variable)

    aligned: list[VariableAlignment] = []
    for name in inputs:
        if name in direct:
            hit, kind = direct[name], MatchKind.CANONICAL
        elif name in alias:
            hit, kind = alias[name], MatchKind.ALIAS
        elif normalize_token(name) in normalized:
            hit, kind = normalized[normalize_token(name)], MatchKind.NORMALIZED
        else:
            aligned.append(VariableAlignment(input=name, matched_by=MatchKind.NONE))
            continue

        aligned.append(VariableAlignment(
            input=name,
            matched_by=kind,
            canonical=hit.canonical_name,
            variable_id=hit.id,
            confidence=MATCH_CONFIDENCE[kind],
        ))

    return AlignmentResult(
        aligned=tuple(aligned),
        unknown=tuple(a.input for a in aligned if not a.matched),
    )
