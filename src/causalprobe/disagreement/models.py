"""
Data models for disagreement reports.

Atoms and reports are frozen pydantic models so that:
- they cannot change after the detector hands them over
- ``model_dump_json()`` gives a byte-stable serialization for
  reproducibility checks and persistence
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AtomType(str, Enum):
    """Kinds of difference between two models."""

    ASSUMPTION = "assumption"
    CONFOUNDER = "confounder"
    EDGE_PRESENCE = "edge_presence"
    EDGE_SIGN = "edge_sign"
    EDGE_DIRECTION = "edge_direction"
    INTERVENTION = "intervention"
    COUNTERFACTUAL = "counterfactual"


class Severity(str, Enum):
    """
    Severity levels for atoms.

    HIGH: structural or adjustment-set disagreement that changes conclusions
    MEDIUM: disagreement on sign, assumptions, or moderate effect deltas
    LOW: reserved for minor differences
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def __lt__(self, other: object) -> bool:
        """Enable sorting by severity (HIGH < MEDIUM < LOW)."""
        if not isinstance(other, Severity):
            return NotImplemented
        order = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
        return order[self] < order[other]


class EpistemicWeight(BaseModel):
    """How far an atom rests on data, mechanism, or assumption."""

    model_config = ConfigDict(frozen=True)

    data_grounded: float = Field(ge=0.0, le=1.0)
    mechanism_grounded: float = Field(ge=0.0, le=1.0)
    assumption_grounded: float = Field(ge=0.0, le=1.0)

    @property
    def mean(self) -> float:
        return (self.data_grounded + self.mechanism_grounded + self.assumption_grounded) / 3


class EdgeRef(BaseModel):
    """Edge referenced by an atom, in the reporting model's own names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")


class DisagreementAtom(BaseModel):
    """
    One quantized, typed unit of difference between two models.

    Attributes:
        type: What kind of difference this is.
        severity: How much it matters.
        left_value: The left model's position (e.g. "present", "positive").
        right_value: The right model's position.
        edge: The edge concerned, for edge atoms.
        variable: The variable concerned, for confounder/intervention atoms.
        reason: Human-readable explanation.
        epistemic_weight: Groundedness triple used for scoring.
    """

    model_config = ConfigDict(frozen=True)

    type: AtomType
    severity: Severity
    left_value: str
    right_value: str
    edge: EdgeRef | None = None
    variable: str | None = None
    reason: str
    epistemic_weight: EpistemicWeight


class AlignedVariable(BaseModel):
    """Alignment outcome for one input name, as reported."""

    model_config = ConfigDict(frozen=True)

    input: str
    canonical: str | None = None
    matched_by: str
    confidence: float = 0.0


class AlignmentQuality(BaseModel):
    """Coverage of the ontology alignment behind a report."""

    model_config = ConfigDict(frozen=True)

    coverage: float = Field(ge=0.0, le=1.0)
    threshold: float
    unknown_variables: tuple[str, ...] = ()
    cross_domain: bool = False

    @property
    def sufficient(self) -> bool:
        return self.coverage >= self.threshold


class DisagreementReport(BaseModel):
    """
    Complete comparison of two models.

    Created per call and owned by the caller; nothing is retained by the
    detector.
    """

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=1.0)
    summary: str
    atoms: tuple[DisagreementAtom, ...] = ()
    aligned_variables: tuple[AlignedVariable, ...] = ()
    alignment_quality: AlignmentQuality
    left_model: str = ""
    right_model: str = ""

    @property
    def has_disagreement(self) -> bool:
        return bool(self.atoms)

    def atoms_by_type(self, atom_type: AtomType) -> list[DisagreementAtom]:
        return [a for a in self.atoms if a.type == atom_type]

    def atoms_by_severity(self, severity: Severity) -> list[DisagreementAtom]:
        return [a for a in self.atoms if a.severity == severity]
