"""
Causal disagreement detection.

Compares two structural causal models and explains how they differ as a
list of typed atoms plus one bounded score.
"""

from causalprobe.disagreement.detector import CompareRequest, DisagreementDetector
from causalprobe.disagreement.models import (
    AlignedVariable,
    AlignmentQuality,
    AtomType,
    DisagreementAtom,
    DisagreementReport,
    EdgeRef,
    EpistemicWeight,
    Severity,
)
from causalprobe.disagreement.propagation import intervention_effect
from causalprobe.disagreement.scoring import aggregate_score, build_epistemic, summarize

__all__ = [
    "CompareRequest",
    "DisagreementDetector",
    "AlignedVariable",
    "AlignmentQuality",
    "AtomType",
    "DisagreementAtom",
    "DisagreementReport",
    "EdgeRef",
    "EpistemicWeight",
    "Severity",
    "intervention_effect",
    "aggregate_score",
    "build_epistemic",
    "summarize",
]
