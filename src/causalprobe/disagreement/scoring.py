"""
Epistemic weighting and the aggregate disagreement score.

Mixing constants come from ``DisagreementSettings``; they are heuristics,
not derived from a formal model.
"""

from __future__ import annotations

from typing import Sequence

from causalprobe.config import DisagreementSettings
from causalprobe.disagreement.models import (
    AtomType,
    DisagreementAtom,
    EpistemicWeight,
    Severity,
)
from causalprobe.scm.resolver import clamp


def build_epistemic(
    atom_type: AtomType,
    left_evidence: float,
    right_evidence: float,
    settings: DisagreementSettings,
) -> EpistemicWeight:
    """Epistemic triple for an atom, from both models' evidence weights."""
    if atom_type is AtomType.ASSUMPTION:
        mix = settings.assumption_mix
    elif atom_type is AtomType.CONFOUNDER:
        mix = settings.confounder_mix
    else:
        mix = settings.structural_mix

    avg_evidence = (left_evidence + right_evidence) / 2
    return EpistemicWeight(
        data_grounded=clamp(avg_evidence * mix.data_scale),
        mechanism_grounded=mix.mechanism_grounded,
        assumption_grounded=mix.assumption_grounded,
    )


def severity_weight(severity: Severity, settings: DisagreementSettings) -> float:
    return settings.severity_weights.get(severity.value, 0.0)


def aggregate_score(
    atoms: Sequence[DisagreementAtom],
    settings: DisagreementSettings,
) -> float:
    """
    Mean over atoms of severity weight times mean epistemic weight.

    0.0 for an empty atom list; otherwise clamped to [0, 1] and rounded to
    four places.
    """
    if not atoms:
        return 0.0
    total = sum(
        severity_weight(atom.severity, settings) * atom.epistemic_weight.mean
        for atom in atoms
    )
    return round(clamp(total / len(atoms)), 4)


def summarize(atoms: Sequence[DisagreementAtom]) -> str:
    if not atoms:
        return "No material causal disagreement detected between the compared models."
    return (
        f"Detected {len(atoms)} disagreement atom(s) across structure, "
        f"assumptions, and intervention predictions."
    )
