"""
Disagreement Detector: diffs two resolved models into typed atoms.

The detector:
1. Resolves both models and aligns their variables to the ontology
2. Gates on alignment coverage (in-band atom, never an exception)
3. Diffs edges (presence, sign, direct reversal)
4. Diffs assumptions and confounders
5. Compares propagated intervention effects
6. Scores the atoms into one bounded number

Every loop walks sorted keys, so identical inputs give byte-identical
reports.

Usage::

    detector = DisagreementDetector(registry)
    report = detector.compare(CompareRequest(
        left_ref=ModelRef(model_key="health", version="v1"),
        right_spec=InlineSpec(nodes=["X", "Y"], edges=[{"from": "X", "to": "Y"}]),
        outcome="Y",
        interventions=["X"],
    ))
    print(report.summary)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from causalprobe.config import Config, DisagreementSettings, get_config
from causalprobe.disagreement.models import (
    AlignedVariable,
    AlignmentQuality,
    AtomType,
    DisagreementAtom,
    DisagreementReport,
    EdgeRef,
    Severity,
)
from causalprobe.disagreement.propagation import intervention_effect
from causalprobe.disagreement.scoring import aggregate_score, build_epistemic, summarize
from causalprobe.scm.alignment import AlignmentResult, VariableOntology, align_variables
from causalprobe.scm.models import CausalEdge, InlineSpec, ModelRef, ResolvedModel
from causalprobe.scm.normalize import normalize_token, sanitize_text
from causalprobe.scm.registry import ModelRegistry
from causalprobe.scm.resolver import ModelResolver, clamp

logger = logging.getLogger(__name__)


class CompareRequest(BaseModel):
    """
    Input to ``DisagreementDetector.compare``.

    Each side is given either as a registry reference or as an inline
    spec; an inline spec wins when both are present.
    """

    model_config = ConfigDict(frozen=True)

    left_ref: ModelRef | None = None
    right_ref: ModelRef | None = None
    left_spec: InlineSpec | None = None
    right_spec: InlineSpec | None = None
    outcome: str = Field(..., min_length=1)
    interventions: tuple[str, ...] = ()


@dataclass(frozen=True)
class _CanonicalView:
    """One model's edges and confounders rewritten through the alignment."""

    model: ResolvedModel
    edges: dict[str, CausalEdge]
    canonical_edges: tuple[CausalEdge, ...]
    directed: dict[tuple[str, str], CausalEdge]
    confounders: dict[str, str]


class DisagreementDetector:
    """
    Compares two SCMs and produces a DisagreementReport.

    Args:
        registry: Model registry used for references, ontology and alignment.
            Optional when both sides are inline.
        config: Engine configuration (defaults to ``get_config()``).
        ontology: Explicit ontology, overriding the registry's.
    """

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        config: Config | None = None,
        ontology: VariableOntology | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or get_config()
        self.ontology = ontology
        self.resolver = ModelResolver(registry, self.config)

    @property
    def settings(self) -> DisagreementSettings:
        return self.config.disagreement

    def compare(self, request: CompareRequest) -> DisagreementReport:
        """
        Compare the two models named by ``request``.

        Raises:
            ModelNotFoundError: A reference could not be resolved.
            ModelReferenceError: A side has neither reference nor spec.
        """
        left = self.resolver.resolve(request.left_ref, request.left_spec)
        right = self.resolver.resolve(request.right_ref, request.right_spec)
        return self.compare_resolved(left, right, request.outcome, request.interventions)

    def compare_resolved(
        self,
        left: ResolvedModel,
        right: ResolvedModel,
        outcome: str,
        interventions: tuple[str, ...] | list[str] = (),
    ) -> DisagreementReport:
        """Compare two already-resolved models."""
        settings = self.settings
        inputs = [*left.node_keys, *right.node_keys]
        alignment = self._align(inputs)

        lookup = {
            normalize_token(item.input): item.canonical
            for item in alignment.aligned
            if item.canonical
        }

        def canon(name: str) -> str:
            return normalize_token(lookup.get(normalize_token(name), name))

        total = len(alignment.aligned) or len(inputs) or 1
        coverage = clamp(alignment.matched_count / total)
        cross_domain = normalize_token(left.domain) != normalize_token(right.domain)
        threshold = (
            settings.cross_domain_alignment_threshold
            if cross_domain
            else settings.same_domain_alignment_threshold
        )

        lview = _canonical_view(left, canon)
        rview = _canonical_view(right, canon)
        atoms = _AtomCollector(settings, left.evidence_weight, right.evidence_weight)

        if coverage < threshold:
            atoms.add(
                AtomType.ASSUMPTION, Severity.HIGH,
                f"{round(coverage * 100)}%", f">={round(threshold * 100)}%",
                reason=(
                    "Ontology alignment coverage is below required threshold "
                    "for cross-model comparison."
                ),
            )

        self._diff_edges(lview, rview, atoms)
        self._diff_directions(lview, rview, atoms)
        self._diff_assumptions(left, right, atoms)
        self._diff_confounders(lview, rview, atoms)
        self._diff_interventions(lview, rview, canon, outcome, interventions, atoms)

        collected = tuple(atoms.atoms)
        report = DisagreementReport(
            score=aggregate_score(collected, settings),
            summary=summarize(collected),
            atoms=collected,
            aligned_variables=tuple(
                AlignedVariable(
                    input=item.input,
                    canonical=item.canonical,
                    matched_by=item.matched_by.value,
                    confidence=item.confidence,
                )
                for item in alignment.aligned
            ),
            alignment_quality=AlignmentQuality(
                coverage=round(coverage, 4),
                threshold=threshold,
                unknown_variables=alignment.unknown,
                cross_domain=cross_domain,
            ),
            left_model=left.identity,
            right_model=right.identity,
        )

        logger.info(
            "Compared %s vs %s: %d atom(s), score=%.4f",
            report.left_model, report.right_model, len(collected), report.score,
        )
        return report

    # ── Alignment ─────────────────────────────────────────────────────

    def _align(self, inputs: list[str]) -> AlignmentResult:
        if self.ontology is not None:
            ontology = self.ontology
        elif self.registry is not None:
            ontology = self.registry.get_variable_ontology()
        else:
            ontology = VariableOntology()

        if self.registry is not None:
            return self.registry.align_variables(inputs, ontology)
        return align_variables(inputs, ontology)

    # ── Structural diffs ──────────────────────────────────────────────

    @staticmethod
    def _diff_edges(lview: _CanonicalView, rview: _CanonicalView, atoms: "_AtomCollector") -> None:
        for key in sorted(set(lview.edges) | set(rview.edges)):
            ledge = lview.edges.get(key)
            redge = rview.edges.get(key)

            if ledge is None or redge is None:
                edge = redge if ledge is None else ledge
                atoms.add(
                    AtomType.EDGE_PRESENCE, Severity.HIGH,
                    "absent" if ledge is None else "present",
                    "absent" if redge is None else "present",
                    edge=EdgeRef(source=edge.source, target=edge.target),
                    reason="One model includes a causal edge the other omits.",
                )
                continue

            if ledge.sign != redge.sign:
                atoms.add(
                    AtomType.EDGE_SIGN, Severity.MEDIUM,
                    ledge.sign.value, redge.sign.value,
                    edge=EdgeRef(source=ledge.source, target=ledge.target),
                    reason="Both models agree on structure but disagree on effect sign.",
                )

    @staticmethod
    def _diff_directions(lview: _CanonicalView, rview: _CanonicalView, atoms: "_AtomCollector") -> None:
        # Direct reversal on a pair both graphs connect; longer cycles are out of scope.
        lpairs = _pairs(lview)
        rpairs = _pairs(rview)

        for pair in sorted(set(lpairs) & set(rpairs)):
            ldirs, rdirs = lpairs[pair], rpairs[pair]
            if len(ldirs) != 1 or len(rdirs) != 1 or ldirs == rdirs:
                continue
            ledge = lview.directed[next(iter(ldirs))]
            redge = rview.directed[next(iter(rdirs))]
            atoms.add(
                AtomType.EDGE_DIRECTION, Severity.HIGH,
                f"{ledge.source} -> {ledge.target}",
                f"{redge.source} -> {redge.target}",
                edge=EdgeRef(source=ledge.source, target=ledge.target),
                reason="Models reverse the direction of causality for the same variable pair.",
            )

    # ── Assumption and confounder diffs ───────────────────────────────

    @staticmethod
    def _diff_assumptions(left: ResolvedModel, right: ResolvedModel, atoms: "_AtomCollector") -> None:
        lnorm = {normalize_token(a) for a in left.assumptions}
        rnorm = {normalize_token(a) for a in right.assumptions}

        for assumption in _one_sided(left.assumptions, rnorm):
            atoms.add(
                AtomType.ASSUMPTION, Severity.MEDIUM, assumption, "missing",
                reason="Assumption is explicit in left model but absent in right model.",
            )
        for assumption in _one_sided(right.assumptions, lnorm):
            atoms.add(
                AtomType.ASSUMPTION, Severity.MEDIUM, "missing", assumption,
                reason="Assumption is explicit in right model but absent in left model.",
            )

    @staticmethod
    def _diff_confounders(lview: _CanonicalView, rview: _CanonicalView, atoms: "_AtomCollector") -> None:
        for key in sorted(set(lview.confounders) - set(rview.confounders)):
            atoms.add(
                AtomType.CONFOUNDER, Severity.HIGH, "tracked", "not tracked",
                variable=lview.confounders[key],
                reason="Confounder adjustment set diverges.",
            )
        for key in sorted(set(rview.confounders) - set(lview.confounders)):
            atoms.add(
                AtomType.CONFOUNDER, Severity.HIGH, "not tracked", "tracked",
                variable=rview.confounders[key],
                reason="Confounder adjustment set diverges.",
            )

    # ── Intervention predictions ──────────────────────────────────────

    def _diff_interventions(
        self,
        lview: _CanonicalView,
        rview: _CanonicalView,
        canon: Callable[[str], str],
        outcome: str,
        interventions: tuple[str, ...] | list[str],
        atoms: "_AtomCollector",
    ) -> None:
        settings = self.settings
        depth = settings.max_propagation_depth
        requested = dict.fromkeys(
            sanitize_text(i) for i in interventions if sanitize_text(i)
        )

        for intervention in requested:
            target, goal = canon(intervention), canon(outcome)
            left_effect = intervention_effect(lview.canonical_edges, target, goal, depth)
            right_effect = intervention_effect(rview.canonical_edges, target, goal, depth)
            delta = abs(left_effect - right_effect)

            if delta <= settings.intervention_delta_threshold:
                continue

            severity = Severity.HIGH if delta > settings.high_severity_delta else Severity.MEDIUM
            atoms.add(
                AtomType.INTERVENTION, severity,
                f"{left_effect:.3f}", f"{right_effect:.3f}",
                variable=intervention,
                reason=f"Predicted do({intervention}) response differs for outcome {outcome}.",
            )

            if delta >= settings.counterfactual_delta_threshold:
                atoms.add(
                    AtomType.COUNTERFACTUAL, severity,
                    f"Without {intervention}, effect~{-left_effect + 0.0:.3f}",
                    f"Without {intervention}, effect~{-right_effect + 0.0:.3f}",
                    variable=intervention,
                    reason="Counterfactual necessity judgments diverge between models.",
                )


class _AtomCollector:
    """Builds atoms with the epistemic weights both models imply."""

    def __init__(
        self,
        settings: DisagreementSettings,
        left_evidence: float,
        right_evidence: float,
    ) -> None:
        self.settings = settings
        self.left_evidence = left_evidence
        self.right_evidence = right_evidence
        self.atoms: list[DisagreementAtom] = []

    def add(
        self,
        atom_type: AtomType,
        severity: Severity,
        left_value: str,
        right_value: str,
        *,
        reason: str,
        edge: EdgeRef | None = None,
        variable: str | None = None,
    ) -> None:
        self.atoms.append(DisagreementAtom(
            type=atom_type,
            severity=severity,
            left_value=left_value,
            right_value=right_value,
            edge=edge,
            variable=variable,
            reason=reason,
            epistemic_weight=build_epistemic(
                atom_type, self.left_evidence, self.right_evidence, self.settings,
            ),
        ))


def _canonical_view(model: ResolvedModel, canon: Callable[[str], str]) -> _CanonicalView:
    edges: dict[str, CausalEdge] = {}
    directed: dict[tuple[str, str], CausalEdge] = {}
    canonical: list[CausalEdge] = []
    for edge in model.edges:
        source, target = canon(edge.source), canon(edge.target)
        if (source, target) in directed:
            continue
        edges[f"{source}->{target}"] = edge
        directed[(source, target)] = edge
        canonical.append(CausalEdge(source=source, target=target, sign=edge.sign))

    confounders: dict[str, str] = {}
    for confounder in model.confounders:
        confounders.setdefault(canon(model.resolve_key(confounder)), confounder)

    return _CanonicalView(
        model=model,
        edges=edges,
        canonical_edges=tuple(canonical),
        directed=directed,
        confounders=confounders,
    )


def _pairs(view: _CanonicalView) -> dict[tuple[str, str], set[tuple[str, str]]]:
    pairs: dict[tuple[str, str], set[tuple[str, str]]] = {}
    for source, target in view.directed:
        pair = (source, target) if source <= target else (target, source)
        pairs.setdefault(pair, set()).add((source, target))
    return pairs


def _one_sided(values: tuple[str, ...], other: set[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        key = normalize_token(value)
        if key in other or key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result
