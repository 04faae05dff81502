"""
Stress-Test Preset Generator.

Suggests structural edits to a single model that are worth trying when
probing how fragile its conclusions are.  Four operations exist:

- challenge_assumption: weaken a stated assumption or confounder control
- add_edge: inject a plausible missing pathway (ranked, outcome-first)
- remove_edge: delete an existing pathway
- remove_variable: delete a variable and its incident links

Two modes pick from these:

- quick_estimate: challenge_assumption, add_edge
- full_recompute: all four

Every generator is deterministic and capped; degenerate graphs give empty
lists rather than errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from causalprobe.config import Config, PresetSettings, get_config
from causalprobe.scm.models import CausalEdge, ResolvedModel
from causalprobe.scm.normalize import edge_key, humanize_token, normalize_token, unique_sorted

logger = logging.getLogger(__name__)


class PresetMode(str, Enum):
    """How much recomputation a stress test is allowed."""

    QUICK_ESTIMATE = "quick_estimate"
    FULL_RECOMPUTE = "full_recompute"

    @classmethod
    def from_string(cls, value: str) -> "PresetMode":
        """Accept the full names and the short forms "quick" / "full"."""
        lowered = value.strip().lower()
        shorthand = {"quick": cls.QUICK_ESTIMATE, "full": cls.FULL_RECOMPUTE}
        if lowered in shorthand:
            return shorthand[lowered]
        return cls(lowered)


class StressOperation(str, Enum):
    """Kinds of structural edit."""

    CHALLENGE_ASSUMPTION = "challenge_assumption"
    ADD_EDGE = "add_edge"
    REMOVE_EDGE = "remove_edge"
    REMOVE_VARIABLE = "remove_variable"


MODE_OPERATIONS: dict[PresetMode, tuple[StressOperation, ...]] = {
    PresetMode.QUICK_ESTIMATE: (
        StressOperation.CHALLENGE_ASSUMPTION,
        StressOperation.ADD_EDGE,
    ),
    PresetMode.FULL_RECOMPUTE: (
        StressOperation.CHALLENGE_ASSUMPTION,
        StressOperation.ADD_EDGE,
        StressOperation.REMOVE_EDGE,
        StressOperation.REMOVE_VARIABLE,
    ),
}

FALLBACK_ASSUMPTIONS = (
    "Confounder control is incomplete",
    "Measurement error in key confounders is underestimated",
    "Selection effects violate exchangeability assumptions",
)

EXPECTED_EFFECTS: dict[StressOperation, str] = {
    StressOperation.CHALLENGE_ASSUMPTION: (
        "Tests whether epistemic assumptions alter propagated consequence estimates."
    ),
    StressOperation.ADD_EDGE: (
        "Tests whether introducing a new structural pathway changes downstream reachability."
    ),
    StressOperation.REMOVE_EDGE: (
        "Tests whether removing a pathway weakens downstream causal connectivity."
    ),
    StressOperation.REMOVE_VARIABLE: (
        "Tests whether deleting a variable collapses dependencies in the local graph."
    ),
}


class AddEdgeCategory(str, Enum):
    """Why an add_edge candidate was suggested."""

    CONFOUNDER_TO_OUTCOME = "confounder_to_outcome"
    TREATMENT_TO_OUTCOME = "treatment_to_outcome"
    HIGH_OUTDEGREE_TO_OUTCOME = "high_outdegree_to_outcome"
    STRUCTURAL_GAP = "structural_gap"


# (rationale, expected effect) per category
ADD_EDGE_TEXT: dict[AddEdgeCategory, tuple[str, str]] = {
    AddEdgeCategory.CONFOUNDER_TO_OUTCOME: (
        "Suggested because the source looks like a confounder that may directly bias the outcome.",
        "Checks whether confounding pathways become newly reachable at the outcome node.",
    ),
    AddEdgeCategory.TREATMENT_TO_OUTCOME: (
        "Suggested because the source appears intervention-like and may directly influence the outcome.",
        "Checks for direct treatment-to-outcome reachability without intermediary mediators.",
    ),
    AddEdgeCategory.HIGH_OUTDEGREE_TO_OUTCOME: (
        "Suggested because the source is already structurally central and may plausibly bridge to the outcome.",
        "Checks whether a central upstream node unlocks broader downstream propagation.",
    ),
    AddEdgeCategory.STRUCTURAL_GAP: (
        "Suggested as a structural gap candidate to probe missing mechanism pathways.",
        "Checks whether adding this bridge introduces new downstream paths in graph recompute.",
    ),
}


@dataclass(frozen=True)
class PresetEdit:
    """The concrete edit a preset applies."""

    type: StressOperation
    source: str | None = None
    target: str | None = None
    variable: str | None = None
    assumption: str | None = None

    @property
    def canonical(self) -> str:
        if self.type in (StressOperation.ADD_EDGE, StressOperation.REMOVE_EDGE):
            return f"{self.source or '?'} -> {self.target or '?'}"
        if self.type is StressOperation.REMOVE_VARIABLE:
            return f"remove {self.variable or 'variable'}"
        return self.assumption or "assumption challenge"

    def to_dict(self) -> dict[str, str]:
        data = {"type": self.type.value}
        for name, value in (
            ("from", self.source),
            ("to", self.target),
            ("variable", self.variable),
            ("assumption", self.assumption),
        ):
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class StressTestPreset:
    """
    One suggested stress test.

    Attributes:
        id: ``mode:operation:index``, unique within a catalog.
        mode: Mode the preset belongs to.
        operation: Kind of edit.
        canonical: Machine-readable description of the edit.
        display_label: Human label using display names.
        label: Short label (usually the canonical form).
        description: What the preset does.
        rationale: Why it was suggested.
        expected_effect: What running it is expected to reveal.
        edit: The concrete edit.
    """

    id: str
    mode: PresetMode
    operation: StressOperation
    canonical: str
    display_label: str
    label: str
    description: str
    rationale: str
    expected_effect: str
    edit: PresetEdit

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mode": self.mode.value,
            "operation": self.operation.value,
            "canonical": self.canonical,
            "display_label": self.display_label,
            "label": self.label,
            "description": self.description,
            "rationale": self.rationale,
            "expected_effect": self.expected_effect,
            "edit": self.edit.to_dict(),
        }


def _make_preset(
    mode: PresetMode,
    index: int,
    label: str,
    description: str,
    edit: PresetEdit,
    *,
    display_label: str | None = None,
    rationale: str | None = None,
    expected_effect: str | None = None,
) -> StressTestPreset:
    return StressTestPreset(
        id=f"{mode.value}:{edit.type.value}:{index}",
        mode=mode,
        operation=edit.type,
        canonical=edit.canonical,
        display_label=display_label or label,
        label=label,
        description=description,
        rationale=rationale or description,
        expected_effect=expected_effect or EXPECTED_EFFECTS[edit.type],
        edit=edit,
    )


# ── Graph view ────────────────────────────────────────────────────────


@dataclass
class GraphView:
    """
    Node/edge view of a model used by the generators.

    Confounders are resolved through the model's alias table and become
    nodes; degrees count edges only.
    """

    nodes: list[str]
    edges: tuple[CausalEdge, ...]
    assumptions: tuple[str, ...]
    confounders: list[str]
    outcome: str
    display: dict[str, str] = field(default_factory=dict)
    rich: dict[str, bool] = field(default_factory=dict)
    in_degree: dict[str, int] = field(default_factory=dict)
    out_degree: dict[str, int] = field(default_factory=dict)
    edge_keys: set[str] = field(default_factory=set)

    @classmethod
    def from_model(cls, model: ResolvedModel, settings: PresetSettings) -> "GraphView":
        display = {n.key: n.display_name for n in model.nodes}
        rich = {n.key: n.has_rich_display for n in model.nodes}

        confounders = unique_sorted(model.resolve_key(c) for c in model.confounders)
        for key in confounders:
            display.setdefault(key, humanize_token(key))
            rich.setdefault(key, False)

        nodes = sorted(display)
        outcome = infer_outcome(nodes, display, settings.outcome_tokens)

        in_degree = dict.fromkeys(nodes, 0)
        out_degree = dict.fromkeys(nodes, 0)
        for edge in model.edges:
            out_degree[edge.source] = out_degree.get(edge.source, 0) + 1
            in_degree[edge.target] = in_degree.get(edge.target, 0) + 1

        return cls(
            nodes=nodes,
            edges=model.edges,
            assumptions=model.assumptions,
            confounders=confounders,
            outcome=outcome,
            display=display,
            rich=rich,
            in_degree=in_degree,
            out_degree=out_degree,
            edge_keys={e.key for e in model.edges},
        )

    def display_name(self, node: str) -> str:
        return self.display.get(node) or humanize_token(node)


def infer_outcome(
    nodes: list[str],
    display: dict[str, str],
    tokens: tuple[str, ...] = ("performance", "outcome", "failure", "risk", "harm"),
) -> str:
    """First sorted node whose key or display mentions an outcome token; else the last node."""
    for node in nodes:
        haystacks = (normalize_token(node), normalize_token(display.get(node, "")))
        if any(token in hay for token in tokens for hay in haystacks):
            return node
    return nodes[-1] if nodes else "Outcome"


def is_treatment_like(
    node: str,
    tokens: tuple[str, ...] = ("treat", "intervention", "policy", "action", "dose", "control", "input"),
) -> bool:
    normalized = normalize_token(node)
    return any(token in normalized for token in tokens)


# ── Generators ────────────────────────────────────────────────────────


def challenge_assumption_presets(
    mode: PresetMode,
    view: GraphView,
    settings: PresetSettings,
) -> list[StressTestPreset]:
    """Verbatim assumptions, then confounder templates; generic fallbacks when both are empty."""
    edits: list[tuple[str, str, PresetEdit]] = [
        (
            f"Stress: {assumption}",
            "Challenge this assumption to test fragility under altered epistemic constraints.",
            PresetEdit(StressOperation.CHALLENGE_ASSUMPTION, assumption=assumption),
        )
        for assumption in view.assumptions[: settings.max_verbatim_assumptions]
    ]

    for confounder in view.confounders[: settings.max_confounder_templates]:
        incomplete = f"{confounder} control is incomplete"
        measurement = f"Measurement error in {confounder} is underestimated"
        edits.append((
            incomplete,
            "Probe robustness when confounder control is weakened.",
            PresetEdit(StressOperation.CHALLENGE_ASSUMPTION, assumption=incomplete),
        ))
        edits.append((
            measurement,
            "Probe robustness under underestimated measurement error.",
            PresetEdit(StressOperation.CHALLENGE_ASSUMPTION, assumption=measurement),
        ))

    seen: set[PresetEdit] = set()
    presets: list[StressTestPreset] = []
    for label, description, edit in edits:
        if edit in seen:
            continue
        seen.add(edit)
        presets.append(_make_preset(mode, len(presets), label, description, edit))

    if presets:
        return presets

    return [
        _make_preset(
            mode, index, assumption,
            "Global fallback assumption stress preset.",
            PresetEdit(StressOperation.CHALLENGE_ASSUMPTION, assumption=assumption),
        )
        for index, assumption in enumerate(FALLBACK_ASSUMPTIONS)
    ]


def _classify_add_edge(source: str, target: str, view: GraphView, settings: PresetSettings) -> AddEdgeCategory:
    if target != view.outcome:
        return AddEdgeCategory.STRUCTURAL_GAP
    if source in view.confounders:
        return AddEdgeCategory.CONFOUNDER_TO_OUTCOME
    if is_treatment_like(source, settings.treatment_tokens):
        return AddEdgeCategory.TREATMENT_TO_OUTCOME
    if view.out_degree.get(source, 0) > 0:
        return AddEdgeCategory.HIGH_OUTDEGREE_TO_OUTCOME
    return AddEdgeCategory.STRUCTURAL_GAP


def _add_edge_display(view: GraphView, source: str, target: str) -> str:
    if not view.rich.get(source) and not view.rich.get(target):
        return f"Variable {source} may influence {target}"
    return f"{view.display_name(source)} may influence {view.display_name(target)}"


def _add_edge_preset(
    mode: PresetMode,
    index: int,
    source: str,
    target: str,
    description: str,
    category: AddEdgeCategory,
    view: GraphView,
) -> StressTestPreset:
    rationale, expected = ADD_EDGE_TEXT[category]
    edit = PresetEdit(StressOperation.ADD_EDGE, source=source, target=target)
    return _make_preset(
        mode, index, edit.canonical, description, edit,
        display_label=_add_edge_display(view, source, target),
        rationale=rationale,
        expected_effect=expected,
    )


def add_edge_presets(
    mode: PresetMode,
    view: GraphView,
    settings: PresetSettings,
) -> list[StressTestPreset]:
    """
    Rank every missing ordered pair and keep the top candidates.

    Score: outcome target, confounder source, treatment-like source, plus
    capped out-degree.  Ties break on edge key.
    """
    if len(view.nodes) < 2:
        return []

    candidates: list[tuple[int, str, str, str]] = []
    for source in view.nodes:
        for target in view.nodes:
            if source == target or edge_key(source, target) in view.edge_keys:
                continue
            score = 0
            if target == view.outcome:
                score += settings.outcome_score
            if source in view.confounders:
                score += settings.confounder_score
            if is_treatment_like(source, settings.treatment_tokens):
                score += settings.treatment_score
            score += min(settings.max_outdegree_score, view.out_degree.get(source, 0))
            candidates.append((-score, edge_key(source, target), source, target))

    candidates.sort()
    top = candidates[: settings.max_presets_per_operation]

    if top:
        return [
            _add_edge_preset(
                mode, index, source, target,
                "Inject a plausible causal edge and inspect downstream structural effects.",
                _classify_add_edge(source, target, view, settings),
                view,
            )
            for index, (_, _, source, target) in enumerate(top)
        ]

    # Complete graph: nothing is missing, offer the first pair anyway.
    return [
        _add_edge_preset(
            mode, 0, view.nodes[0], view.nodes[1],
            "Fallback add-edge preset generated from available nodes.",
            AddEdgeCategory.STRUCTURAL_GAP,
            view,
        )
    ]


def remove_edge_presets(
    mode: PresetMode,
    view: GraphView,
    settings: PresetSettings,
) -> list[StressTestPreset]:
    """Existing edges, outcome-bound first, then confounder-sourced, then by edge key."""
    ranked = sorted(
        view.edges,
        key=lambda e: (e.target != view.outcome, e.source not in view.confounders, e.key),
    )
    return [
        _make_preset(
            mode, index, f"{edge.source} -> {edge.target}",
            "Remove an existing edge to test whether key pathways collapse.",
            PresetEdit(StressOperation.REMOVE_EDGE, source=edge.source, target=edge.target),
        )
        for index, edge in enumerate(ranked[: settings.max_presets_per_operation])
    ]


def remove_variable_presets(
    mode: PresetMode,
    view: GraphView,
    settings: PresetSettings,
) -> list[StressTestPreset]:
    """Confounders first, then mediators, then everything else; each group sorted."""
    if not view.nodes:
        return []

    confounders = set(view.confounders)
    mediators = [
        node for node in view.nodes
        if node not in confounders
        and node != view.outcome
        and view.in_degree.get(node, 0) > 0
        and view.out_degree.get(node, 0) > 0
    ]
    others = [n for n in view.nodes if n not in confounders and n not in mediators]

    ordered = list(dict.fromkeys([*sorted(confounders), *mediators, *others]))
    return [
        _make_preset(
            mode, index, node,
            "Remove a variable and its incident links to stress structural dependence.",
            PresetEdit(StressOperation.REMOVE_VARIABLE, variable=node),
        )
        for index, node in enumerate(ordered[: settings.max_presets_per_operation])
    ]


GENERATORS = {
    StressOperation.CHALLENGE_ASSUMPTION: challenge_assumption_presets,
    StressOperation.ADD_EDGE: add_edge_presets,
    StressOperation.REMOVE_EDGE: remove_edge_presets,
    StressOperation.REMOVE_VARIABLE: remove_variable_presets,
}


# ── Public API ────────────────────────────────────────────────────────


def operations_for_mode(mode: PresetMode) -> list[StressOperation]:
    return list(MODE_OPERATIONS[mode])


def generate_presets(
    model: ResolvedModel,
    mode: PresetMode,
    config: Config | None = None,
) -> dict[StressOperation, list[StressTestPreset]]:
    """Presets for every operation the mode allows, keyed by operation."""
    settings = (config or get_config()).presets
    view = GraphView.from_model(model, settings)
    presets = {
        operation: GENERATORS[operation](mode, view, settings)
        for operation in MODE_OPERATIONS[mode]
    }
    logger.debug(
        "Generated %s presets for %s: %s",
        mode.value, model.identity,
        {op.value: len(items) for op, items in presets.items()},
    )
    return presets


PresetCatalog = dict[PresetMode, dict[StressOperation, list[StressTestPreset]]]


def build_preset_catalog(model: ResolvedModel, config: Config | None = None) -> PresetCatalog:
    """Presets for both modes."""
    return {mode: generate_presets(model, mode, config) for mode in PresetMode}


def available_operations(catalog: PresetCatalog, mode: PresetMode) -> list[StressOperation]:
    """Operations of ``mode`` that have at least one preset in ``catalog``."""
    by_operation = catalog.get(mode, {})
    return [op for op in operations_for_mode(mode) if by_operation.get(op)]
