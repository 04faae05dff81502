"""
Tests for stress-test preset generation.

These tests verify:
- Mode -> operation mapping
- challenge_assumption sources and generic fallback
- add_edge ranking, categories and caps
- remove_edge / remove_variable ordering
- Degenerate graphs give empty lists, never errors
"""

from __future__ import annotations

from typing import Any

import pytest

from causalprobe.config import Config, PresetSettings
from causalprobe.presets import (
    FALLBACK_ASSUMPTIONS,
    AddEdgeCategory,
    ADD_EDGE_TEXT,
    GraphView,
    PresetMode,
    StressOperation,
    available_operations,
    build_preset_catalog,
    generate_presets,
    infer_outcome,
    is_treatment_like,
    operations_for_mode,
)
from causalprobe.scm import InlineSpec, ResolvedModel, resolve_spec


def make_model(
    nodes: list[Any] | None = None,
    edges: list[tuple[str, str]] | None = None,
    **kwargs: Any,
) -> ResolvedModel:
    return resolve_spec(InlineSpec(
        nodes=nodes or [],
        edges=[{"from": s, "to": t} for s, t in edges or []],
        **kwargs,
    ))


def treatment_model() -> ResolvedModel:
    return make_model(
        ["treatment", "mediator", "outcome"],
        [("treatment", "mediator"), ("mediator", "outcome")],
        confounders=["age"],
    )


def generate(model: ResolvedModel, mode: PresetMode = PresetMode.FULL_RECOMPUTE):
    return generate_presets(model, mode, Config())


# =============================================================================
# Modes
# =============================================================================


class TestModes:

    def test_quick_operations(self) -> None:
        assert operations_for_mode(PresetMode.QUICK_ESTIMATE) == [
            StressOperation.CHALLENGE_ASSUMPTION,
            StressOperation.ADD_EDGE,
        ]

    def test_full_operations(self) -> None:
        assert len(operations_for_mode(PresetMode.FULL_RECOMPUTE)) == 4

    @pytest.mark.parametrize("raw,expected", [
        ("quick", PresetMode.QUICK_ESTIMATE),
        ("FULL", PresetMode.FULL_RECOMPUTE),
        ("quick_estimate", PresetMode.QUICK_ESTIMATE),
        (" full_recompute ", PresetMode.FULL_RECOMPUTE),
    ])
    def test_from_string(self, raw: str, expected: PresetMode) -> None:
        assert PresetMode.from_string(raw) is expected

    def test_from_string_rejects_unknown(self) -> None:
        with pytest.raises(ValueError):
            PresetMode.from_string("exhaustive")

    def test_quick_generates_only_its_operations(self) -> None:
        presets = generate(treatment_model(), PresetMode.QUICK_ESTIMATE)
        assert list(presets) == operations_for_mode(PresetMode.QUICK_ESTIMATE)

    def test_catalog_covers_both_modes(self) -> None:
        catalog = build_preset_catalog(treatment_model(), Config())
        assert set(catalog) == {PresetMode.QUICK_ESTIMATE, PresetMode.FULL_RECOMPUTE}
        assert available_operations(catalog, PresetMode.FULL_RECOMPUTE) == operations_for_mode(
            PresetMode.FULL_RECOMPUTE
        )

    def test_available_operations_skips_empty(self) -> None:
        catalog = build_preset_catalog(make_model(["Solo"]), Config())
        assert available_operations(catalog, PresetMode.FULL_RECOMPUTE) == [
            StressOperation.CHALLENGE_ASSUMPTION,
            StressOperation.REMOVE_VARIABLE,
        ]


# =============================================================================
# Graph view helpers
# =============================================================================


class TestGraphView:

    def test_outcome_by_token(self) -> None:
        view = GraphView.from_model(treatment_model(), PresetSettings())
        assert view.outcome == "outcome"

    def test_outcome_token_in_display_name(self) -> None:
        nodes = ["a", "b", "c"]
        display = {"a": "Dose", "b": "Failure Rate", "c": "Other"}
        assert infer_outcome(nodes, display) == "b"

    def test_outcome_falls_back_to_last_node(self) -> None:
        assert infer_outcome(["A", "B"], {}) == "B"
        assert infer_outcome([], {}) == "Outcome"

    def test_confounders_become_nodes(self) -> None:
        view = GraphView.from_model(treatment_model(), PresetSettings())
        assert view.nodes == ["age", "mediator", "outcome", "treatment"]
        assert view.display["age"] == "Age"
        assert view.rich["age"] is False

    def test_confounder_resolved_through_aliases(self) -> None:
        model = make_model([{"id": "ses", "label": "Socioeconomic Status"}], confounders=["socioeconomic status"])
        view = GraphView.from_model(model, PresetSettings())
        assert view.confounders == ["ses"]
        assert view.nodes == ["ses"]

    def test_treatment_like(self) -> None:
        assert is_treatment_like("Treatment_Arm")
        assert is_treatment_like("policyChange")
        assert not is_treatment_like("age")


# =============================================================================
# challenge_assumption
# =============================================================================


class TestChallengeAssumption:

    def test_fallback_is_exactly_three(self) -> None:
        presets = generate(make_model(["A", "B"], [("A", "B")]))[StressOperation.CHALLENGE_ASSUMPTION]
        assert [p.label for p in presets] == list(FALLBACK_ASSUMPTIONS)
        assert all(p.description == "Global fallback assumption stress preset." for p in presets)

    def test_verbatim_assumptions_capped(self) -> None:
        model = make_model(["A"], assumptions=["a1", "a2", "a3", "a4", "a5"])
        presets = generate(model)[StressOperation.CHALLENGE_ASSUMPTION]
        assert [p.label for p in presets] == ["Stress: a1", "Stress: a2", "Stress: a3"]
        assert presets[0].edit.assumption == "a1"
        assert presets[0].canonical == "a1"

    def test_confounder_templates(self) -> None:
        presets = generate(treatment_model())[StressOperation.CHALLENGE_ASSUMPTION]
        assert [p.label for p in presets] == [
            "age control is incomplete",
            "Measurement error in age is underestimated",
        ]

    def test_assumptions_before_confounders(self) -> None:
        model = make_model(["A"], assumptions=["Stable units"], confounders=["income"])
        presets = generate(model)[StressOperation.CHALLENGE_ASSUMPTION]
        assert presets[0].label == "Stress: Stable units"
        assert len(presets) == 3

    def test_duplicate_edits_removed(self) -> None:
        model = make_model(["A"], assumptions=["income control is incomplete"], confounders=["income"])
        presets = generate(model)[StressOperation.CHALLENGE_ASSUMPTION]
        edits = [p.edit.assumption for p in presets]
        assert edits.count("income control is incomplete") == 1
        assert len(presets) == 2


# =============================================================================
# add_edge
# =============================================================================


class TestAddEdge:

    def test_ranking(self) -> None:
        presets = generate(treatment_model())[StressOperation.ADD_EDGE]
        assert [p.canonical for p in presets[:3]] == [
            "age -> outcome",
            "treatment -> outcome",
            "age -> mediator",
        ]

    def test_rationale_by_category(self) -> None:
        presets = generate(treatment_model())[StressOperation.ADD_EDGE]
        expected = [
            AddEdgeCategory.CONFOUNDER_TO_OUTCOME,
            AddEdgeCategory.TREATMENT_TO_OUTCOME,
            AddEdgeCategory.STRUCTURAL_GAP,
        ]
        for preset, category in zip(presets, expected):
            rationale, effect = ADD_EDGE_TEXT[category]
            assert preset.rationale == rationale
            assert preset.expected_effect == effect

    def test_capped_at_eight(self) -> None:
        model = make_model([f"N{i}" for i in range(6)])
        presets = generate(model)[StressOperation.ADD_EDGE]
        assert len(presets) == 8

    def test_cap_follows_config(self) -> None:
        config = Config(presets=PresetSettings(max_presets_per_operation=2))
        presets = generate_presets(treatment_model(), PresetMode.QUICK_ESTIMATE, config)
        assert len(presets[StressOperation.ADD_EDGE]) == 2

    def test_existing_edges_not_suggested(self) -> None:
        presets = generate(treatment_model())[StressOperation.ADD_EDGE]
        canonicals = {p.canonical for p in presets}
        assert "treatment -> mediator" not in canonicals
        assert "mediator -> outcome" not in canonicals

    def test_complete_graph_falls_back(self) -> None:
        presets = generate(make_model(["A", "B"], [("A", "B"), ("B", "A")]))[StressOperation.ADD_EDGE]
        assert len(presets) == 1
        assert presets[0].canonical == "A -> B"
        assert presets[0].description == "Fallback add-edge preset generated from available nodes."

    def test_single_node_has_no_candidates(self) -> None:
        assert generate(make_model(["Solo"]))[StressOperation.ADD_EDGE] == []

    def test_display_label_for_opaque_keys(self) -> None:
        presets = generate(make_model(["X", "Y"]))[StressOperation.ADD_EDGE]
        assert presets[0].display_label.startswith("Variable ")

    def test_display_label_uses_rich_names(self) -> None:
        model = make_model([{"id": "x", "label": "Dose"}, {"id": "y", "label": "Outcome"}])
        presets = generate(model)[StressOperation.ADD_EDGE]
        assert presets[0].display_label == "Dose may influence Outcome"

    def test_ids_are_unique(self) -> None:
        presets = generate(treatment_model())[StressOperation.ADD_EDGE]
        assert presets[0].id == "full_recompute:add_edge:0"
        assert len({p.id for p in presets}) == len(presets)


# =============================================================================
# remove_edge / remove_variable
# =============================================================================


class TestRemoveOperations:

    def test_remove_edge_outcome_first(self) -> None:
        presets = generate(treatment_model())[StressOperation.REMOVE_EDGE]
        assert [p.canonical for p in presets] == [
            "mediator -> outcome",
            "treatment -> mediator",
        ]
        assert presets[0].edit.to_dict() == {
            "type": "remove_edge", "from": "mediator", "to": "outcome",
        }

    def test_remove_edge_empty_without_edges(self) -> None:
        assert generate(make_model(["A", "B"]))[StressOperation.REMOVE_EDGE] == []

    def test_remove_variable_order(self) -> None:
        presets = generate(treatment_model())[StressOperation.REMOVE_VARIABLE]
        assert [p.edit.variable for p in presets] == ["age", "mediator", "outcome", "treatment"]
        assert presets[0].canonical == "remove age"

    def test_remove_variable_empty_model(self) -> None:
        assert generate(make_model())[StressOperation.REMOVE_VARIABLE] == []

    def test_deterministic(self) -> None:
        first = [p.to_dict() for items in generate(treatment_model()).values() for p in items]
        second = [p.to_dict() for items in generate(treatment_model()).values() for p in items]
        assert first == second
