"""
Tests for model resolution.

These tests verify:
- Name normalization and humanization
- Node shape parsing (strings and mappings)
- Edge endpoint and sign parsing
- Malformed entries are skipped, not fatal
- Evidence weight derivation
- Reference resolution through a registry
"""

from __future__ import annotations

from pathlib import Path

import pytest

from causalprobe.config import Config
from causalprobe.exceptions import ModelNotFoundError, ModelReferenceError
from causalprobe.scm import (
    EdgeSign,
    InlineSpec,
    InMemoryModelRegistry,
    ModelInfo,
    ModelRef,
    ModelResolver,
    load_registry,
    parse_evidence_weight,
    resolve_spec,
)
from causalprobe.scm.normalize import (
    humanize_token,
    is_opaque_key,
    normalize_token,
    parse_node_descriptor,
    unique_sorted,
)


def make_spec(**kwargs: object) -> InlineSpec:
    return InlineSpec(**kwargs)


# =============================================================================
# Normalization
# =============================================================================


class TestNormalization:
    """Tests for name normalization helpers."""

    def test_normalize_token_strips_case_and_punctuation(self) -> None:
        assert normalize_token("Blood-Pressure (mmHg)") == "bloodpressuremmhg"

    def test_humanize_snake_kebab_and_camel(self) -> None:
        assert humanize_token("exercise_level") == "Exercise Level"
        assert humanize_token("blood-pressure") == "Blood Pressure"
        assert humanize_token("bloodPressure") == "Blood Pressure"

    def test_humanize_keeps_short_acronyms(self) -> None:
        assert humanize_token("IQ_score") == "IQ Score"

    def test_humanize_empty_is_variable(self) -> None:
        assert humanize_token("  ") == "Variable"

    def test_opaque_keys(self) -> None:
        assert is_opaque_key("X")
        assert is_opaque_key("ses")
        assert is_opaque_key("blood_pressure")
        assert not is_opaque_key("Exercise")
        assert not is_opaque_key("Blood Pressure")

    def test_unique_sorted(self) -> None:
        assert unique_sorted(["b", "  a ", "b", "", "a"]) == ["a", "b"]


class TestNodeDescriptor:
    """Tests for the single node-parsing function."""

    def test_plain_string(self) -> None:
        descriptor = parse_node_descriptor("exercise_level")
        assert descriptor is not None
        assert descriptor.key == "exercise_level"
        assert descriptor.display_name == "Exercise Level"
        assert descriptor.has_rich_display is False

    def test_mapping_key_and_display_precedence(self) -> None:
        descriptor = parse_node_descriptor(
            {"id": "bp", "name": "blood_pressure", "label": "Blood pressure"}
        )
        assert descriptor is not None
        assert descriptor.key == "bp"
        assert descriptor.display_name == "Blood pressure"
        assert descriptor.has_rich_display is True
        assert "blood_pressure" in descriptor.aliases

    def test_name_only_mapping(self) -> None:
        descriptor = parse_node_descriptor({"name": "Income"})
        assert descriptor is not None
        assert descriptor.key == "Income"
        assert descriptor.has_rich_display is True

    @pytest.mark.parametrize("raw", [None, 42, {}, {"id": "   "}, ""])
    def test_malformed_returns_none(self, raw: object) -> None:
        assert parse_node_descriptor(raw) is None


# =============================================================================
# resolve_spec
# =============================================================================


class TestResolveSpec:
    """Tests for inline spec normalization."""

    def test_nodes_sorted_with_display_names(self) -> None:
        model = resolve_spec(make_spec(nodes=["exercise_level", "Blood Pressure"]))

        assert model.node_keys == ["Blood Pressure", "exercise_level"]
        assert model.display_name("exercise_level") == "Exercise Level"
        assert model.display_name("Blood Pressure") == "Blood Pressure"

    def test_edges_resolve_through_aliases(self) -> None:
        model = resolve_spec(make_spec(
            nodes=[{"id": "bp", "name": "blood_pressure", "label": "Blood pressure"}],
            edges=[{"from": "blood_pressure", "to": "stroke"}],
        ))

        assert [(e.source, e.target) for e in model.edges] == [("bp", "stroke")]
        assert model.node_keys == ["bp", "stroke"]

    def test_source_target_keys_accepted(self) -> None:
        model = resolve_spec(make_spec(edges=[{"source": "A", "target": "B"}]))
        assert model.edges[0].key == "A=>B"

    def test_rich_display_promoted_from_edge_endpoint(self) -> None:
        model = resolve_spec(make_spec(
            nodes=["x"],
            edges=[{"from": {"id": "x", "label": "Dose"}, "to": "y"}],
        ))
        assert model.display_name("x") == "Dose"

    def test_rich_display_not_replaced_by_humanized(self) -> None:
        model = resolve_spec(make_spec(
            nodes=[{"id": "x", "label": "Dose"}],
            edges=[{"from": "x", "to": "y"}],
        ))
        assert model.display_name("x") == "Dose"

    def test_sign_parsing(self) -> None:
        model = resolve_spec(make_spec(edges=[
            {"from": "A", "to": "B", "sign": "-"},
            {"from": "B", "to": "C", "polarity": -0.4},
            {"from": "C", "to": "D", "sign": "negative"},
            {"from": "D", "to": "E"},
            {"from": "E", "to": "F", "sign": "weird"},
        ]))
        signs = {e.key: e.sign for e in model.edges}
        assert signs["A=>B"] is EdgeSign.NEGATIVE
        assert signs["B=>C"] is EdgeSign.NEGATIVE
        assert signs["C=>D"] is EdgeSign.NEGATIVE
        assert signs["D=>E"] is EdgeSign.POSITIVE
        assert signs["E=>F"] is EdgeSign.POSITIVE

    def test_malformed_entries_skipped(self) -> None:
        model = resolve_spec(make_spec(
            nodes=[None, 42, {}, "A"],
            edges=["bad", {"from": "A"}, {"from": "A", "to": "B"}],
        ))
        assert model.node_keys == ["A", "B"]
        assert len(model.edges) == 1

    def test_duplicate_edges_keep_first(self) -> None:
        model = resolve_spec(make_spec(edges=[
            {"from": "A", "to": "B", "sign": "negative"},
            {"from": "A", "to": "B", "sign": "positive"},
        ]))
        assert len(model.edges) == 1
        assert model.edges[0].sign is EdgeSign.NEGATIVE

    def test_edges_sorted_by_key(self) -> None:
        model = resolve_spec(make_spec(edges=[
            {"from": "C", "to": "D"},
            {"from": "A", "to": "B"},
        ]))
        assert [e.key for e in model.edges] == ["A=>B", "C=>D"]

    def test_assumptions_and_confounders_deduped_sorted(self) -> None:
        model = resolve_spec(make_spec(
            assumptions=["No reverse causation", {"description": "Stable units"}, "No reverse causation"],
            confounders=[{"name": "income"}, "age", "income"],
        ))
        assert model.assumptions == ("No reverse causation", "Stable units")
        assert model.confounders == ("age", "income")

    def test_resolve_key_uses_alias_table(self) -> None:
        model = resolve_spec(make_spec(nodes=[{"id": "ses", "label": "Socioeconomic Status"}]))
        assert model.resolve_key("socioeconomic status") == "ses"
        assert model.resolve_key("unknown thing") == "unknown thing"


class TestEvidenceWeight:
    """Tests for evidence weight derivation."""

    def test_percentage_divided(self) -> None:
        assert parse_evidence_weight({"evidenceScore": 80}) == pytest.approx(0.8)

    def test_snake_case_alias(self) -> None:
        assert parse_evidence_weight({"data_quality": 0.3}) == pytest.approx(0.3)

    def test_priority_order(self) -> None:
        assert parse_evidence_weight({"identifiability": 0.1, "evidenceScore": 0.9}) == pytest.approx(0.9)

    def test_clamped(self) -> None:
        assert parse_evidence_weight({"identifiability": 150}) == 1.0
        assert parse_evidence_weight({"evidenceScore": -2}) == 0.0

    def test_default_when_missing(self) -> None:
        assert parse_evidence_weight({}) == 0.55
        assert parse_evidence_weight({"evidenceScore": True}) == 0.55
        assert parse_evidence_weight({"evidenceScore": "high"}) == 0.55

    def test_spec_validation_flows_into_model(self) -> None:
        model = resolve_spec(make_spec(validation={"evidenceScore": 70}))
        assert model.evidence_weight == pytest.approx(0.7)


# =============================================================================
# ModelResolver
# =============================================================================


def make_registry() -> InMemoryModelRegistry:
    registry = InMemoryModelRegistry()
    info = ModelInfo(model_key="health", domain="medicine")
    registry.register(info, "v1", make_spec(edges=[{"from": "A", "to": "B"}]))
    registry.register(info, "v2", make_spec(edges=[{"from": "B", "to": "A"}]))
    return registry


class TestModelResolver:
    """Tests for reference and inline resolution."""

    def test_resolves_current_version(self) -> None:
        model = ModelResolver(make_registry(), Config()).resolve(ModelRef(model_key="health"))
        assert model.identity == "health@v2"
        assert model.domain == "medicine"

    def test_resolves_explicit_version(self) -> None:
        model = ModelResolver(make_registry(), Config()).resolve(ModelRef.parse("health@v1"))
        assert model.edges[0].key == "A=>B"

    def test_inline_spec_wins(self) -> None:
        spec = make_spec(nodes=["Only"])
        model = ModelResolver(make_registry(), Config()).resolve(ModelRef(model_key="health"), spec)
        assert model.identity == "inline@inline"
        assert model.node_keys == ["Only"]

    def test_unknown_reference_raises(self) -> None:
        resolver = ModelResolver(make_registry(), Config())
        with pytest.raises(ModelNotFoundError) as exc_info:
            resolver.resolve(ModelRef.parse("health@v9"))
        assert exc_info.value.to_dict()["model_key"] == "health"
        assert "health@v9" in exc_info.value.message

    def test_missing_input_raises(self) -> None:
        with pytest.raises(ModelReferenceError):
            ModelResolver(make_registry(), Config()).resolve()

    def test_reference_without_registry_raises(self) -> None:
        with pytest.raises(ModelReferenceError):
            ModelResolver(None, Config()).resolve(ModelRef(model_key="health"))

    def test_model_ref_parse(self) -> None:
        ref = ModelRef.parse("health@v2")
        assert ref.model_key == "health"
        assert ref.version == "v2"
        assert str(ModelRef.parse("health")) == "health"


class TestPayloadShapes:
    """Tests for registry-style payloads."""

    def test_dag_json_shape(self) -> None:
        spec = InlineSpec.from_payload({
            "dagJson": {"nodes": ["A", "B"], "edges": [{"from": "A", "to": "B"}]},
            "assumptionsJson": ["Stable units"],
            "confoundersJson": ["age"],
            "validationJson": {"evidenceScore": 60},
        })
        model = resolve_spec(spec)
        assert model.node_keys == ["A", "B"]
        assert model.assumptions == ("Stable units",)
        assert model.confounders == ("age",)
        assert model.evidence_weight == pytest.approx(0.6)

    def test_non_mapping_dag_ignored(self) -> None:
        spec = InlineSpec.from_payload({"dagJson": "garbage", "validationJson": []})
        assert spec.nodes == []
        assert spec.validation == {}

    def test_load_registry_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "registry.yaml"
        path.write_text(
            "ontology:\n"
            "  - {id: exercise, canonical_name: Exercise, aliases: [workout]}\n"
            "models:\n"
            "  - model_key: health\n"
            "    domain: medicine\n"
            "    versions:\n"
            "      - version: v1\n"
            "        current: true\n"
            "        nodes: [Exercise, Health]\n"
            "        edges: [{from: Exercise, to: Health}]\n"
        )
        registry = load_registry(path)

        assert len(registry) == 1
        assert len(registry.get_variable_ontology()) == 1
        record = registry.get_model_version("health")
        assert record is not None
        assert record.version == "v1"
        assert record.model.domain == "medicine"
