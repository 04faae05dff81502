"""
Structural causal model inputs, resolution and alignment.

Raw model descriptions (registry rows or inline JSON) are normalized once,
by the resolver, into a ``ResolvedModel`` that every other component
consumes.
"""

from causalprobe.scm.alignment import (
    AlignmentResult,
    MatchKind,
    OntologyVariable,
    VariableAlignment,
    VariableOntology,
    align_variables,
)
from causalprobe.scm.models import (
    CausalEdge,
    EdgeSign,
    InlineSpec,
    ModelInfo,
    ModelRef,
    ModelVersionRecord,
    NodeInfo,
    ResolvedModel,
)
from causalprobe.scm.registry import InMemoryModelRegistry, ModelRegistry, load_registry
from causalprobe.scm.resolver import ModelResolver, parse_evidence_weight, resolve_spec

__all__ = [
    "AlignmentResult",
    "MatchKind",
    "OntologyVariable",
    "VariableAlignment",
    "VariableOntology",
    "align_variables",
    "CausalEdge",
    "EdgeSign",
    "InlineSpec",
    "ModelInfo",
    "ModelRef",
    "ModelVersionRecord",
    "NodeInfo",
    "ResolvedModel",
    "InMemoryModelRegistry",
    "ModelRegistry",
    "load_registry",
    "ModelResolver",
    "parse_evidence_weight",
    "resolve_spec",
]
