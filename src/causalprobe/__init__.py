"""causalprobe - Causal model disagreement detection and stress testing."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from causalprobe.exceptions import (
    CausalProbeError,
    ConfigurationError,
    LifecycleTransitionError,
    ModelNotFoundError,
    ModelReferenceError,
    ResolutionError,
)

from causalprobe.config import (
    Config,
    get_config,
    reset_config,
)

# Model inputs and resolution
from causalprobe.scm import (
    CausalEdge,
    EdgeSign,
    InlineSpec,
    InMemoryModelRegistry,
    ModelInfo,
    ModelRef,
    ModelRegistry,
    ModelResolver,
    OntologyVariable,
    ResolvedModel,
    VariableOntology,
    load_registry,
)

# Public API exports
from causalprobe.disagreement import (
    AtomType,
    CompareRequest,
    DisagreementAtom,
    DisagreementDetector,
    DisagreementReport,
    Severity,
)
from causalprobe.audit import ComparisonAudit, render_audit_report
from causalprobe.presets import (
    PresetMode,
    StressOperation,
    StressTestPreset,
    available_operations,
    build_preset_catalog,
    generate_presets,
    operations_for_mode,
)
from causalprobe.lifecycle import (
    AuditTrigger,
    Hypothesis,
    HypothesisAuditEvent,
    HypothesisState,
    ValidationResult,
    ensure_hypothesis_lifecycle,
    mark_counterfactual_failure,
    mark_retracted,
    select_recommendations,
)
from causalprobe.oracle import (
    Observation,
    OracleDetector,
    OracleState,
    OracleTransition,
    process_observation,
)

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "CausalProbeError",
    "ConfigurationError",
    "LifecycleTransitionError",
    "ModelNotFoundError",
    "ModelReferenceError",
    "ResolutionError",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Models
    "CausalEdge",
    "EdgeSign",
    "InlineSpec",
    "InMemoryModelRegistry",
    "ModelInfo",
    "ModelRef",
    "ModelRegistry",
    "ModelResolver",
    "OntologyVariable",
    "ResolvedModel",
    "VariableOntology",
    "load_registry",
    # Disagreement
    "AtomType",
    "CompareRequest",
    "DisagreementAtom",
    "DisagreementDetector",
    "DisagreementReport",
    "Severity",
    "ComparisonAudit",
    "render_audit_report",
    # Presets
    "PresetMode",
    "StressOperation",
    "StressTestPreset",
    "available_operations",
    "build_preset_catalog",
    "generate_presets",
    "operations_for_mode",
    # Lifecycle
    "AuditTrigger",
    "Hypothesis",
    "HypothesisAuditEvent",
    "HypothesisState",
    "ValidationResult",
    "ensure_hypothesis_lifecycle",
    "mark_counterfactual_failure",
    "mark_retracted",
    "select_recommendations",
    # Oracle
    "Observation",
    "OracleDetector",
    "OracleState",
    "OracleTransition",
    "process_observation",
]
