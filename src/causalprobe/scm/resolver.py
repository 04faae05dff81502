"""
Model Resolver: turns a reference or an inline spec into a ResolvedModel.

Both input routes end in the same ``resolve_spec`` call, so registry rows
and inline JSON are normalized identically.  Malformed node/edge entries
are skipped (partial structure is still useful signal); an unresolvable
reference raises ``ModelNotFoundError``.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from causalprobe.config import Config, get_config
from causalprobe.exceptions import ModelNotFoundError, ModelReferenceError
from causalprobe.scm.models import (
    CausalEdge,
    EdgeSign,
    InlineSpec,
    ModelRef,
    NodeInfo,
    ResolvedModel,
)
from causalprobe.scm.normalize import (
    humanize_token,
    normalize_token,
    parse_node_descriptor,
    read_string,
    sanitize_text,
    unique_sorted,
)
from causalprobe.scm.registry import ModelRegistry

logger = logging.getLogger(__name__)

EVIDENCE_FIELDS = (
    ("evidenceScore", "evidence_score"),
    ("dataQuality", "data_quality"),
    ("identifiability",),
)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def parse_evidence_weight(validation: Mapping[str, Any], default: float = 0.55) -> float:
    """
    Derive an evidence weight in [0, 1] from validation metadata.

    The first numeric field wins; percentages (> 1) are divided by 100.
    """
    for names in EVIDENCE_FIELDS:
        for name in names:
            candidate = validation.get(name)
            if isinstance(candidate, (int, float)) and not isinstance(candidate, bool):
                value = float(candidate)
                return clamp(value / 100 if value > 1 else value)
    return default


def _text_entry(item: Any, keys: tuple[str, ...]) -> str:
    if isinstance(item, str):
        return sanitize_text(item)
    if isinstance(item, Mapping):
        found = read_string(item, keys)
        if found:
            return found
    return ""


def _endpoint(entry: Mapping[str, Any], keys: tuple[str, ...]) -> tuple[str, str | None] | None:
    """Read an edge endpoint as (key, display) from a string or node-shaped mapping."""
    for key in keys:
        raw = entry.get(key)
        if raw is None:
            continue
        descriptor = parse_node_descriptor(raw)
        if descriptor is not None:
            display = descriptor.display_name if descriptor.has_rich_display else None
            return descriptor.key, display
    return None


class _NodeTable:
    """Accumulates nodes, preferring the most descriptive display name seen."""

    def __init__(self) -> None:
        self.display: dict[str, str] = {}
        self.rich: dict[str, bool] = {}
        self.aliases: dict[str, str] = {}

    def add(self, key: str, rich: bool, display: str | None = None) -> None:
        prior_rich = self.rich.get(key, False)
        if key not in self.display or (rich and not prior_rich):
            self.display[key] = sanitize_text(display or "") or humanize_token(key)
        self.rich[key] = prior_rich or rich
        self.alias(key, key)

    def alias(self, alias: str, key: str) -> None:
        normalized = normalize_token(alias)
        if normalized and normalized not in self.aliases:
            self.aliases[normalized] = key

    def resolve(self, name: str) -> str:
        sanitized = sanitize_text(name)
        return self.aliases.get(normalize_token(sanitized), sanitized)

    def nodes(self) -> tuple[NodeInfo, ...]:
        return tuple(
            NodeInfo(key=key, display_name=self.display[key], has_rich_display=self.rich[key])
            for key in sorted(self.display)
        )


def resolve_spec(
    spec: InlineSpec,
    *,
    model_key: str | None = None,
    domain: str | None = None,
    version: str | None = None,
    default_evidence_weight: float = 0.55,
) -> ResolvedModel:
    """
    Normalize a spec into a ResolvedModel. Pure; never raises on bad entries.
    """
    table = _NodeTable()

    for raw in spec.nodes:
        descriptor = parse_node_descriptor(raw)
        if descriptor is None:
            logger.debug("Skipping malformed node entry: %r", raw)
            continue
        table.add(descriptor.key, descriptor.has_rich_display, descriptor.display_name)
        for alias in descriptor.aliases:
            table.alias(alias, descriptor.key)

    edges: dict[str, CausalEdge] = {}
    for raw in spec.edges:
        if not isinstance(raw, Mapping):
            logger.debug("Skipping malformed edge entry: %r", raw)
            continue
        source = _endpoint(raw, ("from", "source"))
        target = _endpoint(raw, ("to", "target"))
        if source is None or target is None:
            logger.debug("Skipping edge without endpoints: %r", raw)
            continue

        resolved = []
        for key, display in (source, target):
            node_key = table.resolve(key)
            table.add(node_key, display is not None, display)
            resolved.append(node_key)

        edge = CausalEdge(
            source=resolved[0],
            target=resolved[1],
            sign=EdgeSign.parse(raw.get("sign", raw.get("polarity"))),
        )
        edges.setdefault(edge.key, edge)

    assumptions = unique_sorted(
        _text_entry(item, ("description", "assumption", "name", "label"))
        for item in spec.assumptions
    )
    confounders = unique_sorted(
        _text_entry(item, ("name", "label", "id", "title"))
        for item in spec.confounders
    )

    return ResolvedModel(
        model_key=model_key or spec.model_key,
        domain=domain or spec.domain,
        version=version or spec.version,
        nodes=table.nodes(),
        edges=tuple(edges[k] for k in sorted(edges)),
        assumptions=tuple(assumptions),
        confounders=tuple(confounders),
        evidence_weight=parse_evidence_weight(spec.validation, default_evidence_weight),
        aliases=dict(table.aliases),
    )


class ModelResolver:
    """
    Resolves ``ModelRef`` or ``InlineSpec`` inputs.

    Usage::

        resolver = ModelResolver(registry)
        model = resolver.resolve(ModelRef(model_key="health", version="v2"))
        inline = resolver.resolve(spec=InlineSpec(nodes=["X", "Y"]))
    """

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        config: Config | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or get_config()

    def resolve(
        self,
        ref: ModelRef | None = None,
        spec: InlineSpec | None = None,
    ) -> ResolvedModel:
        """
        Resolve one model. Inline specs take precedence over references.

        Raises:
            ModelReferenceError: Neither input given, or a reference with no registry.
            ModelNotFoundError: The registry has no such key/version.
        """
        default_weight = self.config.disagreement.default_evidence_weight

        if spec is not None:
            return resolve_spec(spec, default_evidence_weight=default_weight)

        if ref is None:
            raise ModelReferenceError("Missing model reference or inline spec")
        if self.registry is None:
            raise ModelReferenceError(
                f"Cannot resolve reference '{ref}' without a model registry"
            )

        record = self.registry.get_model_version(ref.model_key, ref.version)
        if record is None:
            raise ModelNotFoundError(ref.model_key, ref.version)

        return resolve_spec(
            record.spec,
            model_key=record.model.model_key,
            domain=record.model.domain,
            version=record.version,
            default_evidence_weight=default_weight,
        )
