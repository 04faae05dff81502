"""
Data models for structural causal models.

Two layers live here:

- Input shapes (pydantic): ``ModelRef``, ``InlineSpec`` and the registry
  row types ``ModelInfo`` / ``ModelVersionRecord``.  These accept loosely
  shaped JSON exactly as callers and registries deliver it.
- Resolved shapes (frozen dataclasses): ``ResolvedModel``, ``NodeInfo`` and
  ``CausalEdge``.  These are canonical, deduplicated and sorted, so every
  downstream computation iterates in a deterministic order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from causalprobe.scm.normalize import edge_key, normalize_token, sanitize_text


class EdgeSign(str, Enum):
    """Direction of a causal effect."""

    POSITIVE = "positive"
    NEGATIVE = "negative"

    @property
    def multiplier(self) -> int:
        return -1 if self is EdgeSign.NEGATIVE else 1

    @classmethod
    def parse(cls, raw: Any) -> "EdgeSign":
        """Read a sign from strings ("negative", "-") or numbers; default positive."""
        if isinstance(raw, bool):
            return cls.POSITIVE
        if isinstance(raw, (int, float)):
            return cls.NEGATIVE if raw < 0 else cls.POSITIVE
        if isinstance(raw, str) and raw.strip().lower() in ("negative", "neg", "-", "-1"):
            return cls.NEGATIVE
        return cls.POSITIVE


# ── Input shapes ──────────────────────────────────────────────────────


class ModelRef(BaseModel):
    """Reference to a registered model; ``version=None`` means current."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_key: str = Field(..., min_length=1)
    version: str | None = None

    @classmethod
    def parse(cls, value: str) -> "ModelRef":
        """Parse ``"key"`` or ``"key@version"``."""
        key, _, version = value.partition("@")
        return cls(model_key=key.strip(), version=version.strip() or None)

    def __str__(self) -> str:
        return f"{self.model_key}@{self.version}" if self.version else self.model_key


class InlineSpec(BaseModel):
    """
    An SCM supplied inline rather than by reference.

    ``nodes`` and ``edges`` entries are deliberately untyped: the resolver
    normalizes every supported shape and skips what it cannot read.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, protected_namespaces=())

    model_key: str = Field(default="inline", alias="modelKey")
    version: str = "inline"
    domain: str = "inline"
    nodes: list[Any] = Field(default_factory=list)
    edges: list[Any] = Field(default_factory=list)
    assumptions: list[Any] = Field(default_factory=list)
    confounders: list[Any] = Field(default_factory=list)
    validation: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "InlineSpec":
        """
        Accept both the flat shape and the registry-style shape with
        ``dagJson`` / ``assumptionsJson`` / ``confoundersJson`` /
        ``validationJson`` keys.
        """
        dag = data.get("dagJson") or data.get("dag") or {}
        if not isinstance(dag, dict):
            dag = {}
        validation = data.get("validation") or data.get("validationJson") or {}
        return cls(
            model_key=data.get("modelKey") or data.get("model_key") or "inline",
            version=str(data.get("version") or "inline"),
            domain=data.get("domain") or "inline",
            nodes=_as_list(data.get("nodes") or dag.get("nodes")),
            edges=_as_list(data.get("edges") or dag.get("edges")),
            assumptions=_as_list(data.get("assumptions") or data.get("assumptionsJson")),
            confounders=_as_list(data.get("confounders") or data.get("confoundersJson")),
            validation=validation if isinstance(validation, dict) else {},
        )


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


class ModelInfo(BaseModel):
    """Registry row describing a model (independent of version)."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_key: str
    domain: str = "general"
    name: str = ""


class ModelVersionRecord(BaseModel):
    """What a registry returns for ``get_model_version``."""

    model_config = ConfigDict(frozen=True)

    model: ModelInfo
    version: str
    is_current: bool = True
    spec: InlineSpec


# ── Resolved shapes ───────────────────────────────────────────────────


@dataclass(frozen=True)
class NodeInfo:
    """A canonical node: key used for identity, display name for humans."""

    key: str
    display_name: str
    has_rich_display: bool = False


@dataclass(frozen=True)
class CausalEdge:
    """A directed, signed edge between two canonical node keys."""

    source: str
    target: str
    sign: EdgeSign = EdgeSign.POSITIVE

    @property
    def key(self) -> str:
        return edge_key(self.source, self.target)

    def to_dict(self) -> dict[str, str]:
        return {"from": self.source, "to": self.target, "sign": self.sign.value}


@dataclass(frozen=True)
class ResolvedModel:
    """
    One canonical in-memory model, produced by the resolver per call.

    Attributes:
        model_key: Registry key (or "inline").
        domain: Domain label; comparisons across domains are stricter.
        version: Version label.
        nodes: Canonical nodes sorted by key.
        edges: Deduplicated edges sorted by edge key.
        assumptions: Deduplicated, sorted free-text assumptions.
        confounders: Deduplicated, sorted free-text confounders.
        evidence_weight: Scalar in [0, 1] derived from validation metadata.
        aliases: Normalized alias -> node key.
    """

    model_key: str
    domain: str
    version: str
    nodes: tuple[NodeInfo, ...] = ()
    edges: tuple[CausalEdge, ...] = ()
    assumptions: tuple[str, ...] = ()
    confounders: tuple[str, ...] = ()
    evidence_weight: float = 0.55
    aliases: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def identity(self) -> str:
        return f"{self.model_key}@{self.version}"

    @property
    def node_keys(self) -> list[str]:
        return [n.key for n in self.nodes]

    def display_name(self, key: str) -> str | None:
        for node in self.nodes:
            if node.key == key:
                return node.display_name
        return None

    def resolve_key(self, name: str) -> str:
        """Map a raw variable name onto a node key via the alias table."""
        sanitized = sanitize_text(name)
        return self.aliases.get(normalize_token(sanitized), sanitized)
