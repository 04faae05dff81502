"""
Model registry interface.

Storage of models is owned by an external service; causalprobe only needs
three calls from it.  ``ModelRegistry`` captures those calls and
``InMemoryModelRegistry`` is the reference implementation used by tests
and the CLI.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Sequence

import yaml

from causalprobe.scm.alignment import (
    AlignmentResult,
    OntologyVariable,
    VariableOntology,
    align_variables,
)
from causalprobe.scm.models import InlineSpec, ModelInfo, ModelVersionRecord

logger = logging.getLogger(__name__)


class ModelRegistry(ABC):
    """
    Abstract base for model registries.

    Failures of the backing store propagate to the caller unchanged; the
    engine never retries.
    """

    @abstractmethod
    def get_model_version(
        self,
        model_key: str,
        version: str | None = None,
    ) -> ModelVersionRecord | None:
        """Return the requested version (current when None), or None."""
        ...

    def get_variable_ontology(self) -> VariableOntology:
        """Return the canonical variable ontology. Default: empty."""
        return VariableOntology()

    def align_variables(
        self,
        names: Sequence[str],
        ontology: VariableOntology,
    ) -> AlignmentResult:
        """Align raw names to the ontology. Default: canonical/alias/normalized matcher."""
        return align_variables(names, ontology)


class InMemoryModelRegistry(ModelRegistry):
    """
    Dictionary-backed registry.

    Usage::

        registry = InMemoryModelRegistry(ontology=VariableOntology.from_names(["X", "Y"]))
        registry.register(ModelInfo(model_key="health"), "v1", spec)
        record = registry.get_model_version("health")
    """

    def __init__(self, ontology: VariableOntology | None = None) -> None:
        self._ontology = ontology or VariableOntology()
        self._models: dict[str, ModelInfo] = {}
        self._versions: dict[str, dict[str, InlineSpec]] = {}
        self._current: dict[str, str] = {}

    def register(
        self,
        info: ModelInfo,
        version: str,
        spec: InlineSpec,
        current: bool = True,
    ) -> ModelVersionRecord:
        """Add a version; the first version of a key is always current."""
        self._models[info.model_key] = info
        self._versions.setdefault(info.model_key, {})[version] = spec
        if current or info.model_key not in self._current:
            self._current[info.model_key] = version
        return self._record(info.model_key, version)

    def get_model_version(
        self,
        model_key: str,
        version: str | None = None,
    ) -> ModelVersionRecord | None:
        versions = self._versions.get(model_key)
        if not versions:
            return None
        wanted = version or self._current.get(model_key)
        if wanted not in versions:
            return None
        return self._record(model_key, wanted)

    def get_variable_ontology(self) -> VariableOntology:
        return self._ontology

    def __len__(self) -> int:
        return len(self._models)

    def _record(self, model_key: str, version: str) -> ModelVersionRecord:
        return ModelVersionRecord(
            model=self._models[model_key],
            version=version,
            is_current=self._current.get(model_key) == version,
            spec=self._versions[model_key][version],
        )


def load_registry(path: Path) -> InMemoryModelRegistry:
    """
    Build an in-memory registry from a JSON or YAML file.

    Expected shape::

        ontology:
          - {id: exercise, canonical_name: Exercise, aliases: [workout]}
        models:
          - model_key: health
            domain: medicine
            versions:
              - {version: v1, current: true, nodes: [...], edges: [...]}
    """
    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            data: dict[str, Any] = yaml.safe_load(f) or {}
        else:
            data = json.load(f)

    ontology = VariableOntology(tuple(
        OntologyVariable.from_dict(item) for item in data.get("ontology") or []
    ))
    registry = InMemoryModelRegistry(ontology=ontology)

    for model in data.get("models") or []:
        info = ModelInfo(
            model_key=model["model_key"],
            domain=model.get("domain", "general"),
            name=model.get("name", ""),
        )
        for entry in model.get("versions") or []:
            version = str(entry.get("version", "v1"))
            registry.register(
                info,
                version,
                InlineSpec.from_payload({**entry, "model_key": info.model_key}),
                current=bool(entry.get("current", False)),
            )

    logger.debug(
        "Loaded registry from %s: %d models, %d ontology terms",
        path, len(registry), len(ontology),
    )
    return registry
