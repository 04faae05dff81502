"""
Intervention Effect Propagator.

Estimates how strongly, and in which direction, intervening on one
variable reaches an outcome by walking the signed graph breadth-first.
The returned scalar is unnormalized and only meaningful when two models
are compared with the same call; it is not a causal-effect estimate.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable

from causalprobe.scm.models import CausalEdge
from causalprobe.scm.normalize import normalize_token

DEFAULT_MAX_DEPTH = 4


def intervention_effect(
    edges: Iterable[CausalEdge],
    intervention: str,
    outcome: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> float:
    """
    Sum of ``sign / depth`` over every arrival at ``outcome``.

    - Start at ``intervention`` with sign +1 and depth 0.
    - Each hop multiplies the running sign by the edge sign.
    - Arrivals at the outcome (depth > 0) contribute and stop there.
    - A (node, depth) pair is expanded at most once, which admits
      convergent paths of different lengths while bounding cycles.

    Node names are compared by normalized token.
    """
    adjacency: dict[str, list[tuple[str, int]]] = {}
    for edge in edges:
        adjacency.setdefault(normalize_token(edge.source), []).append(
            (normalize_token(edge.target), edge.sign.multiplier)
        )

    start = normalize_token(intervention)
    goal = normalize_token(outcome)

    queue: deque[tuple[str, int, int]] = deque([(start, 1, 0)])
    visited: set[tuple[str, int]] = set()
    total = 0.0

    while queue:
        node, sign, depth = queue.popleft()
        if depth > max_depth:
            continue

        if node == goal and depth > 0:
            total += sign / depth
            continue

        if (node, depth) in visited:
            continue
        visited.add((node, depth))

        for child, edge_sign in adjacency.get(node, ()):
            queue.append((child, sign * edge_sign, depth + 1))

    return total
