"""
Parameter distributions and per-generator random streams.

A ``Distribution`` is a validated, static description. Sampling happens only
through a ``Sampler``, which owns its own ``numpy.random.Generator``. Streams
are derived from one scenario seed with a spawn key hashed from the owning
spec and parameter names, so no two generators share state.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from .errors import CatalogValidationError

_KINDS = ("uniform", "exponential", "constant")


@dataclass(frozen=True)
class Distribution:
    """{kind: uniform|exponential|constant, parameters}."""

    kind: str
    params: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        p = dict(self.params)
        if self.kind not in _KINDS:
            raise CatalogValidationError(
                f"Unknown distribution kind {self.kind!r}; expected one of {_KINDS}"
            )
        if self.kind == "uniform":
            self._require(p, "min", "max")
            if p["max"] < p["min"]:
                raise CatalogValidationError(
                    f"Uniform distribution has max < min ({p['max']} < {p['min']})"
                )
        elif self.kind == "exponential":
            self._require(p, "mean")
            if p["mean"] <= 0:
                raise CatalogValidationError(
                    f"Exponential distribution needs a positive mean, got {p['mean']}"
                )
        else:
            self._require(p, "value")

    # ── Constructors ────────────────────────────────────────────────

    @classmethod
    def uniform(cls, low: float, high: float) -> "Distribution":
        # Parameters are kept sorted by name so parsed and built instances compare equal
        return cls("uniform", (("max", float(high)), ("min", float(low))))

    @classmethod
    def exponential(cls, mean: float) -> "Distribution":
        return cls("exponential", (("mean", float(mean)),))

    @classmethod
    def constant(cls, value: float) -> "Distribution":
        return cls("constant", (("value", float(value)),))

    @classmethod
    def parse(cls, data: Union["Distribution", Mapping[str, Any], float, int]) -> "Distribution":
        """Accept a Distribution, a bare number (constant) or a mapping with ``kind``."""
        if isinstance(data, Distribution):
            return data
        if isinstance(data, bool):
            raise CatalogValidationError(f"Invalid distribution value: {data!r}")
        if isinstance(data, (int, float)):
            return cls.constant(data)
        if not isinstance(data, Mapping) or "kind" not in data:
            raise CatalogValidationError(f"Invalid distribution definition: {data!r}")
        kind = data["kind"]
        try:
            params = tuple(sorted((k, float(v)) for k, v in data.items() if k != "kind"))
        except (TypeError, ValueError) as exc:
            raise CatalogValidationError(f"Non-numeric parameter in {data!r}") from exc
        return cls(kind, params)

    # ── Introspection ───────────────────────────────────────────────

    def param(self, name: str) -> float:
        return dict(self.params)[name]

    @property
    def lower_bound(self) -> float:
        p = dict(self.params)
        if self.kind == "uniform":
            return p["min"]
        if self.kind == "exponential":
            return 0.0
        return p["value"]

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, **dict(self.params)}

    @staticmethod
    def _require(p: Dict[str, float], *names: str) -> None:
        missing = [n for n in names if n not in p]
        if missing:
            raise CatalogValidationError(f"Distribution is missing parameter(s): {missing}")


class Sampler:
    """A Distribution bound to an owned random generator."""

    def __init__(self, distribution: Distribution, rng: np.random.Generator) -> None:
        self.distribution = distribution
        self._rng = rng

    def draw(self) -> float:
        d = self.distribution
        if d.kind == "constant":
            return d.param("value")
        if d.kind == "uniform":
            return float(self._rng.uniform(d.param("min"), d.param("max")))
        return float(self._rng.exponential(d.param("mean")))


class RandomStreams:
    """
    Factory of independent samplers derived from one scenario seed.

    With ``seed=None`` fresh OS entropy is drawn once per scenario; only the
    numeric values of draws then differ between runs.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self._root = np.random.SeedSequence(seed)

    @property
    def entropy(self) -> int:
        return int(self._root.entropy)

    def sampler(self, owner: str, parameter: str, distribution: Distribution) -> Sampler:
        key = _stable_key(owner) + (_stable_key(parameter)[0],)
        seq = np.random.SeedSequence(self._root.entropy, spawn_key=key)
        return Sampler(distribution, np.random.default_rng(seq))


def _stable_key(name: str) -> Tuple[int, ...]:
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return (int.from_bytes(digest[:4], "big"), int.from_bytes(digest[4:8], "big"))
