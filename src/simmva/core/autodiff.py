"""Path-wise adjoint (AAD) helpers and the gradient container.

A Monte Carlo valuation returns one value per path. Because paths are
independent, the reverse-mode gradient of the *sum* over paths with respect
to a path-indexed input carries, on each path, the derivative of that path's
value. :func:`pathwise_value_and_grad` wraps :func:`jax.value_and_grad` for
exactly this use and :class:`Gradient` stores the result keyed by risk factor.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Iterator, NamedTuple, Protocol, Sequence, Tuple

import jax
import jax.numpy as jnp

from simmva.core.time_discretization import TIME_TOLERANCE

Array = jnp.ndarray

__all__ = [
    "Array",
    "RiskFactorId",
    "Gradient",
    "DifferentiableValuation",
    "pathwise_value_and_grad",
]

LIBOR = "libor"
ADJUSTMENT = "adjustment"


class RiskFactorId(NamedTuple):
    """Identity of a model risk factor (an AAD node).

    ``kind`` is ``"libor"`` for the simulated forward rate with index ``index``
    at simulation time ``time``, or ``"adjustment"`` for the numeraire
    adjustment factor at discount time ``time`` (``index`` is ``-1``).
    """

    kind: str
    time: float
    index: int

    @classmethod
    def libor(cls, time: float, index: int) -> "RiskFactorId":
        return cls(LIBOR, round(float(time), 12), int(index))

    @classmethod
    def adjustment(cls, time: float) -> "RiskFactorId":
        return cls(ADJUSTMENT, round(float(time), 12), -1)


class DifferentiableValuation(Protocol):
    """Anything that can value itself path-wise at ``evaluation_time``."""

    def get_value(self, evaluation_time: float, model: Any) -> Array:
        ...


class Gradient(Mapping):
    """Read-only map from :class:`RiskFactorId` to path-wise derivatives.

    LIBOR adjoints are held as one dense array ``[n_times, n_paths, n_libors]``
    and sliced on access; adjustment-factor adjoints are held per time.
    Absent factors have derivative zero (:meth:`derivative`) but are not keys.
    """

    def __init__(
        self,
        simulation_times: Sequence[float],
        libor_adjoints: Array,
        adjustment_adjoints: Mapping[float, Array] | None = None,
    ):
        self._times = tuple(round(float(t), 12) for t in simulation_times)
        self._time_index = {t: i for i, t in enumerate(self._times)}
        self._libor_adjoints = libor_adjoints
        self._adjustment_adjoints = {
            round(float(t), 12): value for t, value in (adjustment_adjoints or {}).items()
        }
        if libor_adjoints.ndim != 3 or libor_adjoints.shape[0] != len(self._times):
            raise ValueError(
                f"LIBOR adjoints of shape {libor_adjoints.shape} do not match "
                f"{len(self._times)} simulation times"
            )

    @property
    def number_of_paths(self) -> int:
        return int(self._libor_adjoints.shape[1])

    @property
    def adjustment_times(self) -> Tuple[float, ...]:
        return tuple(sorted(self._adjustment_adjoints))

    def _lookup_time_index(self, time: float) -> int | None:
        key = round(float(time), 12)
        if key in self._time_index:
            return self._time_index[key]
        for candidate, index in self._time_index.items():
            if abs(candidate - key) <= TIME_TOLERANCE:
                return index
        return None

    def __getitem__(self, factor: RiskFactorId) -> Array:
        kind, time, index = factor
        if kind == LIBOR:
            time_index = self._lookup_time_index(time)
            if time_index is None or not 0 <= index < self._libor_adjoints.shape[2]:
                raise KeyError(factor)
            return self._libor_adjoints[time_index, :, index]
        if kind == ADJUSTMENT:
            return self._adjustment_adjoints[round(float(time), 12)]
        raise KeyError(factor)

    def __iter__(self) -> Iterator[RiskFactorId]:
        for time in self._times:
            for index in range(self._libor_adjoints.shape[2]):
                yield RiskFactorId.libor(time, index)
        for time in self.adjustment_times:
            yield RiskFactorId.adjustment(time)

    def __len__(self) -> int:
        return len(self._times) * self._libor_adjoints.shape[2] + len(self._adjustment_adjoints)

    def derivative(self, factor: RiskFactorId) -> Array:
        """Derivative with respect to ``factor``; zero on all paths if absent."""
        try:
            return self[factor]
        except KeyError:
            return jnp.zeros(self.number_of_paths)


def pathwise_value_and_grad(
    func: Callable[..., Array], argnums: int | Tuple[int, ...] = 0
) -> Callable[..., Tuple[Array, Any]]:
    """Build a callable returning path-wise values and path-wise adjoints.

    Args:
        func: Callable returning an array of shape ``[n_paths]``. Path ``p`` of
            the output may only depend on path ``p`` of the differentiated
            inputs.
        argnums: Positional argument(s) to differentiate with respect to.

    Returns:
        A callable with ``func``'s signature yielding ``(values, grads)`` where
        ``grads`` mirrors the pytree structure of the differentiated inputs.
    """

    def _objective(*args: Any, **kwargs: Any):
        values = func(*args, **kwargs)
        return jnp.sum(values), values

    value_and_grad = jax.value_and_grad(_objective, argnums=argnums, has_aux=True)

    def _evaluate(*args: Any, **kwargs: Any):
        (_, values), grads = value_and_grad(*args, **kwargs)
        return values, grads

    return _evaluate
