"""Reducer registry and composition of combined spatial reducers.

A composite reducer is an immutable description built by folding over an
ordered list of reducer names. It is turned into a remote reducer object only
at evaluation time, by `to_ee`.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import reduce
from typing import Any

from climate_aggregator.contracts import DatasetDescriptor, ReducerName, ReducerSpec
from climate_aggregator.errors import UnknownReducerError

# Remote reducer constructors, one per enumerated reducer.
REDUCER_FACTORIES: dict[ReducerName, Callable[[Any], Any]] = {
    ReducerName.MEAN: lambda ee: ee.Reducer.mean(),
    ReducerName.MIN: lambda ee: ee.Reducer.min(),
    ReducerName.MAX: lambda ee: ee.Reducer.max(),
    ReducerName.SUM: lambda ee: ee.Reducer.sum(),
    ReducerName.MEDIAN: lambda ee: ee.Reducer.median(),
    ReducerName.FIRST: lambda ee: ee.Reducer.first(),
    ReducerName.COUNT: lambda ee: ee.Reducer.count(),
    ReducerName.STD_DEV: lambda ee: ee.Reducer.stdDev(),
}


def reducer_name(name: str) -> ReducerName:
    """Resolve a reducer name, rejecting unknown names."""
    try:
        return ReducerName(name)
    except ValueError:
        raise UnknownReducerError(f"unknown reducer: {name!r}") from None


@dataclass(frozen=True, slots=True)
class CompositeReducer:
    """One or more reducers run in a single pass."""

    reducers: tuple[ReducerName, ...]
    outputs: tuple[str, ...]
    shared_inputs: bool = True
    weighted: bool = True
    input_bands: tuple[str, ...] = ()

    @property
    def is_combined(self) -> bool:
        return len(self.reducers) > 1

    def region_keys(self, bands: Sequence[str]) -> tuple[str, ...]:
        """Keys of a single-region reduction over `bands`, as the engine names them.

        Shared combined reducers over several bands are prefixed with the band.
        """
        if not self.is_combined:
            return tuple(bands)
        if not self.shared_inputs or len(bands) <= 1:
            return self.outputs
        return tuple(f"{band}_{output}" for band in bands for output in self.outputs)

    def feature_keys(self, bands: Sequence[str]) -> tuple[str, ...]:
        """Properties a feature-collection reduction sets on each feature.

        A single reducer over a single band is named after the reducer.
        """
        if not self.is_combined and len(bands) == 1:
            return self.outputs
        return self.region_keys(bands)

    def to_ee(self, ee: Any) -> Any:
        """Build the remote reducer object."""
        first = REDUCER_FACTORIES[self.reducers[0]](ee)
        if self.is_combined or not self.weighted:
            first = first.unweighted()

        def combine(acc: Any, name: ReducerName) -> Any:
            return acc.combine(
                reducer2=REDUCER_FACTORIES[name](ee).unweighted(),
                outputPrefix="",
                sharedInputs=self.shared_inputs,
            )

        out = reduce(combine, self.reducers[1:], first)
        if self.is_combined:
            out = out.setOutputs(list(self.outputs))
        return out


def _fold_step(
    acc: tuple[tuple[ReducerName, str], ...],
    item: tuple[int, str],
) -> tuple[tuple[ReducerName, str], ...]:
    position, name = item
    resolved = reducer_name(name)
    suffix = "" if position == 0 else str(position)
    return acc + ((resolved, f"{resolved.value}{suffix}"),)


def compose(
    spec: ReducerSpec | Sequence[str],
    shared_inputs: bool | None = None,
    band_names: Sequence[str] | None = None,
    *,
    weighted: bool = True,
) -> CompositeReducer:
    """Compose a reducer name or ordered list of names into one CompositeReducer.

    A list is folded left; the first reducer seeds the composite and every
    reducer in a list is unweighted. Outputs are numbered by position (no suffix
    at position 0); unshared reducers over known bands are named after the bands.
    """
    bands = tuple(band_names or ())
    if isinstance(spec, str):
        name = reducer_name(spec)
        return CompositeReducer((name,), (name.value,), True, weighted, bands)

    names = tuple(spec)
    if not names:
        raise UnknownReducerError("reducer list must not be empty")
    if len(names) == 1:
        name = reducer_name(names[0])
        return CompositeReducer((name,), (name.value,), True, False, bands)
    if shared_inputs is None:
        raise ValueError("a list of reducers requires shared_inputs to be True or False")

    steps = reduce(_fold_step, enumerate(names), ())
    reducers = tuple(r for r, _ in steps)
    outputs = tuple(o for _, o in steps)
    if not shared_inputs and bands:
        if len(bands) != len(reducers):
            raise ValueError(f"{len(reducers)} unshared reducers need as many bands, got {len(bands)}")
        outputs = bands
    return CompositeReducer(reducers, outputs, shared_inputs, False, bands)


def compose_for(dataset: DatasetDescriptor, *, weighted: bool = True) -> CompositeReducer:
    """Compose the spatial reducer declared by a dataset."""
    return compose(dataset.reducer, dataset.shared_inputs, dataset.band_names, weighted=weighted)


def period_reduction(dataset: DatasetDescriptor) -> tuple[tuple[str, ReducerName], ...]:
    """Pair every band with the reducer that collapses it across finer periods."""
    spec = dataset.effective_period_reducer
    names = (spec,) if isinstance(spec, str) else spec
    bands = dataset.band_names
    if len(names) == 1:
        name = reducer_name(names[0])
        return tuple((band, name) for band in bands)
    if dataset.shared_inputs or len(names) != len(bands):
        raise ValueError("period reducers must pair one-to-one with unshared bands")
    return tuple((band, reducer_name(name)) for band, name in zip(bands, names))
