"""Tests for reducer composition and remote reducer construction."""

from __future__ import annotations

from typing import Any

import pytest

from climate_aggregator.contracts import ReducerName
from climate_aggregator.datasets.catalog import ERA5_HEAT_DAILY, get_dataset
from climate_aggregator.errors import UnknownReducerError
from climate_aggregator.reduce.reducers import compose, period_reduction


class _FakeReducer:
    def __init__(self, name: str, log: list[tuple[Any, ...]]) -> None:
        self.name = name
        self.log = log

    def unweighted(self) -> _FakeReducer:
        self.log.append(("unweighted", self.name))
        return self

    def combine(self, reducer2: _FakeReducer, outputPrefix: str, sharedInputs: bool) -> _FakeReducer:
        self.log.append(("combine", self.name, reducer2.name, outputPrefix, sharedInputs))
        return _FakeReducer(f"{self.name}+{reducer2.name}", self.log)

    def setOutputs(self, outputs: list[str]) -> _FakeReducer:
        self.log.append(("setOutputs", outputs))
        return self


class _FakeReducers:
    def __init__(self, log: list[tuple[Any, ...]]) -> None:
        self.log = log

    def __getattr__(self, name: str) -> Any:
        return lambda: _FakeReducer(name, self.log)


class _FakeEE:
    def __init__(self) -> None:
        self.log: list[tuple[Any, ...]] = []
        self.Reducer = _FakeReducers(self.log)


def test_single_reducer_is_weighted_by_default() -> None:
    """A single reducer name should produce one weighted reducer named after itself."""
    reducer = compose("mean")
    assert reducer.reducers == (ReducerName.MEAN,)
    assert reducer.outputs == ("mean",)
    assert reducer.weighted
    assert not reducer.is_combined


def test_shared_reducers_get_positional_suffixes() -> None:
    """Shared reducer outputs should be numbered by position, without suffix at 0."""
    reducer = compose(["mean", "min", "max"], shared_inputs=True)
    assert reducer.outputs == ("mean", "min1", "max2")
    assert not reducer.weighted
    assert reducer.region_keys(["a", "b"]) == (
        "a_mean",
        "a_min1",
        "a_max2",
        "b_mean",
        "b_min1",
        "b_max2",
    )


def test_unshared_reducers_are_named_after_bands() -> None:
    """Unshared reducers over two bands should output one value per band, named after it."""
    reducer = compose(["mean", "max"], shared_inputs=False, band_names=["a", "b"])
    assert reducer.outputs == ("a", "b")
    assert reducer.region_keys(["a", "b"]) == ("a", "b")


def test_reducer_list_requires_shared_inputs() -> None:
    """A list of reducers without an explicit sharing mode should be rejected."""
    with pytest.raises(ValueError):
        compose(["mean", "min"])


def test_unknown_reducer_is_rejected() -> None:
    """Names outside the reducer registry should raise UnknownReducerError."""
    with pytest.raises(UnknownReducerError):
        compose("average")
    with pytest.raises(UnknownReducerError):
        compose(["mean", "mode"], shared_inputs=True)


def test_to_ee_folds_reducers_left_and_sets_outputs() -> None:
    """Combined reducers should be unweighted, combined in order, then renamed."""
    ee = _FakeEE()
    compose(["mean", "max"], shared_inputs=False, band_names=["a", "b"]).to_ee(ee)

    assert ee.log == [
        ("unweighted", "mean"),
        ("unweighted", "max"),
        ("combine", "mean", "max", "", False),
        ("setOutputs", ["a", "b"]),
    ]


def test_to_ee_sets_outputs_for_shared_inputs_over_several_bands() -> None:
    """Shared combined reducers should be renamed too; the engine prefixes each band."""
    ee = _FakeEE()
    compose(["mean", "min"], shared_inputs=True, band_names=["a", "b"]).to_ee(ee)

    assert ee.log == [
        ("unweighted", "mean"),
        ("unweighted", "min"),
        ("combine", "mean", "min", "", True),
        ("setOutputs", ["mean", "min1"]),
    ]


def test_feature_keys_follow_the_engine_naming() -> None:
    """Feature properties are named after a single reducer only when there is one band."""
    assert compose("mean").feature_keys(["t"]) == ("mean",)
    assert compose("mean").feature_keys(["t", "u"]) == ("t", "u")
    assert compose(["mean", "min"], shared_inputs=True).feature_keys(["t"]) == ("mean", "min1")
    assert compose(["mean", "min"], shared_inputs=True).feature_keys(["t", "u"]) == (
        "t_mean",
        "t_min1",
        "u_mean",
        "u_min1",
    )


def test_to_ee_single_reducer_weighting() -> None:
    """A single weighted reducer should be left as is; unweighted on request."""
    ee = _FakeEE()
    compose("mean").to_ee(ee)
    assert ee.log == []

    compose("min", weighted=False).to_ee(ee)
    assert ee.log == [("unweighted", "min")]


def test_period_reduction_pairs_bands_with_reducers() -> None:
    """Unshared period reducers should pair one-to-one with bands."""
    assert period_reduction(ERA5_HEAT_DAILY) == (
        ("utci_mean", ReducerName.MEAN),
        ("utci_min", ReducerName.MIN),
        ("utci_max", ReducerName.MAX),
    )


def test_period_reducer_overrides_spatial_reducer() -> None:
    """CHIRPS precipitation should be summed over time but averaged over space."""
    chirps = get_dataset("UCSB-CHG/CHIRPS/DAILY")
    assert chirps is not None
    assert period_reduction(chirps.descriptor) == (("precipitation", ReducerName.SUM),)
    assert compose("mean").reducers == (ReducerName.MEAN,)
