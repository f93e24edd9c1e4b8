"""Earth Engine raster engine tests with a recording fake `ee` module."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from climate_aggregator.contracts import FilterClause, PeriodType, SourceQuery
from climate_aggregator.errors import EarthEngineUnavailableError, RemoteEvaluationError, RequestCancelledError
from climate_aggregator.ingest.factory import create_engine
from climate_aggregator.ingest.gee_client import config_from_env
from climate_aggregator.ingest.gee_engine import GeeRasterEngine, GeeResultSet
from climate_aggregator.ingest.interfaces import CancelToken
from climate_aggregator.ingest.mock_engine import MockRasterEngine


class _EEException(Exception):
    pass


class _Expr:
    """Server-side expression stand-in recording every chained call."""

    def __init__(self, ee: _FakeEE) -> None:
        self._ee = ee

    def __getattr__(self, name: str) -> Any:
        def call(*args: Any, **kwargs: Any) -> _Expr:
            self._ee.log.append((name, args, kwargs))
            return _Expr(self._ee)

        return call

    def getInfo(self) -> Any:
        self._ee.evaluations += 1
        if isinstance(self._ee.info, Exception):
            raise self._ee.info
        return self._ee.info


class _Filters:
    def __getattr__(self, name: str) -> Any:
        return lambda *args: (name, *args)


class _FakeEE:
    EEException = _EEException

    def __init__(self, info: Any = None) -> None:
        self.info = info
        self.log: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.evaluations = 0
        self.Filter = _Filters()

    def ImageCollection(self, dataset_id: str) -> _Expr:
        self.log.append(("ImageCollection", (dataset_id,), {}))
        return _Expr(self)

    def Date(self, millis: int) -> tuple[str, int]:
        return ("Date", millis)


START = datetime(2023, 1, 1, tzinfo=UTC)
END = datetime(2023, 2, 1, tzinfo=UTC)
SOURCE = SourceQuery(
    "UCSB-CHG/CHIRPS/DAILY",
    ("precipitation",),
    PeriodType.DAILY,
    START,
    END,
    (FilterClause("calendarRange", (1, 3, "month")),),
)


async def test_count_images_builds_filtered_collection() -> None:
    """Counting should select bands, filter dates and clauses, then evaluate the size."""
    ee = _FakeEE(info=31)
    count = await GeeRasterEngine(gee=ee).count_images(SOURCE)

    assert count == 31
    assert ee.log == [
        ("ImageCollection", ("UCSB-CHG/CHIRPS/DAILY",), {}),
        ("select", (["precipitation"],), {}),
        ("filterDate", (("Date", 1672531200000), ("Date", 1675209600000)), {}),
        ("filter", (("calendarRange", 1, 3, "month"),), {}),
        ("size", (), {}),
    ]


async def test_remote_failures_become_remote_evaluation_errors() -> None:
    """Engine exceptions should be raised as RemoteEvaluationError."""
    ee = _FakeEE(info=_EEException("Collection.size: too many elements"))
    with pytest.raises(RemoteEvaluationError, match="too many elements"):
        await GeeRasterEngine(gee=ee).count_images(SOURCE)


async def test_cancelled_token_skips_evaluation() -> None:
    """A cancelled request should not evaluate remote expressions."""
    ee = _FakeEE(info=1)
    cancel = CancelToken()
    cancel.cancel()

    with pytest.raises(RequestCancelledError):
        await GeeRasterEngine(gee=ee).count_images(SOURCE, cancel=cancel)
    assert ee.evaluations == 0


async def test_result_set_pages_with_to_list() -> None:
    """Pages should be read with toList(limit, offset) and unwrapped to properties."""
    ee = _FakeEE(info=[{"properties": {"ou": "a", "period": "20230101", "value": 1.5}}, {"type": "Feature"}])
    result_set = GeeResultSet(GeeRasterEngine(gee=ee), _Expr(ee))

    page = await result_set.page(5000, 10_000)

    assert page == [{"ou": "a", "period": "20230101", "value": 1.5}, {}]
    assert ee.log == [("toList", (5000, 10_000), {})]


def test_missing_project_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    """Earth Engine config should require a project."""
    monkeypatch.delenv("CLIMATE_GEE_PROJECT", raising=False)
    with pytest.raises(EarthEngineUnavailableError):
        config_from_env()


def test_config_from_env_reads_service_account(monkeypatch: pytest.MonkeyPatch) -> None:
    """Service account settings should be read from the environment."""
    monkeypatch.setenv("CLIMATE_GEE_PROJECT", "demo-project")
    monkeypatch.setenv("CLIMATE_GEE_SERVICE_ACCOUNT_EMAIL", "svc@demo.iam.gserviceaccount.com")
    monkeypatch.setenv("CLIMATE_GEE_PRIVATE_KEY_JSON", "/secrets/key.json")

    cfg = config_from_env()

    assert cfg.project == "demo-project"
    assert cfg.service_account_email == "svc@demo.iam.gserviceaccount.com"
    assert cfg.private_key_json_path == "/secrets/key.json"


def test_factory_defaults_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without configuration the factory should build the in-memory engine."""
    monkeypatch.delenv("CLIMATE_ENGINE_MODE", raising=False)
    assert isinstance(create_engine(), MockRasterEngine)
    assert isinstance(create_engine("gee"), GeeRasterEngine)
    with pytest.raises(ValueError):
        create_engine("sentinel")
