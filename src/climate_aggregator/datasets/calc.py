"""Unit conversions and derived quantities used by dataset value parsers."""

from __future__ import annotations

from collections.abc import Sequence
from math import exp

from climate_aggregator.contracts import ReducedRecord

# Magnus approximation coefficients
_MAGNUS_A = 17.625
_MAGNUS_B = 243.04


def kelvin_to_celsius(value: float) -> float:
    return value - 273.15


def round_one_decimal(value: float) -> float:
    return round(value, 1)


def relative_humidity(temp_c: float, dewpoint_c: float) -> float:
    """Relative humidity in percent from air and dewpoint temperature (Celsius)."""
    saturation = exp(_MAGNUS_A * temp_c / (_MAGNUS_B + temp_c))
    actual = exp(_MAGNUS_A * dewpoint_c / (_MAGNUS_B + dewpoint_c))
    return 100.0 * actual / saturation


def temperature_parser(value: float) -> float:
    """Kelvin to Celsius with one decimal."""
    return round_one_decimal(kelvin_to_celsius(value))


def precipitation_parser(value: float) -> float:
    """Meters to millimeters."""
    return round(value * 1000, 6)


def relative_humidity_parser(band_results: Sequence[list[ReducedRecord]]) -> list[ReducedRecord]:
    """Combine dewpoint and temperature records (Kelvin) into relative humidity.

    Records are joined on feature and period; the output follows the order of
    the temperature records.
    """
    dewpoints, temperatures = band_results
    dew_by_key = {(r.feature_id, r.period): r.value for r in dewpoints}
    out = []
    for temp in temperatures:
        dew = dew_by_key.get((temp.feature_id, temp.period))
        if dew is None or temp.value is None:
            value = None
        else:
            value = round_one_decimal(relative_humidity(kelvin_to_celsius(temp.value), kelvin_to_celsius(dew)))
        out.append(ReducedRecord(temp.feature_id, temp.period, value))
    return out
