"""Catalog of Earth Engine datasets available for import."""

from __future__ import annotations

from dataclasses import dataclass, replace

from climate_aggregator.contracts import BandDescriptor, DatasetDescriptor, PeriodType, TimeZoneOverride
from climate_aggregator.datasets.calc import precipitation_parser, relative_humidity_parser, temperature_parser

ERA5_RESOLUTION = "Approximately 31 km (0.25°)"
ERA5_LAND_RESOLUTION = "Approximately 9 km (0.1°)"
CHIRPS_RESOLUTION = "Approximately 5 km (0.05°)"

_ERA5_LAND_DAILY = "ECMWF/ERA5_LAND/DAILY_AGGR"
_ERA5_LAND_HOURLY = "ECMWF/ERA5_LAND/HOURLY"
_ERA5_LAND_MONTHLY = "ECMWF/ERA5_LAND/MONTHLY_AGGR"
_ERA5_HEAT = "projects/climate-engine-pro/assets/ce-era5-heat"


@dataclass(frozen=True)
class CatalogEntry:
    """A dataset offered for import, with its display metadata."""

    id: str
    name: str
    short_name: str
    description: str
    resolution: str
    aggregation_type: str
    data_element_code: str
    descriptor: DatasetDescriptor

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "shortName": self.short_name,
            "description": self.description,
            "resolution": self.resolution,
            "aggregationType": self.aggregation_type,
            "dataElementCode": self.data_element_code,
            "periodType": self.descriptor.period_type.value,
        }


def _hourly(band: str, period_reducer: str) -> TimeZoneOverride:
    return TimeZoneOverride(_ERA5_LAND_HOURLY, band, PeriodType.HOURLY, period_reducer)


CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry(
        id=f"{_ERA5_LAND_DAILY}/temperature_2m",
        name="Air temperature (ERA5-Land)",
        short_name="Air temperature",
        description="Average air temperature in °C at 2 m above the surface",
        resolution=ERA5_LAND_RESOLUTION,
        aggregation_type="Average",
        data_element_code="ERA5_LAND_TEMPERATURE",
        descriptor=DatasetDescriptor(
            _ERA5_LAND_DAILY,
            band="temperature_2m",
            reducer="mean",
            time_zone=_hourly("temperature_2m", "mean"),
            value_parser=temperature_parser,
        ),
    ),
    CatalogEntry(
        id=f"{_ERA5_LAND_DAILY}/temperature_2m_max",
        name="Max air temperature (ERA5-Land)",
        short_name="Max air temperature",
        description="Maximum air temperature in °C at 2 m above the surface",
        resolution=ERA5_LAND_RESOLUTION,
        aggregation_type="Max",
        data_element_code="ERA5_LAND_TEMPERATURE_MAX",
        descriptor=DatasetDescriptor(
            _ERA5_LAND_DAILY,
            band="temperature_2m_max",
            reducer="max",
            time_zone=_hourly("temperature_2m", "max"),
            value_parser=temperature_parser,
        ),
    ),
    CatalogEntry(
        id=f"{_ERA5_LAND_DAILY}/temperature_2m_min",
        name="Min temperature (ERA5-Land)",
        short_name="Min air temperature",
        description="Minimum air temperature in °C at 2 m above the surface",
        resolution=ERA5_LAND_RESOLUTION,
        aggregation_type="Min",
        data_element_code="ERA5_LAND_TEMPERATURE_MIN",
        descriptor=DatasetDescriptor(
            _ERA5_LAND_DAILY,
            band="temperature_2m_min",
            reducer="min",
            time_zone=_hourly("temperature_2m", "min"),
            value_parser=temperature_parser,
        ),
    ),
    CatalogEntry(
        id=f"{_ERA5_LAND_DAILY}/total_precipitation_sum",
        name="Precipitation (ERA5-Land)",
        short_name="Precipitation (ERA5)",
        description="Total precipitation in mm",
        resolution=ERA5_LAND_RESOLUTION,
        aggregation_type="Sum",
        data_element_code="ERA5_LAND_PRECIPITATION",
        descriptor=DatasetDescriptor(
            _ERA5_LAND_DAILY,
            band="total_precipitation_sum",
            reducer="mean",
            time_zone=_hourly("total_precipitation", "sum"),
            value_parser=precipitation_parser,
        ),
    ),
    CatalogEntry(
        id="UCSB-CHG/CHIRPS/DAILY",
        name="Precipitation (CHIRPS)",
        short_name="Precipitation (CHIRPS)",
        description="Precipitation in mm",
        resolution=CHIRPS_RESOLUTION,
        aggregation_type="Sum",
        data_element_code="CHIRPS_PRECIPITATION",
        descriptor=DatasetDescriptor("UCSB-CHG/CHIRPS/DAILY", band="precipitation", reducer="mean", period_reducer="sum"),
    ),
    CatalogEntry(
        id=f"{_ERA5_LAND_DAILY}/dewpoint_temperature_2m",
        name="Dewpoint temperature (ERA5-Land)",
        short_name="Dewpoint temperature",
        description=(
            "Temperature in °C at 2 m above the surface to which the air would have to be cooled "
            "for saturation to occur."
        ),
        resolution=ERA5_LAND_RESOLUTION,
        aggregation_type="Average",
        data_element_code="ERA5_LAND_DEWPOINT_TEMPERATURE",
        descriptor=DatasetDescriptor(
            _ERA5_LAND_DAILY,
            band="dewpoint_temperature_2m",
            reducer="mean",
            time_zone=_hourly("dewpoint_temperature_2m", "mean"),
            value_parser=temperature_parser,
        ),
    ),
    CatalogEntry(
        id=f"{_ERA5_LAND_DAILY}/relative_humidity_2m",
        name="Relative humidity (ERA5-Land)",
        short_name="Relative humidity",
        description=(
            "Percentage of water vapor in the air compared to the total amount of vapor that can exist "
            "in the air at its current temperature. Calculated using air temperature and dewpoint "
            "temperature at 2 m above surface."
        ),
        resolution=ERA5_LAND_RESOLUTION,
        aggregation_type="Average",
        data_element_code="ERA5_LAND_RELATIVE_HUMIDITY",
        descriptor=DatasetDescriptor(
            _ERA5_LAND_DAILY,
            bands=(
                BandDescriptor("dewpoint_temperature_2m", "mean", _hourly("dewpoint_temperature_2m", "mean")),
                BandDescriptor("temperature_2m", "mean", _hourly("temperature_2m", "mean")),
            ),
            bands_parser=relative_humidity_parser,
        ),
    ),
    CatalogEntry(
        id=f"{_ERA5_HEAT}/utci_mean",
        name="Heat stress (ERA5-HEAT)",
        short_name="Heat stress",
        description="Average felt temperature in °C",
        resolution=ERA5_RESOLUTION,
        aggregation_type="Average",
        data_element_code="ERA5_HEAT_UTCI",
        descriptor=DatasetDescriptor(_ERA5_HEAT, band="utci_mean", reducer="mean", value_parser=temperature_parser),
    ),
    CatalogEntry(
        id=f"{_ERA5_HEAT}/utci_max",
        name="Max heat stress (ERA5-HEAT)",
        short_name="Max heat stress",
        description="Maximum felt temperature in °C",
        resolution=ERA5_RESOLUTION,
        aggregation_type="Max",
        data_element_code="ERA5_HEAT_UTCI_MAX",
        descriptor=DatasetDescriptor(_ERA5_HEAT, band="utci_max", reducer="max", value_parser=temperature_parser),
    ),
    CatalogEntry(
        id=f"{_ERA5_HEAT}/utci_min",
        name="Min heat stress (ERA5-HEAT)",
        short_name="Min heat stress",
        description="Minimum felt temperature in °C",
        resolution=ERA5_RESOLUTION,
        aggregation_type="Min",
        data_element_code="ERA5_HEAT_UTCI_MIN",
        descriptor=DatasetDescriptor(_ERA5_HEAT, band="utci_min", reducer="min", value_parser=temperature_parser),
    ),
)

_ERA5_BANDS = (
    "temperature_2m",
    "temperature_2m_min",
    "temperature_2m_max",
    "dewpoint_temperature_2m",
    "total_precipitation_sum",
)

# Multi-band descriptors used for single-geometry time series and normals.
ERA5_DAILY = DatasetDescriptor(_ERA5_LAND_DAILY, band=_ERA5_BANDS, reducer="mean", name="ERA5-Land daily")
ERA5_MONTHLY = DatasetDescriptor(
    _ERA5_LAND_MONTHLY, band=_ERA5_BANDS, period_type=PeriodType.MONTHLY, name="ERA5-Land monthly"
)
ERA5_MONTHLY_NORMALS = DatasetDescriptor(
    _ERA5_LAND_MONTHLY,
    band=("temperature_2m", "dewpoint_temperature_2m", "total_precipitation_sum"),
    period_type=PeriodType.MONTHLY,
    name="ERA5-Land monthly normals",
)
ERA5_MONTHLY_TEMPERATURES = DatasetDescriptor(
    _ERA5_LAND_MONTHLY, band=("temperature_2m",), period_type=PeriodType.MONTHLY, name="ERA5-Land monthly temperature"
)
ERA5_HEAT_DAILY = DatasetDescriptor(
    _ERA5_HEAT,
    band=("utci_mean", "utci_min", "utci_max"),
    reducer=("mean", "min", "max"),
    shared_inputs=False,
    period_type=PeriodType.DAILY,
    name="ERA5-HEAT daily",
)
ERA5_HEAT_MONTHLY = replace(ERA5_HEAT_DAILY, aggregation_period=PeriodType.MONTHLY, name="ERA5-HEAT monthly")
CMIP6_TEMPERATURE = DatasetDescriptor(
    "NASA/GDDP-CMIP6",
    band="tas",
    scenario="ssp245",
    value_parser=temperature_parser,
    name="CMIP6 near-surface air temperature",
)


SERIES_DATASETS: dict[str, DatasetDescriptor] = {
    "era5Daily": ERA5_DAILY,
    "era5Monthly": ERA5_MONTHLY,
    "era5MonthlyNormals": ERA5_MONTHLY_NORMALS,
    "era5MonthlyTemperatures": ERA5_MONTHLY_TEMPERATURES,
    "era5HeatDaily": ERA5_HEAT_DAILY,
    "era5HeatMonthly": ERA5_HEAT_MONTHLY,
    "cmip6Temperature": CMIP6_TEMPERATURE,
}


def list_datasets() -> list[CatalogEntry]:
    return list(CATALOG)


def get_series_dataset(name: str) -> DatasetDescriptor | None:
    """Get a single-geometry series descriptor by its short name."""
    return SERIES_DATASETS.get(name)


def get_dataset(dataset_id: str) -> CatalogEntry | None:
    """Get catalog entry for a given id."""
    lookup = {entry.id: entry for entry in CATALOG}
    return lookup.get(dataset_id)
