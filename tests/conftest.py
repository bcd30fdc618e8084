from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import Engine, text

from formdoc.config import Settings
from formdoc.models.metadata import ServiceMetadata
from formdoc.services.metadata_loader import MetadataLoader
from formdoc.services.row_store import create_engine_from_url

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FIXED_NOW = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)

_SCHEMA = [
    """
    CREATE TABLE app_fd_farmer_registration (
        id TEXT PRIMARY KEY,
        c_household_ref TEXT,
        c_registration_date TEXT,
        c_national_id TEXT,
        c_first_name TEXT,
        c_nickname TEXT
    )
    """,
    """
    CREATE TABLE app_fd_household (
        id TEXT PRIMARY KEY,
        c_district TEXT,
        c_has_electricity TEXT,
        c_water_sources TEXT,
        dateCreated TEXT
    )
    """,
    """
    CREATE TABLE app_fd_household_member (
        id TEXT PRIMARY KEY,
        c_household_id TEXT,
        c_member_name TEXT,
        c_age TEXT,
        c_sex TEXT
    )
    """,
    """
    CREATE TABLE app_fd_crop (
        id TEXT PRIMARY KEY,
        c_parent_id TEXT,
        c_crop_name TEXT,
        c_area_hectares TEXT,
        c_season TEXT
    )
    """,
]

_ROWS = [
    "INSERT INTO app_fd_farmer_registration VALUES ('F-001', 'H-1', '2024-03-01', '12345678', 'Amina', NULL)",
    "INSERT INTO app_fd_farmer_registration VALUES ('F-002', NULL, NULL, NULL, 'Baraka', NULL)",
    "INSERT INTO app_fd_household VALUES ('H-1', 'D1', 'yes', 'well;river', '2024-01-01')",
    "INSERT INTO app_fd_household_member VALUES ('M-1', 'H-1', 'Juma', '34', '1')",
    "INSERT INTO app_fd_household_member VALUES ('M-2', 'H-1', 'Neema', '12', '2')",
    "INSERT INTO app_fd_household_member VALUES ('M-3', 'H-9', 'Other', '50', '1')",
    "INSERT INTO app_fd_crop VALUES ('C-1', 'F-001', 'maize', '1.5', '')",
    "INSERT INTO app_fd_crop VALUES ('C-2', 'F-002', 'beans', '0.5', 'long')",
]


@pytest.fixture
def metadata_dir() -> Path:
    return FIXTURES_DIR / "metadata"


@pytest.fixture
def settings(metadata_dir: Path) -> Settings:
    return Settings(
        metadata_dir=str(metadata_dir),
        resources_dir=str(metadata_dir),
        database_url="sqlite://",
    )


@pytest.fixture
def farmers_metadata(settings: Settings) -> ServiceMetadata:
    return MetadataLoader(settings=settings).load("farmers_registry")


def _populate(engine: Engine) -> Engine:
    with engine.begin() as connection:
        for statement in _SCHEMA + _ROWS:
            connection.execute(text(statement))
    return engine


@pytest.fixture
def farm_engine() -> Engine:
    return _populate(create_engine_from_url("sqlite://"))


@pytest.fixture
def farm_database_url(tmp_path: Path) -> str:
    url = f"sqlite:///{tmp_path / 'forms.db'}"
    _populate(create_engine_from_url(url)).dispose()
    return url


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
