import json
import os
from datetime import date, datetime

import pytest
from sqlalchemy import Date, DateTime, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from fhirsearch import FHIRSearch
from fhirsearch.config import SearchSettings
from fhirsearch.model import Base
from fhirsearch.search.composer import CriteriaComposer

DATASET = os.path.join(os.path.dirname(__file__), "fixtures", "dataset.json")
BASE_URL = "http://localhost/fhir"


def _column_value(column, value):
    if value is None:
        return None
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value)
    if isinstance(column.type, Date):
        return date.fromisoformat(value)
    return value


def _row(table, values):
    """Every column gets a value so that rows can be inserted in one executemany."""
    row = {}
    for column in table.columns:
        if column.name in values:
            row[column.name] = _column_value(column, values[column.name])
        elif column.default is not None and column.default.is_scalar:
            row[column.name] = column.default.arg
        else:
            row[column.name] = None
    return row


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)

    with open(DATASET) as f:
        dataset = json.load(f)
    with engine.begin() as connection:
        for table in Base.metadata.sorted_tables:
            rows = dataset.get(table.name)
            if rows:
                connection.execute(table.insert(), [_row(table, values) for values in rows])
    return engine


@pytest.fixture
def session(db_engine):
    with Session(db_engine) as session:
        yield session


@pytest.fixture(scope="session")
def settings():
    return SearchSettings(
        base_url=BASE_URL + "/",
        default_page_size=10,
        max_page_size=50,
        severity_concepts={"mild": "concept-mild", "severe": "concept-severe"},
    )


@pytest.fixture
def store(session, settings):
    return FHIRSearch(session, settings)


@pytest.fixture
def composer(settings):
    return CriteriaComposer(settings=settings)
