"""
Shared pytest fixtures for store tests.
"""

import os
import tempfile

import pytest
import pytest_asyncio

from globaldb import AsyncStore, Store
from globaldb.models.ordered_table import OrderedTable
from globaldb.models.sortedcontainers import RedBlackTree
from globaldb.models.value import Value


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def int_store():
    """Provide an open in-memory store with integer keys."""
    with Store().open(key_type="int") as db:
        yield db


@pytest.fixture
def str_store():
    """Provide an open in-memory store with string keys."""
    with Store().open(key_type="str") as db:
        yield db


@pytest.fixture
def m_store():
    """Provide an open in-memory store with tuple ("m") keys."""
    with Store().open(key_type="m") as db:
        yield db


@pytest.fixture
def db_file(temp_dir):
    """Provide a path for a record log file."""
    return os.path.join(temp_dir, "records.db")


@pytest.fixture
def log_store(db_file):
    """Provide an open log-backed store with tuple keys."""
    with Store().open(key_type="m", db_file=db_file) as db:
        yield db


@pytest_asyncio.fixture
async def async_store(temp_dir):
    """Provide an open log-backed AsyncStore with tuple keys."""
    async with await AsyncStore.create(key_type="m", env_dir=temp_dir) as db:
        yield db


@pytest.fixture
def admissions(m_store):
    """
    Provide an m store holding two patients with several admissions each:

        ^patient(1)="Jane", ^patient(2)="John"
        ^admission(1, date)=ward, ^admission(2, date)=ward
    """
    patient = m_store.namespace("patient")
    patient.set(1, "Jane")
    patient.set(2, "John")

    admission = m_store.namespace("admission")
    admission.set(1, "2020-11-12", "Ward 3")
    admission.set(1, "2021-03-02", "Ward 7")
    admission.set(1, "2022-08-30", "ICU")
    admission.set(2, "2019-05-17", "Ward 1")
    admission.set(2, "2021-01-09", "Ward 2")
    return m_store


@pytest.fixture
def table():
    """Provide a fresh OrderedTable instance."""
    return OrderedTable(RedBlackTree())


@pytest.fixture
def sample_entries():
    """Provide sample encoded key-value entries for testing."""
    return [
        (b"key1", Value.regular("value1")),
        (b"key2", Value.regular("value2")),
        (b"key3", Value.regular("value3")),
    ]
