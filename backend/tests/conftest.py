"""Pytest configuration and fixtures."""

import os
import tempfile
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from formflow.db import DataStore, data_store
from formflow.db.database import close_database, init_database
from formflow.main import app
from formflow.models import FormCreate, FormSchema


@pytest.fixture(autouse=True)
async def setup_test_db():
    """Set up a test database for each test."""
    # Create a temporary database file
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    await init_database(db_path)

    yield

    # Clean up
    await close_database()
    os.unlink(db_path)


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def store() -> DataStore:
    """The store the API uses, backed by the per-test database."""
    return data_store


@pytest.fixture
async def customer_form(store: DataStore):
    """A simple form with a name and an email field."""
    schema = FormSchema.model_validate(
        {
            "title": "Customers",
            "description": "",
            "fields": [
                {"id": "name", "type": "text", "label": "Name", "required": True},
                {"id": "email", "type": "email", "label": "Email"},
            ],
        }
    )
    return await store.create_form(FormCreate(title="Customers", form_schema=schema))
