import asyncio

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from app.services.store_guard import guarded
from app.services.workflow_errors import TransientStoreError


async def _value(value):
    return value


async def _raise(exc):
    raise exc


@pytest.mark.asyncio
async def test_guarded_passes_results_through():
    assert await guarded(_value(42), operation="test.value") == 42


@pytest.mark.asyncio
async def test_guarded_timeout_becomes_transient_error():
    with pytest.raises(TransientStoreError) as excinfo:
        await guarded(asyncio.sleep(1), operation="test.sleep", timeout_seconds=0.01)

    assert excinfo.value.status_code == 503
    assert excinfo.value.details["operation"] == "test.sleep"


@pytest.mark.asyncio
async def test_guarded_operational_error_becomes_transient_error():
    exc = OperationalError("SELECT 1", {}, Exception("connection refused"))
    with pytest.raises(TransientStoreError):
        await guarded(_raise(exc), operation="test.operational")


@pytest.mark.asyncio
async def test_guarded_invalidated_connection_becomes_transient_error():
    exc = DBAPIError("SELECT 1", {}, Exception("closed"), connection_invalidated=True)
    with pytest.raises(TransientStoreError):
        await guarded(_raise(exc), operation="test.invalidated")


@pytest.mark.asyncio
async def test_guarded_leaves_data_errors_alone():
    exc = IntegrityError("INSERT", {}, Exception("duplicate key"))
    with pytest.raises(IntegrityError):
        await guarded(_raise(exc), operation="test.integrity")
