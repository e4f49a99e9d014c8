# tests/core/test_drivers_repository.py
"""
Тесты для репозитория профилей водителей.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from fulfillment.common.constants import DriverStatus
from fulfillment.core.drivers.repository import DriverRepository
from fulfillment.infra.database import CasOutcome


@pytest.fixture
def mock_conn() -> MagicMock:
    """Создаёт мок соединения asyncpg."""
    conn = MagicMock()
    conn.fetchrow = AsyncMock()
    conn.fetchval = AsyncMock()
    conn.execute = AsyncMock()
    return conn


@pytest.fixture
def driver_repository(mock_conn: MagicMock) -> DriverRepository:
    return DriverRepository(mock_conn)


class TestDriverRepository:
    """Тесты для DriverRepository."""

    @pytest.mark.asyncio
    async def test_get_by_user_id(
        self,
        driver_repository: DriverRepository,
        mock_conn: MagicMock,
    ) -> None:
        mock_conn.fetchrow.return_value = {
            "id": 1,
            "user_id": 200,
            "status": DriverStatus.ONLINE.value,
            "is_verified": True,
            "total_deliveries": 12,
            "credit_balance": -5000,
        }

        driver = await driver_repository.get_by_user_id(200)

        assert driver is not None
        assert driver.is_available
        assert driver.credit_balance == -5000

    @pytest.mark.asyncio
    async def test_set_status_with_expected(
        self,
        driver_repository: DriverRepository,
        mock_conn: MagicMock,
    ) -> None:
        """Ожидаемый статус добавляется в условие."""
        mock_conn.fetchrow.return_value = {"id": 1}

        outcome = await driver_repository.set_status(200, DriverStatus.BUSY, expected=DriverStatus.ONLINE)

        assert outcome == CasOutcome.APPLIED
        query, *args = mock_conn.fetchrow.call_args.args
        assert "AND status = $3" in query
        assert args == [200, "BUSY", "ONLINE"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exists, expected",
        [(1, CasOutcome.STALE), (None, CasOutcome.MISSING)],
    )
    async def test_set_status_not_applied(
        self,
        driver_repository: DriverRepository,
        mock_conn: MagicMock,
        exists,
        expected: CasOutcome,
    ) -> None:
        mock_conn.fetchrow.return_value = None
        mock_conn.fetchval.return_value = exists

        outcome = await driver_repository.set_status(200, DriverStatus.BUSY, expected=DriverStatus.ONLINE)

        assert outcome == expected

    @pytest.mark.asyncio
    async def test_adjust_credit_balance(
        self,
        driver_repository: DriverRepository,
        mock_conn: MagicMock,
    ) -> None:
        """Долг за наличные копится атомарно и может уйти в минус."""
        mock_conn.fetchval.return_value = -122200

        balance = await driver_repository.adjust_credit_balance(200, -122200)

        assert balance == -122200
        query, *args = mock_conn.fetchval.call_args.args
        assert "credit_balance = credit_balance + $2" in query
        assert args == [200, -122200]

    @pytest.mark.asyncio
    async def test_adjust_credit_balance_missing_profile(
        self,
        driver_repository: DriverRepository,
        mock_conn: MagicMock,
    ) -> None:
        mock_conn.fetchval.return_value = None

        assert await driver_repository.adjust_credit_balance(999, -1000) is None
