"""Tests for sf_common.id_generator and sf_common.datetime_utils."""

import re
from datetime import UTC, datetime
from unittest.mock import patch

from src.sf_common.datetime_utils import isoformat_or_none, parse_iso, utc_now
from src.sf_common.id_generator import OrderNumberGenerator, SnowflakeIdGenerator

_ORDER_NUMBER = re.compile(r"^ORD-\d{8}-\d{6}$")


class TestSnowflakeIdGenerator:
    def test_returns_str(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        assert isinstance(gen.next_id(), str)

    def test_unique_ids(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        ids = {gen.next_id() for _ in range(1000)}
        assert len(ids) == 1000

    def test_monotonically_increasing(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        prev = int(gen.next_id())
        for _ in range(100):
            current = int(gen.next_id())
            assert current > prev
            prev = current


class TestOrderNumberGenerator:
    def test_format(self) -> None:
        number = OrderNumberGenerator().next(datetime(2026, 3, 1, 9, 30, tzinfo=UTC))
        assert _ORDER_NUMBER.match(number)
        assert number.startswith("ORD-20260301-")

    def test_uses_current_date_by_default(self) -> None:
        number = OrderNumberGenerator().next()
        assert number[4:12] == f"{datetime.now(UTC):%Y%m%d}"

    def test_same_millisecond_can_collide(self) -> None:
        """The random offset is the only spread inside one millisecond."""
        now = datetime(2026, 3, 1, tzinfo=UTC)
        gen = OrderNumberGenerator()
        with patch("src.sf_common.id_generator.secrets.randbelow", return_value=42):
            assert gen.next(now) == gen.next(now)


class TestDatetimeUtils:
    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo == UTC

    def test_isoformat_or_none(self) -> None:
        assert isoformat_or_none(None) is None
        assert isoformat_or_none(datetime(2026, 1, 2, tzinfo=UTC)) == "2026-01-02T00:00:00+00:00"

    def test_parse_iso_roundtrip_value(self) -> None:
        assert parse_iso("2026-01-02T00:00:00+00:00") == datetime(2026, 1, 2, tzinfo=UTC)
