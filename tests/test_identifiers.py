"""Unit tests for anomaly IDs and cache keys."""

from datetime import datetime, timedelta, timezone

import pytest

from investigation.identifiers import (
    ADJECTIVES,
    COLORS_COOL,
    COLORS_ORANGE,
    COLORS_RED,
    MODELS,
    generate_anomaly_id,
    generate_cache_key,
    round_to_minute,
    simple_hash,
    to_base36,
)
from investigation.models import AnomalyCategory

TIME_FILTER = "timestamp BETWEEN '2025-01-01 09:30:00' AND '2025-01-01 10:30:00'"
START = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
END = datetime(2025, 1, 1, 10, 5, 0, tzinfo=timezone.utc)


class TestSimpleHash:
    """Tests for the rolling hash."""

    def test_empty_string(self) -> None:
        assert simple_hash("") == 0

    def test_known_values(self) -> None:
        """Matches h = h * 31 + code."""
        assert simple_hash("a") == 97
        assert simple_hash("ab") == 97 * 31 + 98
        assert simple_hash("abc") == (97 * 31 + 98) * 31 + 99

    def test_wraps_to_32_bits(self) -> None:
        """Long inputs stay within the signed 32-bit range."""
        value = simple_hash("x" * 1000)
        assert 0 <= value <= 2**31

    def test_deterministic(self) -> None:
        assert simple_hash("same input") == simple_hash("same input")


class TestBase36:
    """Tests for base-36 rendering."""

    @pytest.mark.parametrize(
        "value,expected",
        [(0, "0"), (35, "z"), (36, "10"), (1295, "zz"), (46656, "1000")],
    )
    def test_values(self, value: int, expected: str) -> None:
        assert to_base36(value) == expected


class TestRoundToMinute:
    """Tests for minute rounding."""

    def test_exact_minute(self) -> None:
        assert round_to_minute(START) == "2025-01-01T10:00:00.000Z"

    def test_rounds_down_below_half(self) -> None:
        assert round_to_minute(START + timedelta(seconds=29)) == "2025-01-01T10:00:00.000Z"

    def test_half_rounds_up(self) -> None:
        assert round_to_minute(START + timedelta(seconds=30)) == "2025-01-01T10:01:00.000Z"

    def test_rounds_across_hour(self) -> None:
        value = datetime(2025, 1, 1, 10, 59, 45, tzinfo=timezone.utc)
        assert round_to_minute(value) == "2025-01-01T11:00:00.000Z"

    def test_converts_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        value = datetime(2025, 1, 1, 12, 0, 10, tzinfo=plus_two)
        assert round_to_minute(value) == "2025-01-01T10:00:00.000Z"

    def test_naive_is_utc(self) -> None:
        assert round_to_minute(datetime(2025, 1, 1, 10, 0, 0)) == "2025-01-01T10:00:00.000Z"


class TestAnomalyId:
    """Tests for anomaly ID generation."""

    def test_format(self) -> None:
        anomaly_id = generate_anomaly_id(TIME_FILTER, "", START, END, AnomalyCategory.GREEN)
        adjective, color, model = anomaly_id.split("-")
        assert adjective in ADJECTIVES
        assert color in COLORS_COOL
        assert model in MODELS

    def test_deterministic(self) -> None:
        first = generate_anomaly_id(TIME_FILTER, "", START, END, AnomalyCategory.RED)
        second = generate_anomaly_id(TIME_FILTER, "", START, END, AnomalyCategory.RED)
        assert first == second

    def test_stable_within_rounded_minute(self) -> None:
        """Seconds of jitter within the same rounded minute keep the ID."""
        base = generate_anomaly_id(TIME_FILTER, "", START, END, AnomalyCategory.RED)
        jittered = generate_anomaly_id(
            TIME_FILTER,
            "",
            START + timedelta(seconds=20),
            END - timedelta(seconds=25),
            AnomalyCategory.RED,
        )
        assert jittered == base

    def test_minute_boundary_changes_id(self) -> None:
        ids = {
            generate_anomaly_id(
                TIME_FILTER,
                "",
                START + timedelta(minutes=offset),
                END + timedelta(minutes=offset),
                AnomalyCategory.RED,
            )
            for offset in range(5)
        }
        assert len(ids) > 1

    def test_filters_change_id(self) -> None:
        unfiltered = generate_anomaly_id(TIME_FILTER, "", START, END, AnomalyCategory.RED)
        filtered = generate_anomaly_id(
            TIME_FILTER, "AND `request.host` = 'a.com'", START, END, AnomalyCategory.RED
        )
        assert unfiltered != filtered

    @pytest.mark.parametrize(
        "category,palette",
        [
            (AnomalyCategory.RED, COLORS_RED),
            (AnomalyCategory.YELLOW, COLORS_ORANGE),
            (AnomalyCategory.GREEN, COLORS_COOL),
            (AnomalyCategory.BLUE, COLORS_COOL),
        ],
    )
    def test_palette_by_category(self, category: AnomalyCategory, palette: tuple[str, ...]) -> None:
        anomaly_id = generate_anomaly_id(TIME_FILTER, "", START, END, category)
        assert anomaly_id.split("-")[1] in palette

    def test_accepts_category_string(self) -> None:
        assert generate_anomaly_id(TIME_FILTER, "", START, END, "red") == generate_anomaly_id(
            TIME_FILTER, "", START, END, AnomalyCategory.RED
        )

    def test_words_from_hash(self) -> None:
        """Words are picked by successive modulo and quotient of the hash."""
        input_str = "|".join(
            [TIME_FILTER, "", "2025-01-01T10:00:00.000Z", "2025-01-01T10:05:00.000Z"]
        )
        h = simple_hash(input_str)
        expected = "-".join(
            [
                ADJECTIVES[h % len(ADJECTIVES)],
                COLORS_RED[(h // len(ADJECTIVES)) % len(COLORS_RED)],
                MODELS[(h // (len(ADJECTIVES) * len(COLORS_RED))) % len(MODELS)],
            ]
        )
        assert generate_anomaly_id(TIME_FILTER, "", START, END, AnomalyCategory.RED) == expected


class TestCacheKey:
    """Tests for durable cache keys."""

    def test_base36_of_hash(self) -> None:
        expected = to_base36(simple_hash(f"{TIME_FILTER}|"))
        assert generate_cache_key(TIME_FILTER, "") == expected

    def test_host_changes_key(self) -> None:
        assert generate_cache_key(TIME_FILTER, "") != generate_cache_key(
            TIME_FILTER, "AND `request.host` = 'a.com'"
        )

    def test_alphanumeric(self) -> None:
        assert generate_cache_key(TIME_FILTER, "x").isalnum()
