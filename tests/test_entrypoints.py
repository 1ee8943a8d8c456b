"""Tests for entrypoint parsing."""

import pytest
from unittest.mock import Mock

from dasmlaunch.core.errors import MalformedAddress
from dasmlaunch.entrypoints import parse_address, parse_entrypoint, resolve_entrypoints


class TestParseEntrypoint:
    """Test classifying single tokens."""

    @pytest.mark.parametrize("token,expected", [
        ("0x401000", 0x401000),
        ("0X1f", 0x1F),
        ("4096", 4096),
        ("0o17", 0o17),
        ("0b101", 0b101),
        ("1_000", 1000),
        ("0", 0),
        ("0777", 0o777),
    ])
    def test_addresses(self, token: str, expected: int) -> None:
        assert parse_entrypoint(token) == expected

    @pytest.mark.parametrize("token", ["main", "_start", "sub_401000", "."])
    def test_labels(self, token: str) -> None:
        assert parse_entrypoint(token) == token

    @pytest.mark.parametrize("token", ["0xZZ", "12abc", "08", "1__0"])
    def test_malformed(self, token: str) -> None:
        """Test digit-led tokens that are not literals are rejected."""
        with pytest.raises(MalformedAddress) as exc_info:
            parse_entrypoint(token)
        assert exc_info.value.token == token

    def test_malformed_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_address("9z")

    def test_non_ascii_digit_is_label(self) -> None:
        """Test only ASCII digits start an address."""
        assert parse_entrypoint("٣abc") == "٣abc"


class TestResolveEntrypoints:
    """Test building the entrypoint list."""

    @pytest.fixture
    def engine(self) -> Mock:
        engine = Mock()
        engine.default_entrypoints.return_value = [0x1000, 0x2000]
        return engine

    def test_order_preserved(self, engine: Mock) -> None:
        result = resolve_entrypoints(["main", "0x10", "foo"], False, engine)
        assert result == ["main", 0x10, "foo"]
        engine.default_entrypoints.assert_not_called()

    def test_explicit_before_defaults(self, engine: Mock) -> None:
        """Test defaults follow the explicit entrypoints."""
        result = resolve_entrypoints(["main", "0x10"], True, engine)
        assert result == ["main", 0x10, 0x1000, 0x2000]

    def test_duplicates_keep_first(self, engine: Mock) -> None:
        result = resolve_entrypoints(["0x2000", "main", "main", "8192"], True, engine)
        assert result == [0x2000, "main", 0x1000]

    def test_defaults_only(self, engine: Mock) -> None:
        assert resolve_entrypoints([], True, engine) == [0x1000, 0x2000]

    def test_empty(self, engine: Mock) -> None:
        assert resolve_entrypoints([], False, engine) == []

    def test_malformed_aborts(self, engine: Mock) -> None:
        with pytest.raises(MalformedAddress):
            resolve_entrypoints(["main", "0xnope"], True, engine)
