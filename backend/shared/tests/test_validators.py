import pytest

from shared.validators import is_hex_address, parse_csv_query, parse_string_list


class TestParseStringList:
    def test_json_array_string(self):
        result = parse_string_list('["http://a.com","http://b.com"]')
        assert result == ["http://a.com", "http://b.com"]

    def test_comma_separated_with_whitespace(self):
        result = parse_string_list("http://a.com , http://b.com")
        assert result == ["http://a.com", "http://b.com"]

    def test_passthrough_list(self):
        origins = ["http://a.com", "http://b.com"]
        assert parse_string_list(origins) == origins

    def test_empty_string_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list("")

    def test_empty_allowed(self):
        assert parse_string_list("", allow_empty=True) == []

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError, match="Invalid JSON array"):
            parse_string_list("[not valid json")

    def test_json_mixed_types_array_raises(self):
        with pytest.raises(ValueError, match="must be an array of strings"):
            parse_string_list('["http://a.com", 123]')

    def test_comma_only_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list(",")


class TestParseCsvQuery:
    def test_none_and_empty(self):
        assert parse_csv_query(None) == []
        assert parse_csv_query("") == []

    def test_lowercases_and_deduplicates(self):
        assert parse_csv_query("Active, upcoming,active,,") == ["active", "upcoming"]


class TestIsHexAddress:
    @pytest.mark.parametrize(
        "value",
        ["0x1FfE36E4C7F1cdd192d08F7569bB31Ac5D2B6C2f", "0x" + "a" * 40, " 0x" + "0" * 40 + " "],
    )
    def test_accepts_addresses(self, value):
        assert is_hex_address(value)

    @pytest.mark.parametrize("value", ["", "0x123", "1FfE36E4C7F1cdd192d08F7569bB31Ac5D2B6C2f", "0x" + "g" * 40, None, 42])
    def test_rejects_everything_else(self, value):
        assert not is_hex_address(value)
