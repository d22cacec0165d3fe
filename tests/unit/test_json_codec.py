"""
Unit tests for the type-preserving JSON codec.

Tests cover:
- Encoding of datetimes, sets and ordered maps
- Round trips over nested shapes
- Passthrough of malformed escaped objects
"""

import json
from collections import OrderedDict
from datetime import datetime, timedelta, timezone

from tablevc_sql.codec import Passthrough, Recognized, classify, decode, dumps, encode, loads


class TestEncode:
    """Tests for encode()."""

    def test_aware_datetime_normalized_to_utc(self):
        """Aware datetimes are stored in UTC with microseconds."""
        value = datetime(2024, 3, 1, 12, 0, 0, 1500, tzinfo=timezone(timedelta(hours=2)))

        encoded = encode(value)

        assert encoded == {
            "__typename": "EscapedDate",
            "isoString": "2024-03-01T10:00:00.001500+00:00",
        }

    def test_naive_datetime_has_no_offset(self):
        """Naive datetimes stay naive."""
        encoded = encode(datetime(2024, 3, 1, 12, 0))

        assert encoded["isoString"] == "2024-03-01T12:00:00.000000"

    def test_set_escaped(self):
        """Sets become EscapedSet objects."""
        encoded = encode({1})

        assert encoded == {"__typename": "EscapedSet", "values": [1]}

    def test_ordered_dict_escaped_in_order(self):
        """Ordered maps keep their iteration order."""
        encoded = encode(OrderedDict([("b", 2), ("a", 1)]))

        assert encoded == {"__typename": "EscapedMap", "values": [["b", 2], ["a", 1]]}

    def test_dict_with_non_string_keys_is_a_map(self):
        """A dict with a non-string key is a map, not a record."""
        encoded = encode({1: "one"})

        assert encoded == {"__typename": "EscapedMap", "values": [[1, "one"]]}

    def test_record_stays_object(self):
        """String-keyed dicts keep their field names."""
        encoded = encode({"name": "x", "nested": {"when": datetime(2020, 1, 1)}})

        assert encoded["name"] == "x"
        assert encoded["nested"]["when"]["__typename"] == "EscapedDate"

    def test_tuple_becomes_list(self):
        assert encode((1, 2)) == [1, 2]

    def test_scalars_pass_through(self):
        for value in (None, True, 3, 2.5, "text"):
            assert encode(value) == value


class TestDecode:
    """Tests for decode() and classify()."""

    def test_round_trip_nested(self):
        """Nested rich values survive encode/decode."""
        value = {
            "when": datetime(2024, 3, 1, 10, 0, 0, 123456, tzinfo=timezone.utc),
            "tags": {"a", "b"},
            "lookup": OrderedDict([(2, {"x"}), (1, [datetime(2020, 1, 1)])]),
            "items": [{"n": 1}, {"n": None}],
        }

        decoded = loads(dumps(value))

        assert decoded == value
        assert list(decoded["lookup"]) == [2, 1]
        assert isinstance(decoded["lookup"], OrderedDict)

    def test_round_trip_hashable_members(self):
        """Tuples and frozensets inside sets and map keys decode hashable."""
        pairs = {(1, 2), (3, 4)}
        tuple_keys = {(1, "a"): "x"}
        nested_sets = {frozenset({1}), frozenset({(2, 3)})}

        assert decode(encode(pairs)) == pairs
        assert decode(encode(tuple_keys)) == tuple_keys
        assert decode(encode(nested_sets)) == nested_sets
        assert loads(dumps({"tags": pairs})) == {"tags": pairs}

    def test_encoded_text_is_plain_json(self):
        """dumps() produces JSON without custom encoders."""
        text = dumps({"tags": {"x"}})

        assert json.loads(text) == {"tags": {"__typename": "EscapedSet", "values": ["x"]}}

    def test_missing_discriminator_passes_through(self):
        """An object shaped like an escape but without __typename is data."""
        value = {"isoString": "2024-01-01T00:00:00"}

        assert decode(value) == value
        assert classify(value) == Passthrough(value)

    def test_unknown_tag_passes_through(self):
        value = {"__typename": "EscapedThing", "values": []}

        assert decode(value) == value

    def test_unparseable_date_passes_through(self):
        """A bad isoString never raises."""
        value = {"__typename": "EscapedDate", "isoString": "not a date"}

        assert decode(value) == value

    def test_set_without_values_list_passes_through(self):
        value = {"__typename": "EscapedSet", "values": "abc"}

        assert decode(value) == value

    def test_map_with_bad_pair_passes_through(self):
        value = {"__typename": "EscapedMap", "values": [[1, 2, 3]]}

        assert decode(value) == value

    def test_classify_recognizes_date(self):
        outcome = classify({"__typename": "EscapedDate", "isoString": "2024-01-01T00:00:00"})

        assert outcome == Recognized("EscapedDate", "2024-01-01T00:00:00")
