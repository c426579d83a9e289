from datetime import date, datetime, timedelta, timezone

import pytest
from bson import ObjectId

from parse_aggregate.errors import ConversionError
from parse_aggregate.models.pointer import PointerRef, WireKey
from parse_aggregate.services.converter import (
    FieldMapper,
    document_to_wire,
    encode_constraints,
    encode_stage,
    iso_format,
    to_datetime,
    to_wire_date,
    to_wire_value,
)

UTC = timezone.utc
ARTIST = PointerRef(class_name="Artist", object_id="a1")


class TestFieldMapper:
    @pytest.mark.parametrize("app,wire", [
        ("plays", "plays"),
        ("play_count", "playCount"),
        ("author.first_name", "author.firstName"),
        ("object_id", "objectId"),
        ("id", "objectId"),
        ("created_at", "createdAt"),
        ("updated_at", "updatedAt"),
        ("_p_artist", "_p_artist"),
        ("$$ROOT", "$$ROOT"),
        ("track_2", "track_2"),
        ("page_10_views", "page_10Views"),
    ])
    def test_to_wire(self, app, wire):
        assert FieldMapper.to_wire(app) == wire

    def test_from_wire(self):
        assert FieldMapper.from_wire("playCount") == "play_count"
        assert FieldMapper.from_wire("objectId") == "object_id"
        assert FieldMapper.from_wire("author.firstName") == "author.first_name"

    @pytest.mark.parametrize("name", [
        "plays", "play_count", "author.first_name", "track_2", "page_10_views", "top_3_songs.title", "created_at",
    ])
    def test_wire_names_round_trip(self, name):
        assert FieldMapper.from_wire(FieldMapper.to_wire(name)) == name

    @pytest.mark.parametrize("wire,storage", [
        ("objectId", "_id"),
        ("createdAt", "_created_at"),
        ("updatedAt", "_updated_at"),
        ("playCount", "playCount"),
    ])
    def test_storage_round_trip(self, wire, storage):
        assert FieldMapper.to_storage(wire) == storage
        assert FieldMapper.from_storage(storage) == wire

    def test_pointer_storage_name(self):
        assert FieldMapper.to_storage("artist", pointer=True) == "_p_artist"
        assert FieldMapper.to_storage("_p_artist", pointer=True) == "_p_artist"
        assert FieldMapper.from_storage("_p_artist") == "artist"


class TestDates:
    def test_tagged_date_with_string_or_enum_keys(self):
        expected = datetime(2023, 9, 15, 12, 0, tzinfo=UTC)
        assert to_datetime({"__type": "Date", "iso": "2023-09-15T12:00:00.000Z"}) == expected
        assert to_datetime({WireKey.TYPE: "Date", WireKey.ISO: "2023-09-15T12:00:00.000Z"}) == expected

    def test_naive_datetime_is_utc(self):
        assert to_datetime(datetime(2023, 9, 15, 12)) == datetime(2023, 9, 15, 12, tzinfo=UTC)

    def test_aware_datetime_is_normalised(self):
        plus_two = timezone(timedelta(hours=2))
        assert to_datetime(datetime(2023, 9, 15, 14, tzinfo=plus_two)) == datetime(2023, 9, 15, 12, tzinfo=UTC)

    def test_calendar_date_is_midnight_utc(self):
        assert to_datetime(date(2023, 9, 15)) == datetime(2023, 9, 15, tzinfo=UTC)

    @pytest.mark.parametrize("text", ["2023-09-15T14:00:00+02:00", "2023-09-15T12:00:00Z", "2023-09-15T12:00:00"])
    def test_iso_strings(self, text):
        assert to_datetime(text) == datetime(2023, 9, 15, 12, tzinfo=UTC)

    def test_date_only_string(self):
        assert to_datetime("2023-09-15") == datetime(2023, 9, 15, tzinfo=UTC)

    def test_epoch_seconds(self):
        assert to_datetime(0) == datetime(1970, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize("value", [10**20, -(10**20)])
    def test_epoch_seconds_out_of_range(self, value):
        with pytest.raises(ConversionError):
            to_datetime(value)

    @pytest.mark.parametrize("value", [True, [2023, 9, 15], {"year": 2023}, object(), 1.5, "not a date"])
    def test_non_dates_fail(self, value):
        with pytest.raises(ConversionError):
            to_datetime(value)

    def test_wire_date_has_millisecond_precision(self):
        dt = datetime(2023, 9, 15, 12, 30, 1, 123456, tzinfo=UTC)
        assert iso_format(dt) == "2023-09-15T12:30:01.123Z"
        assert to_wire_date(dt) == {"__type": "Date", "iso": "2023-09-15T12:30:01.123Z"}

    def test_wire_date_decodes_to_the_same_instant(self):
        dt = datetime(2023, 9, 15, 12, 30, 1, 123000, tzinfo=UTC)
        assert to_datetime(to_wire_date(dt)) == dt


class TestWireValues:
    def test_nested_values(self):
        value = {"artist": ARTIST, "when": [date(2023, 9, 15)], WireKey.ISO: "x"}
        assert to_wire_value(value) == {
            "artist": ARTIST.to_wire(),
            "when": [{"__type": "Date", "iso": "2023-09-15T00:00:00.000Z"}],
            "iso": "x",
        }

    def test_scalars_pass_through(self):
        assert to_wire_value(3) == 3
        assert to_wire_value("rock") == "rock"
        assert to_wire_value(None) is None


class TestEncodeConstraints:
    def test_pointer_equality_becomes_prefixed_compact(self):
        match = {"artist": ARTIST.to_wire()}
        assert encode_constraints(match, "remote") == {"_p_artist": "Artist$a1"}
        assert encode_constraints(match, "storage") == {"_p_artist": "Artist$a1"}

    def test_pointer_membership_list(self):
        match = {"artist": {"$in": [ARTIST.to_wire(), "a2"]}}
        assert encode_constraints(match, "remote") == {"_p_artist": {"$in": ["Artist$a1", "Artist$a2"]}}

    def test_dates_for_each_target(self):
        match = {"createdAt": {"$gte": {"__type": "Date", "iso": "2023-09-15T00:00:00.000Z"}}}
        assert encode_constraints(match, "remote") == {"createdAt": {"$gte": "2023-09-15T00:00:00.000Z"}}
        assert encode_constraints(match, "storage") == {"_created_at": {"$gte": datetime(2023, 9, 15, tzinfo=UTC)}}

    def test_enum_keyed_dates_encode_like_string_keyed_ones(self):
        enum_keyed = {"createdAt": {"$lt": {WireKey.TYPE: "Date", WireKey.ISO: "2023-09-15T00:00:00.000Z"}}}
        string_keyed = {"createdAt": {"$lt": {"__type": "Date", "iso": "2023-09-15T00:00:00.000Z"}}}
        assert encode_constraints(enum_keyed, "storage") == encode_constraints(string_keyed, "storage")

    def test_logical_operators_recurse(self):
        match = {"$or": [{"objectId": "s1"}, {"artist": ARTIST.to_wire()}]}
        assert encode_constraints(match, "storage") == {"$or": [{"_id": "s1"}, {"_p_artist": "Artist$a1"}]}

    def test_remote_keeps_special_names(self):
        assert encode_constraints({"objectId": "s1"}, "remote") == {"objectId": "s1"}

    def test_unknown_target(self):
        with pytest.raises(ValueError):
            encode_constraints({}, "sql")


class TestEncodeStage:
    def test_group_field_references_for_storage(self):
        stage = {"$group": {"_id": {"year": {"$year": "$createdAt"}}, "count": {"$sum": 1}, "members": {"$push": "$$ROOT"}}}
        assert encode_stage(stage, "storage") == {
            "$group": {"_id": {"year": {"$year": "$_created_at"}}, "count": {"$sum": 1}, "members": {"$push": "$$ROOT"}}
        }
        assert encode_stage(stage, "remote") == stage

    def test_sort_keys(self):
        assert encode_stage({"$sort": {"createdAt": -1, "plays": 1}}, "storage") == {"$sort": {"_created_at": -1, "plays": 1}}

    def test_project_renames_only_flags(self):
        stage = {"$project": {"createdAt": 1, "title": 1, "label": "$createdAt"}}
        assert encode_stage(stage, "storage") == {"$project": {"_created_at": 1, "title": 1, "label": "$_created_at"}}

    def test_paging_stages_untouched(self):
        for stage in ({"$skip": 5}, {"$limit": 10}, {"$count": "count"}):
            assert encode_stage(stage, "storage") == stage


class TestDocumentToWire:
    def test_storage_document(self):
        oid = ObjectId("64b7f0c2a1b2c3d4e5f60718")
        doc = {
            "_id": oid,
            "_created_at": datetime(2023, 9, 15, 12, tzinfo=UTC),
            "_updated_at": datetime(2023, 9, 16, 12, tzinfo=UTC),
            "_p_artist": "Artist$a1",
            "_acl": {"*": {"r": True}, "u1": {"r": True, "w": True}},
            "_rperm": ["*"],
            "_hashed_password": "secret",
            "_include_id_artist": "a1",
            "_included_album": {"_id": "al1", "_p_label": "Label$l1", "name": "Debut"},
            "title": "Alpha",
            "meta": {"releasedAt": datetime(2020, 1, 1, tzinfo=UTC)},
        }
        assert document_to_wire(doc, "Song") == {
            "objectId": str(oid),
            "createdAt": {"__type": "Date", "iso": "2023-09-15T12:00:00.000Z"},
            "updatedAt": {"__type": "Date", "iso": "2023-09-16T12:00:00.000Z"},
            "artist": {"__type": "Pointer", "className": "Artist", "objectId": "a1"},
            "ACL": {"*": {"read": True}, "u1": {"read": True, "write": True}},
            "album": {"objectId": "al1", "label": {"__type": "Pointer", "className": "Label", "objectId": "l1"}, "name": "Debut"},
            "title": "Alpha",
            "meta": {"releasedAt": {"__type": "Date", "iso": "2020-01-01T00:00:00.000Z"}},
            "className": "Song",
        }

    def test_nested_documents_in_lists(self):
        row = {"key": "rock", "count": 1, "members": [{"_id": "s1", "_p_artist": "Artist$a1", "title": "Alpha"}]}
        assert document_to_wire(row)["members"] == [
            {"objectId": "s1", "artist": {"__type": "Pointer", "className": "Artist", "objectId": "a1"}, "title": "Alpha"}
        ]

    def test_non_mapping(self):
        assert document_to_wire(None) is None
        assert document_to_wire(["x"]) is None
