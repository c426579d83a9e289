from unittest.mock import MagicMock

from parse_aggregate.models.pointer import PointerRef
from parse_aggregate.services.bridge import ExecutionBridge, ExecutionMode
from parse_aggregate.services.distinct import DistinctCounter, DistinctValues
from parse_aggregate.services.query import Query


def test_distinct_count_pipeline(songs):
    query = songs().where("plays", "gt", 5)
    assert DistinctCounter(query, "genre").pipeline() == [
        {"$match": {"plays": {"$gt": 5}}},
        {"$group": {"_id": "$genre"}},
        {"$count": "distinctCount"},
    ]


def test_distinct_count_without_constraints_has_no_match(songs):
    assert DistinctCounter(songs(), "genre").pipeline()[0] == {"$group": {"_id": "$genre"}}


def test_count_distinct(songs):
    assert songs().count_distinct("genre", mongo_direct=True) == 3
    assert songs().where("genre", "eq", "rock").count_distinct("plays", mongo_direct=True) == 2


def test_count_distinct_with_no_matching_rows_is_zero(songs):
    assert songs().where("genre", "eq", "metal").count_distinct("genre", mongo_direct=True) == 0


def test_count_distinct_pointer_field_reads_stored_column(songs):
    assert DistinctCounter(songs(), "artist", pointer=True).pipeline()[0] == {"$group": {"_id": "$_p_artist"}}
    assert songs().count_distinct_direct("artist", pointer=True) == 3
    assert songs().where("genre", "eq", "jazz").count_distinct("artist", pointer=True, mongo_direct=True) == 2


def test_count_distinct_tolerates_rows_without_the_field():
    bridge = MagicMock(spec=ExecutionBridge)
    bridge.execute.return_value = [{}]
    assert Query("Song", bridge=bridge).count_distinct("genre") == 0
    bridge.execute.assert_called_once()
    assert bridge.execute.call_args.args[2] is ExecutionMode.REMOTE


def test_distinct_values_pipeline(songs):
    assert DistinctValues(songs(), "genre").pipeline() == [
        {"$group": {"_id": "$genre"}},
        {"$project": {"_id": 0, "value": "$_id"}},
    ]


def test_distinct_values(songs):
    assert sorted(songs().distinct("genre", mongo_direct=True)) == ["jazz", "pop", "rock"]


def test_distinct_pointer_values_strip_a_shared_class(songs):
    ids = songs().distinct("artist", pointer=True, mongo_direct=True)
    assert sorted(ids) == ["a1", "a2", "a3"]


def test_distinct_pointer_values_as_refs(songs):
    refs = songs().where("genre", "eq", "jazz").distinct("artist", pointer=True, return_pointers=True, mongo_direct=True)
    assert set(refs) == {PointerRef(class_name="Artist", object_id="a1"), PointerRef(class_name="Artist", object_id="a2")}


def test_distinct_values_drop_nulls_and_keep_mixed_classes():
    query = Query("Song", bridge=MagicMock(spec=ExecutionBridge))
    values = DistinctValues(query, "owner", pointer=True)
    assert values.decode([{"value": "Artist$a1"}, {"value": None}, {"value": "_User$u1"}]) == ["Artist$a1", "_User$u1"]


def test_plain_strings_are_not_read_as_pointers():
    query = Query("Song", bridge=MagicMock(spec=ExecutionBridge))
    assert DistinctValues(query, "code").decode([{"value": "Rock$Roll"}]) == ["Rock$Roll"]
