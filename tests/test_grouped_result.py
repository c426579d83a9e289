import json
import unittest

from parse_aggregate.models.pointer import PointerRef
from parse_aggregate.models.results import GroupedResult, GroupEntry
from parse_aggregate.services.grouping import format_date_key
from parse_aggregate.models.grouping import DateUnit


class TestGroupedResult(unittest.TestCase):

    def setUp(self):
        self.result = GroupedResult.from_pairs([("rock", 2), ("jazz", 2), ("pop", 1), (None, 4)])

    def test_lookup(self):
        self.assertEqual(self.result["rock"], 2)
        self.assertEqual(self.result.get("metal", 0), 0)
        self.assertIn(None, self.result)
        self.assertNotIn("metal", self.result)
        with self.assertRaises(KeyError):
            self.result["metal"]

    def test_keys_and_counts_keep_decoded_order(self):
        self.assertEqual(self.result.keys(), ["rock", "jazz", "pop", None])
        self.assertEqual(self.result.counts(), [2, 2, 1, 4])
        self.assertEqual(len(self.result), 4)

    def test_sort_by_value_is_stable(self):
        self.assertEqual(
            list(self.result.sort_by_value_desc()),
            [(None, 4), ("rock", 2), ("jazz", 2), ("pop", 1)],
        )
        self.assertEqual(
            list(self.result.sort_by_value_asc()),
            [("pop", 1), ("rock", 2), ("jazz", 2), (None, 4)],
        )

    def test_sort_by_key_puts_null_first(self):
        self.assertEqual([k for k, _ in self.result.sort_by_key_asc()], [None, "jazz", "pop", "rock"])
        self.assertEqual([k for k, _ in self.result.sort_by_key_desc()], ["rock", "pop", "jazz", None])

    def test_views_are_cached_and_leave_entries_alone(self):
        before = self.result.entries
        first = self.result.sort_by_key_desc()
        self.assertIs(self.result.sort_by_key_desc(), first)
        self.assertIs(self.result.entries, before)
        self.assertEqual(self.result.keys(), ["rock", "jazz", "pop", None])

    def test_entries_are_frozen(self):
        entry = self.result.entries[0]
        with self.assertRaises(AttributeError):
            entry.count = 10

    def test_dict_keys_are_looked_up_by_value(self):
        result = GroupedResult([GroupEntry(key={"year": 2023, "month": 9}, count=3)])
        self.assertEqual(result[{"month": 9, "year": 2023}], 3)

    def test_pointer_keys(self):
        artist = PointerRef(class_name="Artist", object_id="a1")
        result = GroupedResult.from_pairs([(artist, 2)])
        self.assertEqual(result[PointerRef(class_name="Artist", object_id="a1")], 2)
        self.assertIn("Artist#a1", result.to_table())

    def test_members(self):
        result = GroupedResult([GroupEntry(key="rock", count=1, members=({"objectId": "s1"},))])
        self.assertEqual(result.members("rock"), ({"objectId": "s1"},))
        with self.assertRaises(KeyError):
            result.members("jazz")

    def test_to_dict_uses_label(self):
        result = GroupedResult(
            [GroupEntry(key={"year": 2023, "month": 9, "day": 15}, count=2)],
            label=lambda key: format_date_key(key, DateUnit.DAY),
        )
        self.assertEqual(result.to_dict(), {"2023-09-15": 2})

    def test_ascii_table(self):
        table = GroupedResult.from_pairs([("rock", 2), ("jazz", 10)]).to_table()
        self.assertEqual(table.splitlines(), [
            "+-------+-------+",
            "| Group | Count |",
            "+-------+-------+",
            "| rock  | 2     |",
            "| jazz  | 10    |",
            "+-------+-------+",
        ])

    def test_empty_ascii_table(self):
        self.assertEqual(GroupedResult([]).to_table(), "No results found.")

    def test_csv_and_json_tables(self):
        result = GroupedResult.from_pairs([("rock", 2), (None, 1)])
        self.assertEqual(result.to_table(format="csv"), "Group,Count\nrock,2\nnull,1\n")
        self.assertEqual(
            json.loads(result.to_table(format="json", headers=("Genre", "Songs"))),
            [{"Genre": "rock", "Songs": 2}, {"Genre": "null", "Songs": 1}],
        )

    def test_unknown_table_format(self):
        with self.assertRaises(ValueError):
            self.result.to_table(format="xml")


class TestFormatDateKey(unittest.TestCase):

    def test_labels_per_unit(self):
        key = {"year": 2023, "month": 9, "day": 5, "hour": 14, "minute": 7, "second": 3}
        self.assertEqual(format_date_key({"year": 2023}, DateUnit.YEAR), "2023")
        self.assertEqual(format_date_key(key, DateUnit.MONTH), "2023-09")
        self.assertEqual(format_date_key(key, DateUnit.DAY), "2023-09-05")
        self.assertEqual(format_date_key(key, DateUnit.HOUR), "2023-09-05 14:00")
        self.assertEqual(format_date_key(key, DateUnit.MINUTE), "2023-09-05 14:07")
        self.assertEqual(format_date_key(key, DateUnit.SECOND), "2023-09-05 14:07:03")
        self.assertEqual(format_date_key({"year": 2024, "week": 1}, DateUnit.WEEK), "2024-W01")

    def test_missing_dates(self):
        self.assertEqual(format_date_key({"year": None, "month": None}, DateUnit.MONTH), "null")
        self.assertEqual(format_date_key(None, DateUnit.DAY), "null")


if __name__ == "__main__":
    unittest.main()
