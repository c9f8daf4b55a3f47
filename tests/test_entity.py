import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import MemoryRowStore, MemorySchemaInspector
from xlate.collection import EntitiesCollection
from xlate.context import RequestContext
from xlate.entity import EntityNode, resolve_join, split_alias
from xlate.schema_probe import SchemaProbe


def _ctx(tables):
    return RequestContext(rows=MemoryRowStore(tables), probe=SchemaProbe(MemorySchemaInspector()))


TABLES = {
    "label": [{"id": 3, "name": "Intro", "intro": "", "course": 1}],
    "choice": [{"id": 7, "name": "Pick one", "intro": "0"}],
    "choice_options": [
        {"id": 70, "choiceid": 7, "text": "Red"},
        {"id": 71, "choiceid": 7, "text": ""},
    ],
}


class TestHelpers(unittest.TestCase):
    def test_split_alias(self) -> None:
        self.assertEqual(split_alias("courseid:id"), ("courseid", "id"))
        self.assertEqual(split_alias("name"), ("name", "name"))

    def test_resolve_join(self) -> None:
        self.assertEqual(resolve_join("choiceid", "choice"), ("choiceid", "id"))
        self.assertEqual(resolve_join({"surveyid": "sid"}, "questionnaire"), ("surveyid", "sid"))


class TestEntityNode(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = _ctx(TABLES)

    def test_get_omits_empty_and_keeps_zero(self) -> None:
        node = EntityNode(self.ctx, 3, table="label", fields=["name", "intro"])
        self.assertEqual(node.get(), {"name": "Intro"})
        node = EntityNode(self.ctx, 7, table="choice", fields=["name", "intro"])
        self.assertEqual(node.get(), {"name": "Pick one", "intro": 0})

    def test_missing_row_yields_empty_output(self) -> None:
        node = EntityNode(self.ctx, 999, table="label", fields=["name"])
        self.assertEqual(node.get(), {})
        self.assertFalse(node.update({"name": "x"}))
        self.assertEqual(node.get_errors(), {"name": "notfound"})

    def test_info_fields_are_read_only(self) -> None:
        node = EntityNode(self.ctx, 3, table="label", fields=["name"], info={"cmid": 101, "module": "label"})
        self.assertEqual(node.get(), {"cmid": 101, "module": "label", "name": "Intro"})
        self.assertFalse(node.update({"cmid": 5}))
        self.assertEqual(node.get_errors(), {"cmid": "notfound"})

    def test_alias_field(self) -> None:
        node = EntityNode(self.ctx, 3, table="label", fields=["courseid:course"])
        self.assertEqual(node.get(), {"courseid": 1})

    def test_update_round_trip(self) -> None:
        node = EntityNode(self.ctx, 3, table="label", fields=["name", "intro"])
        self.assertTrue(node.update({"name": "Introduction"}))
        self.assertIsNone(node.get_errors())
        again = EntityNode(self.ctx, 3, table="label", fields=["name", "intro"])
        self.assertEqual(again.get(), {"name": "Introduction"})

    def test_resubmitting_read_values_is_ok(self) -> None:
        node = EntityNode(self.ctx, 7, table="choice", fields=["name"])
        options = self.ctx.rows.fetch_many("choice_options", 7, "choiceid")
        node.add_child(
            "options",
            EntitiesCollection(options, "id", lambda row: EntityNode(self.ctx, row, table="choice_options", fields=["text"])),
        )
        data = node.get()
        self.assertEqual(data, {"name": "Pick one", "options": {"70": {"text": "Red"}}})
        self.assertTrue(node.update(data))
        self.assertIsNone(node.get_errors())
        self.assertEqual(self.ctx.rows.fetch_one("choice", 7)["name"], "Pick one")

    def test_partial_errors_are_isolated(self) -> None:
        node = EntityNode(self.ctx, 3, table="label", fields=["name", "intro"])
        self.assertFalse(node.update({"name": "Introduction", "intro": "Texte", "bogus": "x"}))
        self.assertEqual(node.status, "partial")
        self.assertEqual(node.get_errors(), {"intro": "empty", "bogus": "notfound"})
        self.assertEqual(self.ctx.rows.fetch_one("label", 3)["name"], "Introduction")

    def test_non_mapping_data_is_terminal(self) -> None:
        node = EntityNode(self.ctx, 3, table="label", fields=["name"])
        self.assertFalse(node.update("oops"))
        self.assertEqual(node.get_errors(), "error")

    def test_link_table(self) -> None:
        node = EntityNode(self.ctx, 70, table="choice_options")
        row = node.link_table("choice", {"id": "choiceid"}, ["choicename:name"])
        self.assertEqual(row["id"], 7)
        self.assertEqual(node.get(), {"choicename": "Pick one"})
        self.assertTrue(node.update({"choicename": "Pick two"}))
        self.assertEqual(self.ctx.rows.fetch_one("choice", 7)["name"], "Pick two")


class TestEntitiesCollection(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = _ctx(TABLES)
        rows = self.ctx.rows.fetch_many("choice_options", 7, "choiceid")
        self.collection = EntitiesCollection(
            rows, "id", lambda row: EntityNode(self.ctx, row, table="choice_options", fields=["text"])
        )

    def test_keys_are_strings_and_empty_members_skipped(self) -> None:
        self.assertEqual(sorted(self.collection.members), ["70", "71"])
        self.assertEqual(self.collection.get(), {"70": {"text": "Red"}})

    def test_update_isolates_unknown_keys(self) -> None:
        self.assertFalse(self.collection.update({"70": {"text": "Rouge"}, "99": {"text": "x"}, "71": {"text": "Bleu"}}))
        self.assertEqual(self.collection.get_errors(), {"99": "notfound", "71": {"text": "empty"}})
        self.assertEqual(self.ctx.rows.fetch_one("choice_options", 70)["text"], "Rouge")

    def test_read_only_and_info_only(self) -> None:
        self.collection.mark(read_only=True)
        self.assertFalse(self.collection.update({"70": {"text": "Rouge"}}))
        self.assertEqual(self.collection.get_errors(), "notfound")
        self.assertEqual(self.collection.get(), {"70": {"text": "Red"}})
        self.collection.mark(info_only=True)
        self.assertIsNone(self.collection.get())

    def test_non_mapping_payload(self) -> None:
        self.assertFalse(self.collection.update(["Rouge"]))
        self.assertEqual(self.collection.get_errors(), "error")

    def test_empty_collection(self) -> None:
        empty = EntitiesCollection([], "id", lambda row: None)
        self.assertIsNone(empty.get())


if __name__ == "__main__":
    unittest.main()
