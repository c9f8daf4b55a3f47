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
from xlate.context import RequestContext
from xlate.features import UpdateFeatureFlags
from xlate.fields import DetachedValue, FieldNode, is_empty
from xlate.schema_probe import SchemaProbe


def _ctx(tables=None, columns=None, extend_enabled=False, refuse=()):
    rows = MemoryRowStore(tables or {})
    inspector = MemorySchemaInspector(columns or {}, refuse=refuse)
    return RequestContext(rows=rows, probe=SchemaProbe(inspector, extend_enabled=extend_enabled))


def _field(ctx, table="choice", row_id=7, column="name"):
    return FieldNode(ctx, ctx.rows.fetch_one(table, row_id), table, row_id, column)


USER_ID = {("user", "id"): {"data_type": "bigint", "max_length": None}}


class TestEmptiness(unittest.TestCase):
    def test_zero_strings_are_empty(self) -> None:
        for value in (None, False, "", "0", 0, 0.0, [], {}):
            self.assertTrue(is_empty(value), value)
        for value in ("0.0", " ", "a", 1, [0]):
            self.assertFalse(is_empty(value), value)


class TestFieldGet(unittest.TestCase):
    def test_get_rules(self) -> None:
        self.assertEqual(DetachedValue("Intro").get(), "Intro")
        self.assertEqual(DetachedValue("0").get(), 0)
        self.assertEqual(DetachedValue(0).get(), 0)
        self.assertIsNone(DetachedValue("").get())
        self.assertIsNone(DetachedValue(None).get())
        self.assertIsNone(DetachedValue([]).get())
        self.assertIsNone(DetachedValue("Intro").mark(info_only=True).get())

    def test_detached_value_cannot_be_written(self) -> None:
        node = DetachedValue("Intro")
        self.assertFalse(node.update("Other"))
        self.assertEqual(node.get_errors(), "notfound")
        self.assertEqual(node.get(), "Intro")


class TestFieldUpdate(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = _ctx({"choice": [{"id": 7, "name": "Pick one", "intro": "  "}]})

    def test_write_round_trip(self) -> None:
        node = _field(self.ctx)
        self.assertTrue(node.update("Choisissez"))
        self.assertIsNone(node.get_errors())
        self.assertEqual(node.get(), "Choisissez")
        self.assertEqual(self.ctx.rows.fetch_one("choice", 7)["name"], "Choisissez")

    def test_read_only_and_info_only_fail_notfound(self) -> None:
        for flag in ("read_only", "info_only"):
            node = _field(self.ctx).mark(**{flag: True})
            self.assertFalse(node.update("Other"))
            self.assertEqual(node.get_errors(), "notfound")
        self.assertEqual(self.ctx.rows.fetch_one("choice", 7)["name"], "Pick one")

    def test_missing_row_fails_notfound(self) -> None:
        node = FieldNode(self.ctx, None, "choice", None, "name")
        self.assertFalse(node.update("Other"))
        self.assertEqual(node.get_errors(), "notfound")

    def test_empty_new_or_stored_value(self) -> None:
        node = _field(self.ctx)
        self.assertFalse(node.update("   "))
        self.assertEqual(node.get_errors(), "empty")
        node = _field(self.ctx, column="intro")
        self.assertFalse(node.update("Texte"))
        self.assertEqual(node.get_errors(), "empty")

    def test_structured_value_is_an_error(self) -> None:
        node = _field(self.ctx)
        self.assertFalse(node.update({"nested": "x"}))
        self.assertEqual(node.get_errors(), "error")

    def test_previous_verification(self) -> None:
        self.ctx.features = UpdateFeatureFlags(previous_verification=True)
        node = _field(self.ctx)
        self.assertFalse(node.update("Autre", "Pick two"))
        self.assertEqual(node.get_errors(), "previous")
        node = _field(self.ctx)
        self.assertFalse(node.update("Autre", {}))
        self.assertEqual(node.get_errors(), "previous")
        node = _field(self.ctx)
        self.assertTrue(node.update("Autre", "  Pick one "))

    def test_previous_ignored_when_not_required(self) -> None:
        node = _field(self.ctx)
        self.assertTrue(node.update("Autre", "whatever"))


class TestFieldLength(unittest.TestCase):
    def _ctx(self, extend_enabled=False, refuse=()):
        columns = dict(USER_ID)
        columns[("choice", "name")] = {"data_type": "varchar", "max_length": 10}
        columns[("tool_recyclebin_course", "name")] = {"data_type": "varchar", "max_length": 10}
        return _ctx({"choice": [{"id": 7, "name": "Pick one"}]}, columns, extend_enabled, refuse)

    def test_too_long_without_extension(self) -> None:
        ctx = self._ctx()
        node = _field(ctx)
        self.assertFalse(node.update("x" * 11))
        self.assertEqual(node.get_errors(), "toolong")
        self.assertTrue(_field(ctx).update("x" * 10))

    def test_too_long_when_request_did_not_ask_to_extend(self) -> None:
        ctx = self._ctx(extend_enabled=True)
        node = _field(ctx)
        self.assertFalse(node.update("x" * 11))
        self.assertEqual(node.get_errors(), "toolong")

    def test_widens_when_allowed(self) -> None:
        ctx = self._ctx(extend_enabled=True)
        ctx.features = UpdateFeatureFlags(extend=True)
        node = _field(ctx)
        self.assertTrue(node.update("x" * 300))
        self.assertEqual(ctx.probe.current_length("choice", "name"), 511)
        self.assertEqual(ctx.probe.current_length("tool_recyclebin_course", "name"), 511)

    def test_refused_widening_reports_toolong(self) -> None:
        ctx = self._ctx(extend_enabled=True, refuse=[("choice", "name")])
        ctx.features = UpdateFeatureFlags(extend=True)
        node = _field(ctx)
        self.assertFalse(node.update("x" * 30))
        self.assertEqual(node.get_errors(), "toolong")
        self.assertEqual(ctx.rows.fetch_one("choice", 7)["name"], "Pick one")

    def test_unknown_capacity_skips_length_check(self) -> None:
        ctx = _ctx({"choice": [{"id": 7, "name": "Pick one"}]})
        self.assertTrue(_field(ctx).update("x" * 5000))


class TestGradebookSync(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = _ctx(
            {
                "choice": [{"id": 7, "name": "Pick one"}],
                "grade_items": [
                    {"id": 500, "itemname": "Pick one", "itemmodule": "choice", "iteminstance": 7},
                    {"id": 501, "itemname": "Pick one", "itemmodule": "quiz", "iteminstance": 7},
                ],
            }
        )

    def test_sync_when_enabled(self) -> None:
        self.ctx.features = UpdateFeatureFlags(update_gradebook=True)
        node = _field(self.ctx).sync_gradebook()
        self.assertTrue(node.update("Choisissez"))
        self.assertEqual(self.ctx.rows.fetch_one("grade_items", 500)["itemname"], "Choisissez")
        self.assertEqual(self.ctx.rows.fetch_one("grade_items", 501)["itemname"], "Pick one")

    def test_no_sync_when_request_flag_off(self) -> None:
        node = _field(self.ctx).sync_gradebook()
        self.assertTrue(node.update("Choisissez"))
        self.assertEqual(self.ctx.rows.fetch_one("grade_items", 500)["itemname"], "Pick one")

    def test_no_sync_for_unmarked_field(self) -> None:
        self.ctx.features = UpdateFeatureFlags(update_gradebook=True)
        self.assertTrue(_field(self.ctx).update("Choisissez"))
        self.assertEqual(self.ctx.rows.fetch_one("grade_items", 500)["itemname"], "Pick one")

    def test_gradebook_too_long_keeps_primary_write(self) -> None:
        columns = dict(USER_ID)
        columns[("grade_items", "itemname")] = {"data_type": "varchar", "max_length": 12}
        columns[("grade_items_history", "itemname")] = {"data_type": "varchar", "max_length": 12}
        ctx = _ctx(
            {
                "choice": [{"id": 7, "name": "Pick one"}],
                "grade_items": [{"id": 500, "itemname": "Pick one", "itemmodule": "choice", "iteminstance": 7}],
            },
            columns,
        )
        ctx.features = UpdateFeatureFlags(update_gradebook=True)
        node = _field(ctx).sync_gradebook()
        self.assertFalse(node.update("A much longer name"))
        self.assertEqual(node.get_errors(), "gradebookfailed")
        self.assertEqual(ctx.rows.fetch_one("choice", 7)["name"], "A much longer name")
        self.assertEqual(ctx.rows.fetch_one("grade_items", 500)["itemname"], "Pick one")


if __name__ == "__main__":
    unittest.main()
