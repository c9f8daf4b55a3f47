import os
import sys
import unittest
from types import MappingProxyType


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from condition_eval import (
    ConditionDepthError,
    ConditionSchemaError,
    UnknownOpError,
    VarResolveError,
    eval_condition,
    is_numeric,
)


class TestConditionEval(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = {
            "record": {"id": 1, "qtype": "multichoice", "questiontext": "12", "sequence": None},
        }

    def test_and_or_not_empty(self) -> None:
        self.assertTrue(eval_condition({"op": "and", "children": []}, self.ctx))
        self.assertFalse(eval_condition({"op": "or", "children": []}, self.ctx))
        self.assertTrue(
            eval_condition(
                {"op": "not", "children": [{"op": "eq", "left": {"literal": 1}, "right": {"literal": 2}}]},
                self.ctx,
            )
        )

    def test_eq_neq(self) -> None:
        cond = {"op": "eq", "left": {"var": "record.qtype"}, "right": {"literal": "multichoice"}}
        self.assertTrue(eval_condition(cond, self.ctx))
        cond = {"op": "neq", "left": {"var": "record.qtype"}, "right": {"literal": "match"}}
        self.assertTrue(eval_condition(cond, self.ctx))

    def test_in_not_in(self) -> None:
        cond = {"op": "in", "left": {"var": "record.qtype"}, "right": {"literal": ["match", "multichoice"]}}
        self.assertTrue(eval_condition(cond, self.ctx))
        cond = {"op": "not_in", "left": {"var": "record.qtype"}, "right": {"literal": ("essay", "truefalse")}}
        self.assertTrue(eval_condition(cond, self.ctx))

    def test_exists_not_exists(self) -> None:
        self.assertTrue(eval_condition({"op": "exists", "left": {"var": "record.id"}}, self.ctx))
        self.assertTrue(eval_condition({"op": "not_exists", "left": {"var": "record.sequence"}}, self.ctx))
        self.assertTrue(eval_condition({"op": "not_exists", "left": {"var": "record.missing"}}, self.ctx))

    def test_numeric(self) -> None:
        self.assertTrue(eval_condition({"op": "numeric", "left": {"var": "record.questiontext"}}, self.ctx))
        self.assertTrue(is_numeric(" 3.5"))
        self.assertTrue(is_numeric(7))
        self.assertFalse(is_numeric("Pick"))
        self.assertFalse(is_numeric(""))
        self.assertFalse(is_numeric(True))

    def test_frozen_conditions(self) -> None:
        cond = MappingProxyType(
            {"op": "eq", "left": MappingProxyType({"var": "record.id"}), "right": MappingProxyType({"literal": 1})}
        )
        self.assertTrue(eval_condition(cond, self.ctx))

    def test_depth_limit(self) -> None:
        cond = {"op": "not", "children": [{"op": "not", "children": [{"op": "not", "children": [{"op": "eq", "left": {"literal": 1}, "right": {"literal": 1}}]}]}]}
        with self.assertRaises(ConditionDepthError):
            eval_condition(cond, self.ctx, depth_limit=2)

    def test_var_resolution(self) -> None:
        cond = {"op": "eq", "left": {"var": "record.missing"}, "right": {"literal": 1}}
        with self.assertRaises(VarResolveError):
            eval_condition(cond, self.ctx)

    def test_schema_errors(self) -> None:
        with self.assertRaises(ConditionSchemaError):
            eval_condition({"op": "and"}, self.ctx)
        with self.assertRaises(ConditionSchemaError):
            eval_condition({"op": "in", "left": {"literal": 1}, "right": {"literal": 2}}, self.ctx)
        with self.assertRaises(UnknownOpError):
            eval_condition({"op": "gt", "left": {"literal": 1}, "right": {"literal": 2}}, self.ctx)


if __name__ == "__main__":
    unittest.main()
