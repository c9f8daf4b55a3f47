"""Declarations of the content types exposed for translation.

Each entry names the primary table and an ordered list of child
declarations. A bare string is shorthand for ``{"field": name}``. Child kinds:

``field``
    Column of the primary row (``"alias:column"`` allowed). Flags:
    ``read_only``, ``info_only``, ``to_check``, ``gradebook``.
``link``
    Row of another table joined on ``join`` (a target column matched against
    this row's id, or ``{target_column: this_column}``). Its ``fields`` become
    children. ``{column}`` placeholders in the table name are filled from the
    primary row; ``fallback`` is tried when no row matches.
``collection``
    Rows of a child table keyed by ``index`` (default: the table id),
    represented either by a named ``entity`` type or by inline ``fields``.
    ``through`` resolves an intermediate row the join is made against.
``computed``
    Read-only value produced by a named computation.

Any child may carry a ``when`` condition (see ``condition_eval``) evaluated
against ``{"record": <primary row>}``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping

FEEDBACK_FIELDS = ("correctfeedback", "partiallycorrectfeedback", "incorrectfeedback")

# Question types whose options carry no combined feedback.
QTYPES_WITHOUT_FEEDBACK = ["multianswer", "numerical", "truefalse", "essay", "shortanswer"]
QTYPES_WITH_OWN_OPTIONS = {
    "multichoice": ("qtype_multichoice_options", "questionid"),
    "match": ("qtype_match_options", "questionid"),
    "ordering": ("qtype_ordering_options", "questionid"),
    "randomsamatch": ("qtype_randomsamatch_options", "questionid"),
    "calculated": ("question_calculated_options", "question"),
}


def column_is(column: str, value: Any) -> dict:
    return {"op": "eq", "left": {"var": f"record.{column}"}, "right": {"literal": value}}


def column_not_in(column: str, values: list) -> dict:
    return {"op": "not_in", "left": {"var": f"record.{column}"}, "right": {"literal": list(values)}}


def column_not_numeric(column: str) -> dict:
    return {"op": "not", "children": [{"op": "numeric", "left": {"var": f"record.{column}"}}]}


def _question_children() -> list:
    children: list = [
        {"field": "questiontext", "when": column_not_numeric("questiontext")},
        "generalfeedback",
    ]
    for qtype, (table, join) in QTYPES_WITH_OWN_OPTIONS.items():
        children.append({"link": table, "join": join, "fields": FEEDBACK_FIELDS, "when": column_is("qtype", qtype)})
    children.append(
        {
            "link": "qtype_{qtype}",
            "join": "questionid",
            "fields": FEEDBACK_FIELDS,
            "when": column_not_in("qtype", QTYPES_WITHOUT_FEEDBACK + list(QTYPES_WITH_OWN_OPTIONS)),
            "fallback": {"link": "question_{qtype}", "join": "question", "fields": FEEDBACK_FIELDS},
        }
    )
    children += [
        {"collection": "answers", "table": "question_answers", "join": "question", "fields": ("answer", "feedback")},
        {
            "collection": "subquestions",
            "table": "qtype_match_subquestions",
            "join": "questionid",
            "fields": ("questiontext", "answertext"),
            "when": column_is("qtype", "match"),
        },
        {"collection": "hints", "table": "question_hints", "join": "questionid", "fields": ("hint",)},
    ]
    return children


def _unilabel_collection(kind: str, key: str, table: str, join: str, fields: tuple) -> dict:
    return {
        "collection": key,
        "table": table,
        "join": join,
        "fields": fields,
        "through": {"table": f"unilabeltype_{kind}", "join": "unilabelid"},
        "when": column_is("unilabeltype", kind),
    }


_CONTENT_TYPES: dict = {
    "course": {
        "table": "course",
        "children": [
            {"field": "courseid:id", "read_only": True, "to_check": True},
            {"field": "shortname", "read_only": True, "to_check": True},
            "fullname",
            "summary",
            {
                "collection": "sections",
                "entity": "section",
                "table": "course_sections",
                "join": {"course": "id"},
                "index": "id",
                "read_only": True,
            },
        ],
    },
    "section": {
        "table": "course_sections",
        "children": ["name", "summary", {"computed": "modules", "source": "section_modules"}],
    },
    "tag": {
        "table": "tag",
        "children": ["rawname", "description"],
    },
    "question": {
        "table": "question",
        "children": _question_children(),
    },
    "choice": {
        "table": "choice",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            {"collection": "options", "table": "choice_options", "join": "choiceid", "fields": ("text",)},
        ],
    },
    "glossary": {
        "table": "glossary",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            {"collection": "categories", "table": "glossary_categories", "join": "glossaryid", "fields": ("name",)},
            {"collection": "entries", "entity": "glossary_entry", "table": "glossary_entries", "join": "glossaryid"},
        ],
    },
    "glossary_entry": {
        "table": "glossary_entries",
        "children": [
            "concept",
            "definition",
            {"collection": "aliases", "table": "glossary_alias", "join": "entryid", "fields": ("alias",)},
        ],
    },
    "lesson": {
        "table": "lesson",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            {"collection": "pages", "table": "lesson_pages", "join": "lessonid", "fields": ("title", "contents")},
            {"collection": "answers", "table": "lesson_answers", "join": "lessonid", "fields": ("answer", "response")},
        ],
    },
    "questionnaire": {
        "table": "questionnaire",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            {
                "link": "questionnaire_survey",
                "join": {"id": "sid"},
                "fields": ("title", "subtitle", "info", "thank_head", "thank_body", "feedbacknotes"),
            },
            {
                "collection": "questions",
                "entity": "questionnaire_question",
                "table": "questionnaire_question",
                "join": {"surveyid": "sid"},
            },
            {
                "collection": "sections",
                "entity": "questionnaire_section",
                "table": "questionnaire_fb_sections",
                "join": {"surveyid": "sid"},
            },
        ],
    },
    "questionnaire_question": {
        "table": "questionnaire_question",
        "children": [
            "content",
            "extradata",
            {"collection": "choices", "table": "questionnaire_quest_choice", "join": "question_id", "fields": ("content",)},
        ],
    },
    "questionnaire_section": {
        "table": "questionnaire_fb_sections",
        "children": [
            "sectionheading",
            {"collection": "feedbacks", "table": "questionnaire_feedback", "join": "sectionid", "fields": ("feedbacktext",)},
        ],
    },
    "quiz": {
        "table": "quiz",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            {"collection": "feedback", "table": "quiz_feedback", "join": "quizid", "fields": ("feedbacktext",)},
            {"collection": "grade_items", "table": "quiz_grade_items", "join": "quizid", "fields": ("name",)},
            {"collection": "sections", "table": "quiz_sections", "join": "quizid", "fields": ("heading",)},
        ],
    },
    "stickynotes": {
        "table": "stickynotes",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            *[f"color{n}_meaning" for n in range(1, 7)],
            {"collection": "columns", "table": "stickynotes_column", "join": "stikyid", "fields": ("title",)},
        ],
    },
    "unilabel": {
        "table": "unilabel",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            _unilabel_collection("accordion", "segments", "unilabeltype_accordion_seg", "accordionid", ("heading", "content")),
            _unilabel_collection("carousel", "slides", "unilabeltype_carousel_slide", "carouselid", ("caption",)),
            _unilabel_collection("grid", "tiles", "unilabeltype_grid_tile", "gridid", ("title", "content")),
        ],
    },
    "workshop": {
        "table": "workshop",
        "children": [
            {"field": "name", "gradebook": True},
            "intro",
            "instructauthors",
            "instructreviewers",
            "conclusion",
            {"collection": "accumulatives", "table": "workshopform_accumulative", "join": "workshopid", "fields": ("description",)},
            {"collection": "aspects", "table": "workshopform_comments", "join": "workshopid", "fields": ("description",)},
            {
                "collection": "numerrors",
                "table": "workshopform_numerrors",
                "join": "workshopid",
                "fields": ("description", "grade0", "grade1"),
            },
            {"collection": "rubrics", "entity": "workshop_rubric", "table": "workshopform_rubric", "join": "workshopid"},
        ],
    },
    "workshop_rubric": {
        "table": "workshopform_rubric",
        "children": [
            "description",
            {"collection": "levels", "table": "workshopform_rubric_levels", "join": "dimensionid", "fields": ("definition",)},
        ],
    },
}

# Activities without a declaration expose these columns of their own table.
GENERIC_MODULE_FIELDS = ("name", "intro")


def normalize_child(child: Any) -> Any:
    if isinstance(child, str):
        return {"field": child}
    if not isinstance(child, Mapping):
        return child
    item = dict(child)
    if isinstance(item.get("fallback"), Mapping):
        item["fallback"] = normalize_child(item["fallback"])
    return item


def normalize_catalog(raw: Mapping[str, Any]) -> dict:
    catalog = {}
    for name, spec in raw.items():
        item = dict(spec) if isinstance(spec, Mapping) else {}
        item["name"] = name
        item["children"] = [normalize_child(c) for c in item.get("children") or []]
        catalog[name] = item
    return catalog


def freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


CATALOG: Mapping[str, Mapping[str, Any]] = freeze(normalize_catalog(_CONTENT_TYPES))
