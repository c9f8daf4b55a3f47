"""Request-level operations: get, set and infos.

Each operation receives the decoded JSON body and a fresh ``RequestContext``.
Answers are plain dicts: ``{"code": "ok", ...}`` on success, otherwise
``{"code": <code>, "message": <text>}`` as built by ``failed``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from app.auth import check_authentication
from app.course_access import CourseAccess
from app.settings import Settings
from condition_eval import is_numeric
from content_registry import ContentRegistry
from xlate import errors
from xlate.context import RequestContext
from xlate.entity import EntityNode
from xlate.fields import is_empty

logger = logging.getLogger("xlate.api")

CONTEXT_LEVELS = {
    10: "system",
    30: "user",
    40: "coursecat",
    50: "course",
    60: "group",
    70: "module",
    80: "block",
}
SYSTEM_CONTEXT = 10


def failed(code: str = errors.ERROR, message: str = "") -> dict:
    answer = {"code": code}
    if message:
        answer["message"] = message
    return answer


def loosely_equals(value: Any, number: float) -> bool:
    """Numeric comparison that accepts numeric strings and booleans, as form values arrive."""
    if isinstance(value, bool):
        return value == bool(number)
    if isinstance(value, (int, float)):
        return value == number
    if isinstance(value, str) and is_numeric(value):
        return float(value.strip()) == number
    return False


def requested_previous(params: Mapping[str, Any]) -> bool:
    return params.get("previous") is not None


def requested_extend(params: Mapping[str, Any]) -> bool:
    return loosely_equals(params.get("extend", 0), 1)


def requested_gradebook(params: Mapping[str, Any]) -> bool:
    """Gradebook sync is requested only by a non-empty value equal to zero, such as "0.0"."""
    value = params.get("gradebook", 0)
    return not is_empty(value) and loosely_equals(value, 0)


@dataclass
class ApiCall:
    params: Mapping[str, Any]
    ctx: RequestContext
    settings: Settings
    registry: ContentRegistry

    @property
    def rows(self):
        return self.ctx.rows

    def param(self, name: str) -> Any:
        return self.params.get(name)

    def missing(self, name: str) -> bool:
        return is_empty(self.params.get(name))

    def course(self, id_or_shortname: Any) -> CourseAccess:
        return CourseAccess(self.rows, id_or_shortname)

    def course_allowed(self, course: CourseAccess) -> bool:
        return course.allowed(self.settings.allowed_courses, self.settings.restricted_courses)

    def build(self, name: str, id_or_row: Any, info: Mapping[str, Any] | None = None) -> EntityNode:
        return self.registry.build(self.ctx, name, id_or_row, info=info)


# Get


def get_course(call: ApiCall) -> dict:
    if not call.missing("courseid"):
        course = call.course(call.param("courseid"))
    elif not call.missing("shortname"):
        course = call.course(call.param("shortname"))
    else:
        return failed(errors.ERROR, "courseid or shortname must be provided")
    if not course.exists:
        return failed(errors.NOTFOUND, "course not found")
    if not call.missing("courseid") and not call.missing("shortname"):
        if call.param("shortname") != course.shortname:
            return failed(errors.NOTFOUND, "course not found")
    if not call.course_allowed(course):
        return failed(errors.RESTRICTED)
    entity = call.build("course", course.record)
    return {"code": errors.OK, "data": entity.get()}


def _course_module(call: ApiCall, course: CourseAccess) -> dict | None:
    cm = call.rows.fetch_one("course_modules", call.param("cmid"))
    if not cm or str(cm.get("course")) != str(course.id):
        return None
    return cm


def get_module(call: ApiCall) -> dict:
    if call.missing("courseid"):
        return failed(errors.ERROR, "courseid must be provided")
    if call.missing("cmid"):
        return failed(errors.ERROR, "cmid must be provided")
    course = call.course(call.param("courseid"))
    if not course.exists:
        return failed(errors.NOTFOUND, "module not found")
    if not call.course_allowed(course):
        return failed(errors.RESTRICTED)
    cm = _course_module(call, course)
    if cm is None:
        return failed(errors.NOTFOUND, "module not found")
    name = call.ctx.module_name(cm.get("module"))
    info = {"courseid": cm.get("course"), "module": name, "cmid": cm.get("id")}
    entity = call.build(name, cm.get("instance"), info=info)
    return {"code": errors.OK, "data": entity.get()}


def get_questioncategories(call: ApiCall) -> dict:
    if not call.settings.questions:
        return failed(errors.RESTRICTED)
    data: Dict[str, dict] = {}
    for category in call.rows.fetch_many("question_categories"):
        category_id = category.get("id")
        if not call.rows.fetch_one("question_bank_entries", category_id, "questioncategoryid"):
            continue
        entry = {"name": category.get("name")}
        data[str(category_id)] = entry
        context = call.rows.fetch_one("context", category.get("contextid"))
        if not context:
            continue
        try:
            level = int(context.get("contextlevel"))
        except (TypeError, ValueError):
            continue
        if level not in CONTEXT_LEVELS:
            continue
        entry["context"] = CONTEXT_LEVELS[level]
        if level != SYSTEM_CONTEXT:
            entry["instanceid"] = context.get("instanceid")
    return {"code": errors.OK, "data": data}


def get_questions(call: ApiCall) -> dict:
    if not call.settings.questions:
        return failed(errors.RESTRICTED)
    if call.missing("categoryid"):
        return failed(errors.ERROR, "categoryid must be provided")
    query = "question_latest_version_for_entry" if call.param("versions") == "last" else "question_versions_for_entry"
    questions: Dict[str, Any] = {}
    for bank in call.rows.fetch_many("question_bank_entries", call.param("categoryid"), "questioncategoryid"):
        for record in call.rows.run_query(query, {"entryid": bank.get("id")}):
            questions[str(record.get("id"))] = call.build("question", record).get()
    data: Dict[str, Any] = {"categoryid": call.param("categoryid")}
    if questions:
        data["questions"] = questions
    return {"code": errors.OK, "data": data}


def get_tags(call: ApiCall) -> dict:
    if not call.settings.tags:
        return failed(errors.RESTRICTED)
    data = {str(tag.get("id")): call.build("tag", tag).get() for tag in call.rows.fetch_many("tag")}
    return {"code": errors.OK, "data": data}


GET_ACTIONS: Dict[str, Callable[[ApiCall], dict]] = {
    "course": get_course,
    "module": get_module,
    "questioncategories": get_questioncategories,
    "questions": get_questions,
    "tags": get_tags,
}


# Set


def _finish_update(call: ApiCall, entity: EntityNode) -> dict:
    entity.update(call.param("data"), call.param("previous") or {})
    problems = entity.get_errors()
    if problems:
        answer: Dict[str, Any] = {"code": errors.PARTIAL, "errors": problems}
    else:
        answer = {"code": errors.OK}
    extended = call.ctx.probe.extensions_report()
    if extended:
        answer["extended"] = extended
    logger.info("set_done table=%s id=%s code=%s extended=%s", entity.table, entity.id, answer["code"], bool(extended))
    return answer


def _purge_course_cache(call: ApiCall, course_id: Any) -> None:
    if not call.rows.bump_revision("course", "cacherev", course_id):
        logger.warning("course_cache_purge_failed course=%s", course_id)


def set_course(call: ApiCall) -> dict:
    if call.missing("courseid"):
        return failed(errors.ERROR, "courseid must be provided")
    if call.missing("shortname"):
        return failed(errors.ERROR, "shortname must be provided")
    course = call.course(call.param("courseid"))
    if not course.exists:
        return failed(errors.NOTFOUND, "course not found")
    if call.param("shortname") != course.shortname:
        return failed(errors.NOTFOUND, "incorrect shortname")
    if not call.course_allowed(course):
        return failed(errors.RESTRICTED)
    answer = _finish_update(call, call.build("course", course.record))
    _purge_course_cache(call, course.id)
    return answer


def set_section(call: ApiCall) -> dict:
    if call.missing("courseid"):
        return failed(errors.ERROR, "courseid must be provided")
    if call.missing("sectionid"):
        return failed(errors.ERROR, "sectionid must be provided")
    course = call.course(call.param("courseid"))
    if not course.exists:
        return failed(errors.NOTFOUND, "course not found")
    section = call.rows.fetch_where("course_sections", {"course": course.id, "id": call.param("sectionid")})
    if not section:
        return failed(errors.NOTFOUND, "section not found")
    if not call.course_allowed(course):
        return failed(errors.RESTRICTED)
    answer = _finish_update(call, call.build("section", section))
    _purge_course_cache(call, course.id)
    return answer


def set_module(call: ApiCall) -> dict:
    if call.missing("courseid"):
        return failed(errors.ERROR, "courseid must be provided")
    if call.missing("module"):
        return failed(errors.ERROR, "module name must be provided")
    if call.missing("cmid"):
        return failed(errors.ERROR, "cmid must be provided")
    course = call.course(call.param("courseid"))
    if not course.exists:
        return failed(errors.NOTFOUND, "module not found")
    if not call.course_allowed(course):
        return failed(errors.RESTRICTED)
    cm = _course_module(call, course)
    if cm is None:
        return failed(errors.NOTFOUND, "module not found")
    name = call.ctx.module_name(cm.get("module"))
    if name != call.param("module"):
        return failed(errors.NOTFOUND, f"module is not a {call.param('module')}")
    answer = _finish_update(call, call.build(name, cm.get("instance")))
    _purge_course_cache(call, course.id)
    return answer


def set_question(call: ApiCall) -> dict:
    if call.missing("categoryid"):
        return failed(errors.ERROR, "categoryid must be provided")
    if call.param("questionid") is None:
        return failed(errors.ERROR, "questionid must be provided")
    if not call.settings.questions:
        return failed(errors.RESTRICTED)
    question = call.rows.fetch_one("question", call.param("questionid"))
    if not question:
        return failed(errors.NOTFOUND)
    version = call.rows.fetch_one("question_versions", call.param("questionid"), "questionid")
    if not version:
        return failed(errors.NOTFOUND, "no version")
    bank = call.rows.fetch_one("question_bank_entries", version.get("questionbankentryid"))
    if not bank or str(bank.get("questioncategoryid")) != str(call.param("categoryid")):
        return failed(errors.NOTFOUND, "wrong category")
    return _finish_update(call, call.build("question", question))


def set_tag(call: ApiCall) -> dict:
    if call.missing("id"):
        return failed(errors.ERROR, "id must be provided")
    if not call.settings.tags:
        return failed(errors.RESTRICTED)
    tag = call.rows.fetch_one("tag", call.param("id"))
    if not tag:
        return failed(errors.NOTFOUND)
    return _finish_update(call, call.build("tag", tag))


SET_OBJECTS: Dict[str, Callable[[ApiCall], dict]] = {
    "course": set_course,
    "section": set_section,
    "module": set_module,
    "question": set_question,
    "tag": set_tag,
}


# Dispatch


def process_get(call: ApiCall) -> dict:
    action = call.param("action")
    if is_empty(action):
        return failed(errors.ERROR, "action is missing")
    handler = GET_ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        return failed(errors.ERROR, f"action '{action}' unknown")
    return handler(call)


def process_set(call: ApiCall) -> dict:
    params = call.params
    if is_empty(params.get("object")):
        return failed(errors.ERROR, "object is missing")
    data = params.get("data")
    if data is None or (not isinstance(data, Mapping) and is_empty(data)):
        return failed(errors.ERROR, "data are missing")
    if not isinstance(data, Mapping):
        return failed(errors.ERROR, "incorrect data")
    call.ctx.features.apply(
        admin_previous=call.settings.previous,
        admin_gradebook=call.settings.gradebook,
        can_extend=call.ctx.probe.allowed_to_extend(),
        previous=requested_previous(params),
        extend=requested_extend(params),
        gradebook=requested_gradebook(params),
    )
    target = params.get("object")
    handler = SET_OBJECTS.get(target) if isinstance(target, str) else None
    if handler is None:
        return failed(errors.ERROR, f"object '{target}' unknown")
    return handler(call)


def _version(settings: Settings) -> Any:
    return int(settings.version) if settings.version.isdigit() else settings.version


def process_infos(call: ApiCall) -> dict:
    probe = call.ctx.probe
    return {
        "code": errors.OK,
        "version": _version(call.settings),
        "previousverification": 1 if call.settings.previous else 0,
        "fieldsextension": 1 if probe.allowed_to_extend() else 0,
        "fieldssize": 1 if probe.supports_extension() else 0,
        "gradebook": 1 if call.settings.gradebook else 0,
    }


MODES: Dict[str, Callable[[ApiCall], dict]] = {
    "get": process_get,
    "set": process_set,
    "infos": process_infos,
}


def process(mode: str, call: ApiCall, remote_addr: str | None) -> dict:
    message = check_authentication(call.settings, call.param("key"), remote_addr)
    if message:
        return failed(errors.AUTH, message)
    answer = MODES[mode](call)
    logger.info("api_call mode=%s target=%s code=%s", mode, call.param("action") or call.param("object"), answer.get("code"))
    return answer
