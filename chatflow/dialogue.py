"""Dialogue graph loading and stateless traversal for the scripted chatbot."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger("chatflow.dialogue")

SHOW_FORM = "show_form"

_INT_RE = re.compile(r"[+-]?[0-9]+")

_PROMPT_KEYS = ("question", "prompt", "text")
_LABEL_KEYS = ("text", "label")
_NEXT_KEYS = ("next_question_id", "next")


class DialogueLoadError(ValueError):
    """Raised when a dialogue definition cannot be read as a list of questions."""


@dataclass(frozen=True)
class NextQuestion:
    """Edge pointing at another question. ``question_id`` is ``None`` when unparseable."""

    question_id: Optional[int]


@dataclass(frozen=True)
class EnterCapture:
    """Edge that ends the dialogue and switches the client to the contact form."""


Next = Union[NextQuestion, EnterCapture]


@dataclass(frozen=True)
class Option:
    id: Optional[int]
    label: str
    next: Next


@dataclass(frozen=True)
class Question:
    id: Optional[int]
    prompt: str
    options: Tuple[Option, ...] = ()

    def option(self, option_id: int) -> Optional[Option]:
        for candidate in self.options:
            if candidate.id == option_id:
                return candidate
        return None


@dataclass(frozen=True)
class Unavailable:
    """The graph is empty, either because loading failed or it has no questions."""


@dataclass(frozen=True)
class TerminalCapture:
    question_id: int
    option_id: int


@dataclass(frozen=True)
class InvalidQuestion:
    question_id: Any


@dataclass(frozen=True)
class InvalidOption:
    question_id: int
    option_id: Any


@dataclass(frozen=True)
class BrokenEdge:
    question_id: int
    option_id: int
    target: Optional[int]


AdvanceResult = Union[Question, TerminalCapture, InvalidQuestion, InvalidOption, BrokenEdge]


@dataclass(frozen=True)
class DialogueGraph:
    """Read-only question graph shared by every request for the process lifetime."""

    questions: Tuple[Question, ...] = ()
    _index: Dict[int, Question] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for question in self.questions:
            # Duplicate ids resolve to the first definition.
            if question.id is not None and question.id not in self._index:
                self._index[question.id] = question

    def __len__(self) -> int:
        return len(self.questions)

    @property
    def is_empty(self) -> bool:
        return not self.questions

    @property
    def entry(self) -> Optional[Question]:
        return self.questions[0] if self.questions else None

    def get(self, question_id: int) -> Optional[Question]:
        return self._index.get(question_id)


def coerce_id(value: Any) -> Optional[int]:
    """Return ``value`` as an int identifier, or ``None`` if it is not one.

    Integers pass through, integral floats and integer strings are converted.
    Booleans, ``None`` and everything else count as "not found".
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        return int(text) if _INT_RE.fullmatch(text) else None
    return None


def _first(raw: Dict[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return default


def parse_next(value: Any) -> Next:
    if value == SHOW_FORM:
        return EnterCapture()
    return NextQuestion(coerce_id(value))


def _parse_option(raw: Any) -> Option:
    if not isinstance(raw, dict):
        raise DialogueLoadError(f"Option must be an object, got {type(raw).__name__}")
    return Option(
        id=coerce_id(raw.get("id")),
        label=str(_first(raw, _LABEL_KEYS, "")),
        next=parse_next(_first(raw, _NEXT_KEYS)),
    )


def _parse_question(raw: Any) -> Question:
    if not isinstance(raw, dict):
        raise DialogueLoadError(f"Question must be an object, got {type(raw).__name__}")
    options = raw.get("options") or []
    if not isinstance(options, list):
        raise DialogueLoadError("Question options must be a list")
    return Question(
        id=coerce_id(raw.get("id")),
        prompt=str(_first(raw, _PROMPT_KEYS, "")),
        options=tuple(_parse_option(option) for option in options),
    )


def parse_dialogue(data: Any) -> DialogueGraph:
    """Build a :class:`DialogueGraph` from decoded JSON.

    Edges are not checked here; a dangling ``next`` only fails when traversed.
    """
    if not isinstance(data, list):
        raise DialogueLoadError(f"Dialogue definition must be a list, got {type(data).__name__}")
    return DialogueGraph(tuple(_parse_question(item) for item in data))


def load_dialogue(path: Path) -> DialogueGraph:
    """Load the dialogue definition at ``path``; any failure yields an empty graph."""

    try:
        data = json.loads(Path(path).read_text("utf-8"))
        graph = parse_dialogue(data)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, DialogueLoadError) as exc:
        logger.error("Failed to load dialogue definition from %s: %s", path, exc)
        return DialogueGraph()

    logger.info("Loaded %d dialogue questions from %s", len(graph), path)
    for question_id, option_id in dangling_edges(graph):
        logger.warning(
            "Option %s of question %s points at a missing question", option_id, question_id
        )
    return graph


def dangling_edges(graph: DialogueGraph) -> List[Tuple[Optional[int], Optional[int]]]:
    """List ``(question_id, option_id)`` pairs whose edge does not resolve."""

    broken = []
    for question in graph.questions:
        for option in question.options:
            if isinstance(option.next, EnterCapture):
                continue
            target = option.next.question_id
            if target is None or graph.get(target) is None:
                broken.append((question.id, option.id))
    return broken


def start(graph: DialogueGraph) -> Union[Question, Unavailable]:
    """Return the entry question, or :class:`Unavailable` for an empty graph."""

    entry = graph.entry
    if entry is None:
        return Unavailable()
    return entry


def advance(graph: DialogueGraph, question_id: Any, option_id: Any) -> AdvanceResult:
    """Follow the edge selected by ``option_id`` from ``question_id``.

    Pure function of its inputs; the client carries its own position.
    """
    qid = coerce_id(question_id)
    question = graph.get(qid) if qid is not None else None
    if question is None:
        return InvalidQuestion(question_id)

    oid = coerce_id(option_id)
    option = question.option(oid) if oid is not None else None
    if option is None:
        return InvalidOption(qid, option_id)

    if isinstance(option.next, EnterCapture):
        return TerminalCapture(qid, oid)

    target = option.next.question_id
    next_question = graph.get(target) if target is not None else None
    if next_question is None:
        return BrokenEdge(qid, oid, target)
    return next_question


__all__ = [
    "SHOW_FORM",
    "AdvanceResult",
    "BrokenEdge",
    "DialogueGraph",
    "DialogueLoadError",
    "EnterCapture",
    "InvalidOption",
    "InvalidQuestion",
    "Next",
    "NextQuestion",
    "Option",
    "Question",
    "TerminalCapture",
    "Unavailable",
    "advance",
    "coerce_id",
    "dangling_edges",
    "load_dialogue",
    "parse_dialogue",
    "parse_next",
    "start",
]
