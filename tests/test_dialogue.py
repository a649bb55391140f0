import json
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from chatflow.dialogue import (
    BrokenEdge,
    DialogueLoadError,
    EnterCapture,
    InvalidOption,
    InvalidQuestion,
    NextQuestion,
    TerminalCapture,
    Unavailable,
    advance,
    coerce_id,
    dangling_edges,
    load_dialogue,
    parse_dialogue,
    start,
)

SAMPLE = [
    {
        "id": 1,
        "prompt": "Hi",
        "options": [
            {"id": 1, "label": "Yes", "next": 2},
            {"id": 2, "label": "No", "next": "show_form"},
        ],
    },
    {"id": 2, "prompt": "Great", "options": []},
]


def build_sample_graph():
    return parse_dialogue(SAMPLE)


def test_start_returns_entry_question():
    graph = build_sample_graph()
    first = start(graph)
    assert first.id == 1
    assert first.prompt == "Hi"
    assert start(graph) == first


def test_start_on_empty_graph_is_unavailable():
    assert isinstance(start(parse_dialogue([])), Unavailable)


def test_entry_is_first_defined_not_lowest_id():
    graph = parse_dialogue([{"id": 7, "options": []}, {"id": 1, "options": []}])
    assert start(graph).id == 7


def test_advance_follows_edge():
    graph = build_sample_graph()
    result = advance(graph, 1, 1)
    assert result.id == 2
    assert result.prompt == "Great"


def test_advance_show_form_is_terminal():
    result = advance(build_sample_graph(), 1, 2)
    assert result == TerminalCapture(question_id=1, option_id=2)


def test_advance_unknown_option():
    assert isinstance(advance(build_sample_graph(), 1, 99), InvalidOption)


@pytest.mark.parametrize("option_id", [1, 2, 99, None])
def test_advance_unknown_question_ignores_option(option_id):
    assert isinstance(advance(build_sample_graph(), 5, option_id), InvalidQuestion)


def test_advance_dangling_edge_is_broken():
    graph = parse_dialogue([{"id": 1, "options": [{"id": 1, "next": 9}]}])
    assert advance(graph, 1, 1) == BrokenEdge(question_id=1, option_id=1, target=9)


def test_advance_unparseable_edge_is_broken():
    graph = parse_dialogue([{"id": 1, "options": [{"id": 1, "next": "later"}]}])
    result = advance(graph, 1, 1)
    assert isinstance(result, BrokenEdge)
    assert result.target is None


def test_advance_coerces_string_ids():
    graph = build_sample_graph()
    assert advance(graph, "1", " 1 ").id == 2
    assert isinstance(advance(graph, "abc", 1), InvalidQuestion)
    assert isinstance(advance(graph, 1, "x"), InvalidOption)
    assert isinstance(advance(graph, None, None), InvalidQuestion)


def test_option_ids_are_scoped_to_their_question():
    graph = parse_dialogue(
        [
            {"id": 1, "options": [{"id": 1, "next": 2}]},
            {"id": 2, "options": [{"id": 1, "next": "show_form"}]},
        ]
    )
    assert advance(graph, 1, 1).id == 2
    assert isinstance(advance(graph, 2, 1), TerminalCapture)


def test_graph_may_contain_cycles():
    graph = parse_dialogue(
        [
            {"id": 1, "options": [{"id": 1, "next": 2}]},
            {"id": 2, "options": [{"id": 1, "next": 1}]},
        ]
    )
    assert advance(graph, 2, 1).id == 1


def test_duplicate_ids_resolve_to_first_definition():
    graph = parse_dialogue(
        [
            {"id": 1, "prompt": "first", "options": [{"id": 1, "next": 1}]},
            {"id": 1, "prompt": "second", "options": []},
        ]
    )
    assert advance(graph, 1, 1).prompt == "first"


def test_legacy_field_names_are_accepted():
    graph = parse_dialogue(
        [
            {
                "id": 1,
                "question": "Hello?",
                "options": [{"id": 1, "text": "Sure", "next_question_id": "show_form"}],
            }
        ]
    )
    question = start(graph)
    assert question.prompt == "Hello?"
    assert question.options[0].label == "Sure"
    assert isinstance(question.options[0].next, EnterCapture)


def test_numeric_string_edge_parses_as_question():
    graph = parse_dialogue(
        [{"id": 1, "options": [{"id": 1, "next": "2"}]}, {"id": 2, "options": []}]
    )
    assert start(graph).options[0].next == NextQuestion(2)
    assert advance(graph, 1, 1).id == 2


def test_coerce_id():
    assert coerce_id(3) == 3
    assert coerce_id(3.0) == 3
    assert coerce_id("4") == 4
    assert coerce_id(3.5) is None
    assert coerce_id(True) is None
    assert coerce_id("") is None
    assert coerce_id([1]) is None


@pytest.mark.parametrize("value, expected", [(" +2 ", 2), ("-3", -3), ("1_0", None), ("١٢", None), ("1e2", None)])
def test_coerce_id_strings_are_ascii_integers(value, expected):
    assert coerce_id(value) == expected


def test_parse_rejects_non_list():
    with pytest.raises(DialogueLoadError):
        parse_dialogue({"id": 1})


def test_load_dialogue_reads_file(tmp_path: Path):
    path = tmp_path / "dialogue.json"
    path.write_text(json.dumps(SAMPLE), "utf-8")
    graph = load_dialogue(path)
    assert len(graph) == 2
    assert not graph.is_empty


def test_load_dialogue_missing_file_yields_empty_graph(tmp_path: Path):
    graph = load_dialogue(tmp_path / "missing.json")
    assert graph.is_empty
    assert isinstance(start(graph), Unavailable)


def test_load_dialogue_malformed_json_yields_empty_graph(tmp_path: Path):
    path = tmp_path / "dialogue.json"
    path.write_text("[{not json", "utf-8")
    assert load_dialogue(path).is_empty


def test_load_dialogue_keeps_dangling_edges(tmp_path: Path, caplog):
    path = tmp_path / "dialogue.json"
    path.write_text(json.dumps([{"id": 1, "options": [{"id": 1, "next": 9}]}]), "utf-8")
    with caplog.at_level("WARNING", logger="chatflow.dialogue"):
        graph = load_dialogue(path)
    assert len(graph) == 1
    assert dangling_edges(graph) == [(1, 1)]
    assert "missing question" in caplog.text


def test_bundled_dialogue_has_no_dangling_edges():
    graph = load_dialogue(Path(__file__).resolve().parents[1] / "dialogue_schema.json")
    assert not graph.is_empty
    assert dangling_edges(graph) == []
