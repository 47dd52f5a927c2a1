"""Tests for editor-form -> execution-form conversion."""

import copy
import json

from comfyx.workflow import convert_workflow_text, is_execution_form, to_execution_form

EDITOR = {
    "last_node_id": 6,
    "last_link_id": 4,
    "nodes": [
        {
            "id": 4,
            "type": "CheckpointLoaderSimple",
            "inputs": [
                {"name": "ckpt_name", "type": "COMBO", "widget": {"name": "ckpt_name"}, "link": None},
            ],
            "widgets_values": ["sd15.safetensors"],
        },
        {
            "id": 6,
            "type": "CLIPTextEncode",
            "inputs": [
                {"name": "clip", "type": "CLIP", "link": 3},
                {"name": "text", "type": "STRING", "widget": {"name": "text"}, "link": None},
            ],
            "widgets_values": ["a cat in a hat"],
        },
        {
            "id": 3,
            "type": "KSampler",
            "inputs": [
                {"name": "model", "type": "MODEL", "link": 1},
                {"name": "positive", "type": "CONDITIONING", "link": 4},
                {"name": "seed", "type": "INT", "widget": {"name": "seed"}, "link": None},
                {"name": "steps", "type": "INT", "widget": {"name": "steps"}, "link": None},
            ],
            "widgets_values": [42, 20],
        },
    ],
    "links": [
        [1, 4, 0, 3, 0, "MODEL"],
        [3, 4, 1, 6, 0, "CLIP"],
        [4, 6, 0, 3, 1, "CONDITIONING"],
    ],
}


def test_editor_form_is_converted():
    result = to_execution_form(copy.deepcopy(EDITOR))
    assert result == {
        "4": {"class_type": "CheckpointLoaderSimple", "inputs": {"ckpt_name": "sd15.safetensors"}},
        "6": {"class_type": "CLIPTextEncode", "inputs": {"clip": ["4", 1], "text": "a cat in a hat"}},
        "3": {
            "class_type": "KSampler",
            "inputs": {"model": ["4", 0], "positive": ["6", 0], "seed": 42, "steps": 20},
        },
    }


def test_node_and_link_counts_are_preserved():
    result = to_execution_form(copy.deepcopy(EDITOR))
    assert len(result) == len(EDITOR["nodes"])

    refs = [
        value
        for node in result.values()
        for value in node["inputs"].values()
        if isinstance(value, list)
    ]
    expected = sorted([str(link[1]), link[2]] for link in EDITOR["links"])
    assert sorted(refs) == expected


def test_execution_form_passes_through_unchanged():
    document = {"1": {"class_type": "X", "inputs": {"a": 1}}}
    assert is_execution_form(document)
    assert to_execution_form(document) is document


def test_converted_output_is_already_execution_form():
    converted = to_execution_form(copy.deepcopy(EDITOR))
    assert to_execution_form(converted) is converted


def test_text_conversion_of_execution_form_returns_input_text():
    text = '{"1": {"class_type": "X", "inputs": {}}}'
    assert convert_workflow_text(text) is text


def test_text_conversion_of_editor_form_is_indented_json():
    text = convert_workflow_text(json.dumps(EDITOR))
    assert text.startswith('{\n  "4": {')
    assert json.loads(text) == to_execution_form(copy.deepcopy(EDITOR))


def test_dict_style_links():
    doc = {
        "nodes": [
            {"id": 1, "type": "Source", "inputs": []},
            {"id": 2, "type": "Sink", "inputs": [{"name": "x", "link": 10}]},
        ],
        "links": [{"id": 10, "origin_id": 1, "origin_slot": 2, "target_id": 2, "target_slot": 0}],
    }
    assert to_execution_form(doc)["2"]["inputs"] == {"x": ["1", 2]}


def test_unknown_link_id_leaves_input_absent():
    doc = {"nodes": [{"id": 1, "type": "Sink", "inputs": [{"name": "x", "link": 99}]}], "links": []}
    assert to_execution_form(doc) == {"1": {"class_type": "Sink", "inputs": {}}}


def test_missing_widget_values_leave_inputs_absent():
    doc = {
        "nodes": [{
            "id": 1,
            "type": "Thing",
            "inputs": [
                {"name": "a", "widget": {"name": "a"}},
                {"name": "b", "widget": {"name": "b"}},
            ],
            "widgets_values": ["only-one"],
        }],
    }
    assert to_execution_form(doc)["1"]["inputs"] == {"a": "only-one"}


def test_named_widget_values_are_not_consumed():
    doc = {
        "nodes": [{
            "id": 1,
            "type": "VHS_VideoCombine",
            "inputs": [{"name": "frame_rate", "widget": {"name": "frame_rate"}}],
            "widgets_values": {"frame_rate": 8},
        }],
    }
    assert to_execution_form(doc)["1"]["inputs"] == {}


def test_widget_values_are_copied():
    source = {
        "nodes": [{
            "id": 1,
            "type": "Thing",
            "inputs": [{"name": "size", "widget": {"name": "size"}}],
            "widgets_values": [[512, 512]],
        }],
    }
    result = to_execution_form(source)
    result["1"]["inputs"]["size"].append(1)
    assert source["nodes"][0]["widgets_values"] == [[512, 512]]


def test_node_without_type_fails_whole_conversion():
    doc = {"nodes": [{"id": 1, "type": "Ok"}, {"id": 2}], "links": []}
    assert to_execution_form(doc) is None


def test_missing_nodes_array_fails():
    assert to_execution_form({"links": []}) is None
    assert to_execution_form([1, 2]) is None


def test_unparsable_text_fails():
    assert convert_workflow_text("{nope") is None


def test_duplicate_node_ids_fail_whole_conversion():
    doc = {"nodes": [{"id": 1, "type": "A"}, {"id": "1", "type": "B"}], "links": []}
    assert to_execution_form(doc) is None
    assert convert_workflow_text(json.dumps(doc)) is None


def test_link_without_origin_leaves_input_absent():
    doc = {
        "nodes": [
            {"id": 1, "type": "Source"},
            {"id": 2, "type": "Sink", "inputs": [{"name": "x", "link": 10}, {"name": "y", "link": 11}]},
        ],
        "links": [
            {"id": 10, "origin_slot": 0, "target_id": 2, "target_slot": 0},
            [11, None, 0, 2, 1, "IMAGE"],
        ],
    }
    assert to_execution_form(doc)["2"]["inputs"] == {}
