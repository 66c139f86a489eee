import pytest
import yaml

from camelsource.flow import marshal_camel_flows


def test_simple_flow_layout():
    assert marshal_camel_flows([{"from": {"uri": "timer:tick"}}]) == "- from:\n    uri: timer:tick\n"


def test_nested_flow_round_trip():
    flows = [
        {
            "from": {
                "uri": "timer:tick?period=3s",
                "steps": [{"set-body": {"constant": "Hello world"}}],
            }
        }
    ]
    assert yaml.safe_load(marshal_camel_flows(flows)) == flows


def test_keys_are_sorted():
    text = marshal_camel_flows([{"b": 1, "a": 2}])
    assert text.index("a:") < text.index("b:")


def test_digit_runs_sorted_by_value():
    text = marshal_camel_flows([{"step10": 1, "step2": 2}])
    assert text.index("step2:") < text.index("step10:")
    assert yaml.safe_load(text) == [{"step10": 1, "step2": 2}]


def test_empty_list():
    assert marshal_camel_flows([]) == "[]\n"


def test_tuple_input_round_trip():
    flows = ({"from": {"uri": "timer:a"}}, {"from": {"uri": "timer:b"}})
    assert yaml.safe_load(marshal_camel_flows(flows)) == list(flows)


def test_shared_objects_have_no_anchors():
    shared = {"constant": "x"}
    flows = [{"from": {"steps": [{"set-body": shared}, {"set-header": shared}]}}]
    text = marshal_camel_flows(flows)
    assert "&" not in text
    assert yaml.safe_load(text) == flows


def test_unrepresentable_value_raises():
    with pytest.raises(TypeError):
        marshal_camel_flows([{"from": object()}])