import itertools

import pytest
from flowcore.schemas.workflow import WorkflowDefinition
from flowcore.services.validation_service import ValidationService
from conftest import connect, make_node

def _workflow(nodes, connections=None):
    return WorkflowDefinition(id="wf", name="Validation", nodes=nodes, connections=connections or [])

def test_validate_valid_workflow():
    workflow = _workflow(
        [make_node("n1", "input_text"), make_node("n2", "output_display")],
        [connect("n1", "output", "n2", "input")],
    )
    errors = ValidationService.validate_workflow(workflow)
    assert errors == []

def test_unconnected_input_and_output_are_allowed():
    workflow = _workflow([make_node("n1", "input_text"), make_node("n2", "output_display")])
    assert ValidationService.validate_workflow(workflow) == []

def test_validate_empty_workflow():
    errors = ValidationService.validate_workflow(_workflow([]))
    assert errors == ["Workflow must contain at least one node"]

def test_validate_missing_input_and_output():
    workflow = _workflow(
        [make_node("t1", "process_text_transform"), make_node("t2", "process_text_transform")],
        [connect("t1", "output", "t2", "input")],
    )
    errors = ValidationService.validate_workflow(workflow)
    assert "Workflow must have at least one input node" in errors
    assert "Workflow must have at least one output node" in errors

def test_validate_dangling_connection():
    workflow = _workflow(
        [make_node("n1", "input_text"), make_node("n2", "output_display")],
        [connect("n1", "output", "ghost", "input")],
    )
    errors = ValidationService.validate_workflow(workflow)
    assert errors == ["Connection n1.output->ghost.input references non-existent target node: ghost"]

def test_validate_port_problems():
    workflow = _workflow(
        [make_node("in1", "input_text"), make_node("in2", "input_text"), make_node("out", "output_display")],
        [
            connect("in1", "output", "out", "input"),
            connect("in2", "output", "out", "input"),
            connect("in2", "output", "out", "extra"),
        ],
    )
    errors = ValidationService.validate_workflow(workflow)
    assert errors == [
        "Connection in2.output->out.input targets port out.input already fed by in1.output->out.input",
        "Connection in2.output->out.extra references non-existent input port: out.extra",
    ]

def test_validate_isolated_node():
    workflow = _workflow(
        [
            make_node("n1", "input_text"),
            make_node("n2", "process_text_transform", label="Upper"),
            make_node("n3", "output_display"),
        ],
        [connect("n1", "output", "n3", "input")],
    )
    errors = ValidationService.validate_workflow(workflow)
    assert errors == ["Node 'Upper' is not connected to any other node"]

def test_cycles_are_left_to_the_engine():
    workflow = _workflow(
        [
            make_node("n1", "input_text"),
            make_node("t1", "process_text_transform"),
            make_node("t2", "process_text_transform"),
            make_node("n3", "output_display"),
        ],
        [connect("t1", "output", "t2", "input"), connect("t2", "output", "t1", "input")],
    )
    assert ValidationService.validate_workflow(workflow) == []

@pytest.mark.parametrize("has_input,has_output,dangling,isolated", list(itertools.product([True, False], repeat=4)))
def test_valid_iff_no_violation(has_input, has_output, dangling, isolated):
    nodes = [make_node("t1", "process_text_transform"), make_node("t2", "process_text_transform")]
    connections = [connect("t1", "output", "t2", "input")]
    if has_input:
        nodes.append(make_node("in", "input_text"))
    if has_output:
        nodes.append(make_node("out", "output_display"))
    if dangling:
        connections.append(connect("t2", "output", "ghost", "input"))
    if isolated:
        nodes.append(make_node("lonely", "control_loop"))

    errors = ValidationService.validate_workflow(_workflow(nodes, connections))
    violated = (not has_input) or (not has_output) or dangling or isolated
    assert bool(errors) == violated
