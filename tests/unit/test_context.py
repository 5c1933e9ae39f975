import pytest
from flowcore.engine.context import ExecutionContext
from conftest import make_node

def test_context_get_set():
    ctx = ExecutionContext(variables={"greeting": "Hi"})
    assert ctx.get_variable("greeting") == "Hi"

    ctx.set_variable("gen", "output", "Success")
    assert ctx.get_variable("gen.output") == "Success"
    assert ctx.data["gen.output"] == "Success"
    assert ctx.get_variable("missing") is None
    assert ctx.get_variable("missing", "n/a") == "n/a"

def test_node_output_exposes_keys():
    ctx = ExecutionContext()
    ctx.set_node_output("http", {"status_code": 200, "body": "ok"})
    assert ctx.has_output("http")
    assert ctx.get_output("http") == {"status_code": 200, "body": "ok"}
    assert ctx.get_variable("http.status_code") == 200
    assert ctx.get_variable("http.output")["body"] == "ok"
    assert ctx.get_output("missing", "default") == "default"

def test_seed_lookup_by_id_then_label():
    by_id = make_node("in1", "input_text", label="question")
    by_label = make_node("in2", "input_text", label="topic")
    ctx = ExecutionContext({"in1": "from id", "question": "from label", "topic": "weather"})
    assert ctx.get_seed(by_id) == "from id"
    assert ctx.get_seed(by_label) == "weather"
    assert ctx.get_seed(make_node("in3", "input_text")) is None

def test_resolve_template():
    ctx = ExecutionContext(variables={"user.name": "Alice", "bot.greet": "Hello"})

    template = "Welcome {{user.name}}! Bot says: {{ bot.greet }}"
    resolved = ctx.resolve_template(template)
    assert resolved == "Welcome Alice! Bot says: Hello"

    # Test missing variable
    template = "Missing {{none.var}}"
    resolved = ctx.resolve_template(template)
    assert resolved == "Missing {{none.var}}"

def test_resolve_variables_recursive():
    ctx = ExecutionContext(variables={"val": 123})

    input_dict = {
        "a": "Value is {{val}}",
        "b": ["List {{val}}", "Plain"],
        "c": {"nested": "{{val}}"},
        "d": 7,
    }

    resolved = ctx.resolve_variables(input_dict)
    assert resolved["a"] == "Value is 123"
    assert resolved["b"] == ["List 123", "Plain"]
    assert resolved["c"]["nested"] == "123"
    assert resolved["d"] == 7
