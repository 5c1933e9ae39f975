import pytest
from flowcore.core.errors import ErrorCode, WorkflowError, WorkflowValidationError
from flowcore.schemas.execution import ExecutionStatus
from flowcore.schemas.node import NodePosition
from flowcore.schemas.workflow import NodeUpdate, WorkflowCreate, WorkflowStatus, WorkflowUpdate

async def build_pipeline(manager, name="Pipeline"):
    """input_text -> text_transform(uppercase) -> output_display"""
    workflow = await manager.create_workflow(WorkflowCreate(name=name, tags=["demo"]), created_by="alice")
    source = await manager.add_node(workflow.id, "input_text", NodePosition(x=0, y=0))
    upper = await manager.add_node(workflow.id, "process_text_transform", NodePosition(x=200, y=0))
    sink = await manager.add_node(workflow.id, "output_display", NodePosition(x=400, y=0))
    await manager.add_connection(workflow.id, source.id, "output", upper.id, "input")
    await manager.add_connection(workflow.id, upper.id, "output", sink.id, "input")
    return workflow.id, source, upper, sink

@pytest.mark.asyncio
async def test_create_workflow_defaults(manager):
    workflow = await manager.create_workflow(WorkflowCreate(name="New", category="ops"), created_by="alice")
    assert workflow.status == WorkflowStatus.DRAFT
    assert workflow.nodes == []
    assert workflow.category == "ops"
    assert workflow.created_by == "alice"
    assert workflow.settings.error_handling.value == "stop"

@pytest.mark.asyncio
async def test_add_node_copies_template(manager):
    workflow = await manager.create_workflow(WorkflowCreate(name="Nodes"))
    first = await manager.add_node(workflow.id, "process_text_transform")
    second = await manager.add_node(workflow.id, "process_text_transform")

    assert first.id != second.id
    assert first.label == "Text Transform"
    assert first.config["operation"] == "uppercase"
    assert [p.id for p in first.ports] == ["input", "output"]

    await manager.update_node(workflow.id, first.id, NodeUpdate(config={"operation": "lowercase"}))
    stored = await manager.get_workflow(workflow.id)
    assert stored.get_node(first.id).config["operation"] == "lowercase"
    assert stored.get_node(second.id).config["operation"] == "uppercase"

    with pytest.raises(WorkflowError) as exc_info:
        await manager.add_node(workflow.id, "no_such_template")
    assert exc_info.value.code == ErrorCode.TEMPLATE_NOT_FOUND

@pytest.mark.asyncio
async def test_update_node(manager):
    workflow_id, _, upper, _ = await build_pipeline(manager)
    updated = await manager.update_node(workflow_id, upper.id, {
        "label": "Shout",
        "position": {"x": 10, "y": 20},
        "config": {"operation": "replace", "custom_pattern": "a"},
    })
    assert updated.label == "Shout"
    assert updated.position.x == 10
    assert updated.config == {"operation": "replace", "custom_pattern": "a", "replacement": ""}

    with pytest.raises(WorkflowError) as exc_info:
        await manager.update_node(workflow_id, upper.id, NodeUpdate(config={"operation": "explode"}))
    assert exc_info.value.code == ErrorCode.INVALID_NODE_CONFIG

    with pytest.raises(WorkflowError) as exc_info:
        await manager.update_node(workflow_id, "ghost", NodeUpdate(label="x"))
    assert exc_info.value.code == ErrorCode.NODE_NOT_FOUND

@pytest.mark.asyncio
async def test_add_connection_checks(manager):
    workflow_id, source, upper, sink = await build_pipeline(manager)

    with pytest.raises(WorkflowError) as exc_info:
        await manager.add_connection(workflow_id, "ghost", "output", sink.id, "input")
    assert exc_info.value.code == ErrorCode.NODE_NOT_FOUND

    # Source port must be an output, target port an input
    with pytest.raises(WorkflowError) as exc_info:
        await manager.add_connection(workflow_id, upper.id, "input", sink.id, "input")
    assert exc_info.value.code == ErrorCode.PORT_NOT_FOUND
    with pytest.raises(WorkflowError) as exc_info:
        await manager.add_connection(workflow_id, source.id, "output", upper.id, "output")
    assert exc_info.value.code == ErrorCode.PORT_NOT_FOUND

@pytest.mark.asyncio
async def test_fan_in_of_one_for_every_input_port(manager):
    workflow = await manager.create_workflow(WorkflowCreate(name="Fan-in"))
    first = await manager.add_node(workflow.id, "input_text")
    second = await manager.add_node(workflow.id, "input_text")
    targets = [
        await manager.add_node(workflow.id, template_id)
        for template_id in ("ai_text_generation", "tool_http_request", "tool_email_send", "output_file_save")
    ]

    for target in targets:
        for port in (p for p in target.ports if p.type.value == "input"):
            await manager.add_connection(workflow.id, first.id, "output", target.id, port.id)
            with pytest.raises(WorkflowError) as exc_info:
                await manager.add_connection(workflow.id, second.id, "output", target.id, port.id)
            assert exc_info.value.code == ErrorCode.PORT_ALREADY_CONNECTED

@pytest.mark.asyncio
async def test_delete_node_cascades_connections(manager):
    workflow_id, source, upper, sink = await build_pipeline(manager)
    await manager.delete_node(workflow_id, upper.id)

    workflow = await manager.get_workflow(workflow_id)
    assert [n.id for n in workflow.nodes] == [source.id, sink.id]
    assert workflow.connections == []

    with pytest.raises(WorkflowError) as exc_info:
        await manager.delete_node(workflow_id, upper.id)
    assert exc_info.value.code == ErrorCode.NODE_NOT_FOUND

@pytest.mark.asyncio
async def test_delete_connection(manager):
    workflow_id, *_ = await build_pipeline(manager)
    workflow = await manager.get_workflow(workflow_id)
    await manager.delete_connection(workflow_id, workflow.connections[0].id)
    assert len((await manager.get_workflow(workflow_id)).connections) == 1

    with pytest.raises(WorkflowError) as exc_info:
        await manager.delete_connection(workflow_id, "missing")
    assert exc_info.value.code == ErrorCode.CONNECTION_NOT_FOUND

@pytest.mark.asyncio
async def test_validate_and_activate(manager):
    workflow_id, _, upper, _ = await build_pipeline(manager)
    result = await manager.validate_workflow(workflow_id)
    assert result.valid is True and result.errors == []

    activated = await manager.activate_workflow(workflow_id)
    assert activated.status == WorkflowStatus.ACTIVE
    paused = await manager.deactivate_workflow(workflow_id)
    assert paused.status == WorkflowStatus.PAUSED

    await manager.add_node(workflow_id, "control_loop")
    result = await manager.validate_workflow(workflow_id)
    assert result.valid is False
    assert result.errors == ["Node 'Loop' is not connected to any other node"]

    with pytest.raises(WorkflowValidationError) as exc_info:
        await manager.activate_workflow(workflow_id)
    assert exc_info.value.validation_errors == result.errors

@pytest.mark.asyncio
async def test_update_and_duplicate(manager):
    workflow_id, *_ = await build_pipeline(manager)
    updated = await manager.update_workflow(workflow_id, WorkflowUpdate(description="Shouts", tags=["a", "b"]))
    assert updated.description == "Shouts"
    assert updated.tags == ["a", "b"]

    copy = await manager.duplicate_workflow(workflow_id)
    assert copy.id != workflow_id
    assert copy.name == "Pipeline (Copy)"
    assert copy.status == WorkflowStatus.DRAFT
    assert [n.id for n in copy.nodes] == [n.id for n in updated.nodes]

    named = await manager.duplicate_workflow(workflow_id, "Other")
    assert named.name == "Other"

    with pytest.raises(WorkflowError) as exc_info:
        await manager.duplicate_workflow("missing")
    assert exc_info.value.code == ErrorCode.WORKFLOW_NOT_FOUND

@pytest.mark.asyncio
async def test_export_import_round_trip(manager, engine):
    workflow_id, source, upper, sink = await build_pipeline(manager)
    await manager.update_node(workflow_id, source.id, NodeUpdate(label="text"))
    await manager.update_node(workflow_id, sink.id, NodeUpdate(label="result"))
    await manager.activate_workflow(workflow_id)

    exported = await manager.export_workflow(workflow_id, exported_by="alice")
    assert exported.metadata.exported_by == "alice"
    assert exported.metadata.application
    assert exported.dependencies == ["input_text", "output_display", "process_text_transform"]

    # Export data survives a JSON round trip
    imported = await manager.import_workflow(exported.model_dump(mode="json", by_alias=True))
    original = exported.workflow

    assert imported.id != original.id
    assert imported.name == "Pipeline (Imported)"
    assert imported.status == WorkflowStatus.DRAFT
    original_ids = {n.id for n in original.nodes} | {c.id for c in original.connections}
    imported_ids = {n.id for n in imported.nodes} | {c.id for c in imported.connections}
    assert original_ids.isdisjoint(imported_ids)

    # Same topology and configs under the id remapping
    id_map = {old.id: new.id for old, new in zip(original.nodes, imported.nodes)}
    assert [(n.type, n.subtype, n.config) for n in imported.nodes] == [(n.type, n.subtype, n.config) for n in original.nodes]
    assert {(c.source_node_id, c.source_port_id, c.target_node_id, c.target_port_id) for c in imported.connections} == {
        (id_map[c.source_node_id], c.source_port_id, id_map[c.target_node_id], c.target_port_id)
        for c in original.connections
    }

    await manager.activate_workflow(imported.id)
    first = await engine.wait_for_execution(await manager.execute_workflow(workflow_id, {"text": "hello"}), timeout=10)
    second = await engine.wait_for_execution(await manager.execute_workflow(imported.id, {"text": "hello"}), timeout=10)
    assert first.output == {sink.id: "HELLO", "result": "HELLO"}
    assert second.output["result"] == first.output["result"]

@pytest.mark.asyncio
async def test_import_rejects_dangling_connection(manager):
    workflow_id, *_ = await build_pipeline(manager)
    exported = await manager.export_workflow(workflow_id)
    data = exported.model_dump(mode="json")
    data["workflow"]["connections"][0]["source_node_id"] = "ghost"

    with pytest.raises(WorkflowError) as exc_info:
        await manager.import_workflow(data)
    assert exc_info.value.code == ErrorCode.INVALID_CONNECTION

@pytest.mark.asyncio
async def test_import_rejects_doubly_fed_input_port(manager):
    workflow_id, source, upper, sink = await build_pipeline(manager)
    data = (await manager.export_workflow(workflow_id)).model_dump(mode="json")
    data["workflow"]["connections"].append({
        "id": "extra",
        "source_node_id": source.id,
        "source_port_id": "output",
        "target_node_id": sink.id,
        "target_port_id": "input",
    })

    with pytest.raises(WorkflowError) as exc_info:
        await manager.import_workflow(data)
    assert exc_info.value.code == ErrorCode.INVALID_CONNECTION
    assert [w.name for w in (await manager.get_workflows()).workflows] == ["Pipeline"]

@pytest.mark.asyncio
async def test_update_workflow_checks_replaced_connections(manager):
    workflow_id, source, upper, sink = await build_pipeline(manager)
    before = await manager.get_workflow(workflow_id)

    def raw(conn_id, src, src_port, dst, dst_port):
        return {
            "id": conn_id,
            "source_node_id": src,
            "source_port_id": src_port,
            "target_node_id": dst,
            "target_port_id": dst_port,
        }

    doubly_fed = [raw("c1", source.id, "output", sink.id, "input"), raw("c2", upper.id, "output", sink.id, "input")]
    wrong_direction = [raw("c1", sink.id, "input", upper.id, "input")]
    for connections in (doubly_fed, wrong_direction):
        with pytest.raises(WorkflowError) as exc_info:
            await manager.update_workflow(workflow_id, {"connections": connections})
        assert exc_info.value.code == ErrorCode.INVALID_CONNECTION

    # Dropping a node the stored connections still reference
    with pytest.raises(WorkflowError) as exc_info:
        await manager.update_workflow(workflow_id, {"nodes": [source.model_dump(), sink.model_dump()]})
    assert exc_info.value.code == ErrorCode.INVALID_CONNECTION

    after = await manager.get_workflow(workflow_id)
    assert after.version == before.version
    assert after.connections == before.connections

    rewired = await manager.update_workflow(workflow_id, {"connections": [raw("c1", source.id, "output", sink.id, "input")]})
    assert [(c.source_node_id, c.target_node_id) for c in rewired.connections] == [(source.id, sink.id)]

@pytest.mark.asyncio
async def test_workflow_stats(manager, engine):
    workflow_id, source, _, _ = await build_pipeline(manager)
    empty = await manager.get_workflow_stats(workflow_id)
    assert empty.total_executions == 0
    assert empty.last_execution is None

    await manager.activate_workflow(workflow_id)
    ok = await engine.wait_for_execution(await manager.execute_workflow(workflow_id, {source.id: "fine"}), timeout=10)
    bad = await engine.wait_for_execution(await manager.execute_workflow(workflow_id, {source.id: 7}), timeout=10)
    assert ok.status == ExecutionStatus.COMPLETED
    assert bad.status == ExecutionStatus.FAILED

    stats = await manager.get_workflow_stats(workflow_id)
    assert stats.total_executions == 2
    assert stats.successful_executions == 1
    assert stats.failed_executions == 1
    assert stats.success_rate == 0.5
    assert stats.average_duration == ok.duration
    assert stats.last_execution == bad.started_at

    history = await manager.get_execution_history(workflow_id)
    assert [e.id for e in history] == [bad.id, ok.id]

@pytest.mark.asyncio
async def test_delete_workflow(manager):
    workflow_id, *_ = await build_pipeline(manager)
    assert await manager.delete_workflow(workflow_id) is True
    assert await manager.get_workflow(workflow_id) is None
    with pytest.raises(WorkflowError) as exc_info:
        await manager.validate_workflow(workflow_id)
    assert exc_info.value.code == ErrorCode.WORKFLOW_NOT_FOUND

def test_template_queries(manager):
    assert len(manager.get_node_templates()) == 12
    assert manager.get_node_template("control_loop").subtype == "loop"
    assert manager.get_node_categories()[0] == "Input"
    with pytest.raises(WorkflowError) as exc_info:
        manager.get_node_template("missing")
    assert exc_info.value.code == ErrorCode.TEMPLATE_NOT_FOUND
