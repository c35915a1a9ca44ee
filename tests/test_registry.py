"""Tests for HandlerRegistry lookup and factories."""

import pytest

from stepwright.handlers import (
    AISuggestionHandler,
    CommandHandler,
    FunctionHandler,
    Handler,
    HandlerRegistry,
    NoOpHandler,
    ProvisionSandboxHandler,
    RunContext,
)
from stepwright.schemas import StepDefinition, StepResult, StepType


class TestHandlerRegistry:
    def test_register_and_get(self):
        registry = HandlerRegistry()
        handler = NoOpHandler()
        registry.register("noop", handler)
        assert registry.get("noop") is handler
        assert registry.has("noop")
        assert registry.list_types() == ["noop"]

    def test_register_by_enum(self):
        registry = HandlerRegistry()
        registry.register(StepType.DEPLOY, NoOpHandler())
        assert registry.has("deploy")
        assert registry.has(StepType.DEPLOY)

    def test_function_is_wrapped(self):
        registry = HandlerRegistry()
        registry.register("fn", lambda step, ctx: {"summary": "hi"})
        handler = registry.get("fn")
        assert isinstance(handler, FunctionHandler)
        assert isinstance(handler, Handler)

    def test_non_callable_rejected(self):
        registry = HandlerRegistry()
        with pytest.raises(TypeError, match="not callable"):
            registry.register("bad", 42)

    def test_missing_type(self):
        registry = HandlerRegistry()
        registry.register("known", NoOpHandler())
        assert not registry.has("unknown")
        with pytest.raises(KeyError, match="No handler registered for step type: unknown"):
            registry.get("unknown")

    def test_reregister_replaces(self):
        registry = HandlerRegistry()
        first, second = NoOpHandler(), NoOpHandler()
        registry.register("x", first)
        registry.register("x", second)
        assert registry.get("x") is second


class TestFactories:
    def test_create_default_covers_all_types(self):
        registry = HandlerRegistry.create_default()
        for step_type in StepType:
            assert registry.has(step_type), step_type
        assert isinstance(registry.get(StepType.AI_SUGGESTION), AISuggestionHandler)
        assert isinstance(registry.get(StepType.COMMAND), CommandHandler)
        assert isinstance(registry.get(StepType.PROVISION_SANDBOX), ProvisionSandboxHandler)

    def test_create_default_keeps_falsy_collaborators(self):
        class EmptyEditor:
            def __init__(self):
                self.calls = []

            def __len__(self):
                return 0

            def edit_file(self, project_id, path, content, operation):
                self.calls.append(path)
                return {"success": True}

        editor = EmptyEditor()
        registry = HandlerRegistry.create_default(editor=editor)
        step = StepDefinition(type="file_edit", parameters={"filePath": "a.txt", "content": "x"})
        context = RunContext(run_id="01RUN", job_id="job-1", owner_id="owner-1", subject_id="proj-1")

        result = registry.get(StepType.FILE_EDIT).handle(step, context)

        assert result.summary == "File edit: a.txt"
        assert editor.calls == ["a.txt"]

    def test_create_noop(self):
        registry = HandlerRegistry.create_noop()
        for step_type in StepType:
            assert isinstance(registry.get(step_type), NoOpHandler)


class TestFunctionHandler:
    def test_result_normalized(self):
        handler = FunctionHandler(lambda step, ctx: StepResult(summary="x"))
        assert "FunctionHandler" in repr(handler)
