"""
Unit tests for adapting bundle exports into tools.

Tests cover:
- Accepted export shapes (Tool instance, Tool subclass, mapping, object)
- Rejected shapes (no execute, bad metadata types, primitives)
- Manifest precedence for secrets and approval
- Export resolution order
"""

import types
from typing import Any

import pytest

from toolshed.tools.base import Tool, ToolContext
from toolshed.tools.loaded import ExportShapeError, LoadedTool, resolve_export


def context() -> ToolContext:
    return ToolContext(tool_name="weather", invocation_id="abc", secrets={"api_key": "k"})


class ForecastTool(Tool):
    @property
    def name(self) -> str:
        return "forecast"

    def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        return {"key": context.get_secret("api_key"), "args": args}


class NeedsArgsTool(Tool):
    def __init__(self, region: str) -> None:
        self.region = region

    @property
    def name(self) -> str:
        return "needs_args"

    def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        return self.region


class TestFromExport:
    """Tests for LoadedTool.from_export."""

    def test_tool_instance(self, make_manifest: Any) -> None:
        tool = LoadedTool.from_export(ForecastTool(), make_manifest())
        assert tool.name == "forecast"
        assert tool.description == "Look up the weather for a city"
        assert tool.execute({"city": "Oslo"}, context()) == {"key": "k", "args": {"city": "Oslo"}}

    def test_overridden_description_kept(self, make_manifest: Any) -> None:
        class DescribedTool(ForecastTool):
            @property
            def description(self) -> str:
                return "Forecast with a key"

        tool = LoadedTool.from_export(DescribedTool(), make_manifest())
        assert tool.description == "Forecast with a key"

    def test_tool_subclass_is_instantiated(self, make_manifest: Any) -> None:
        tool = LoadedTool.from_export(ForecastTool, make_manifest())
        assert tool.name == "forecast"

    def test_subclass_that_cannot_be_instantiated(self, make_manifest: Any) -> None:
        with pytest.raises(ExportShapeError, match="cannot instantiate"):
            LoadedTool.from_export(NeedsArgsTool, make_manifest())

    def test_foreign_class_rejected(self, make_manifest: Any) -> None:
        class NotATool:
            def execute(self, args: Any) -> Any:
                return args

        with pytest.raises(ExportShapeError, match="is not a Tool"):
            LoadedTool.from_export(NotATool, make_manifest())

    def test_mapping_falls_back_to_manifest(self, make_manifest: Any) -> None:
        tool = LoadedTool.from_export({"execute": lambda args: args["x"] * 2}, make_manifest())
        assert tool.name == "weather"
        assert tool.description == "Look up the weather for a city"
        assert tool.required_secrets == []
        assert tool.requires_approval is False
        assert tool.execute({"x": 21}, context()) == 42

    def test_plain_object(self, make_manifest: Any) -> None:
        export = types.SimpleNamespace(
            name="ns",
            description="Namespace tool",
            execute=lambda args, ctx: ctx.invocation_id,
        )
        tool = LoadedTool.from_export(export, make_manifest())
        assert tool.name == "ns"
        assert tool.execute({}, context()) == "abc"

    def test_varargs_execute_gets_context(self, make_manifest: Any) -> None:
        tool = LoadedTool.from_export({"execute": lambda *a: len(a)}, make_manifest())
        assert tool.execute({}, context()) == 2

    @pytest.mark.parametrize("export", [None, "tool", b"tool", 3, 1.5, True])
    def test_primitives_rejected(self, make_manifest: Any, export: Any) -> None:
        with pytest.raises(ExportShapeError, match="not a tool"):
            LoadedTool.from_export(export, make_manifest())

    @pytest.mark.parametrize("execute", [None, "run", 42])
    def test_execute_must_be_callable(self, make_manifest: Any, execute: Any) -> None:
        with pytest.raises(ExportShapeError, match="execute"):
            LoadedTool.from_export({"execute": execute}, make_manifest())

    def test_coroutine_execute_rejected(self, make_manifest: Any) -> None:
        async def execute(args: dict[str, Any]) -> Any:
            return args

        with pytest.raises(ExportShapeError, match="coroutine"):
            LoadedTool.from_export({"execute": execute}, make_manifest())

    def test_coroutine_call_method_rejected(self, make_manifest: Any) -> None:
        class Runner:
            async def __call__(self, args: dict[str, Any]) -> Any:
                return args

        with pytest.raises(ExportShapeError, match="coroutine"):
            LoadedTool.from_export({"execute": Runner()}, make_manifest())

    @pytest.mark.parametrize("key", ["name", "description"])
    @pytest.mark.parametrize("value", ["", "   ", 7, ["x"]])
    def test_declared_text_must_be_non_empty_string(
        self, make_manifest: Any, key: str, value: Any
    ) -> None:
        with pytest.raises(ExportShapeError, match=key):
            LoadedTool.from_export({"execute": print, key: value}, make_manifest())

    @pytest.mark.parametrize("secrets", ["api_key", [""], [1], {"a": 1}])
    def test_bad_required_secrets(self, make_manifest: Any, secrets: Any) -> None:
        with pytest.raises(ExportShapeError, match="required_secrets"):
            LoadedTool.from_export({"execute": print, "required_secrets": secrets}, make_manifest())

    @pytest.mark.parametrize("approval", ["yes", 1, [True]])
    def test_bad_requires_approval(self, make_manifest: Any, approval: Any) -> None:
        with pytest.raises(ExportShapeError, match="requires_approval"):
            LoadedTool.from_export(
                {"execute": print, "requires_approval": approval}, make_manifest()
            )

    def test_approval_message_must_be_callable(self, make_manifest: Any) -> None:
        with pytest.raises(ExportShapeError, match="get_approval_message"):
            LoadedTool.from_export(
                {"execute": print, "get_approval_message": "Sure?"}, make_manifest()
            )

    def test_module_claims_used_when_manifest_silent(self, make_manifest: Any) -> None:
        export = {
            "execute": print,
            "required_secrets": ("api_key",),
            "requires_approval": True,
            "get_approval_message": lambda args: f"Fetch weather for {args['city']}?",
        }
        tool = LoadedTool.from_export(export, make_manifest())
        assert tool.required_secrets == ["api_key"]
        assert tool.requires_approval is True
        assert tool.get_approval_message({"city": "Oslo"}) == "Fetch weather for Oslo?"

    def test_manifest_declarations_win(self, make_manifest: Any) -> None:
        export = {"execute": print, "required_secrets": [], "requires_approval": False}
        manifest = make_manifest(requiredSecrets=["token"], requiresApproval=True)
        tool = LoadedTool.from_export(export, manifest)
        assert tool.required_secrets == ["token"]
        assert tool.requires_approval is True

    def test_manifest_can_clear_module_claims(self, make_manifest: Any) -> None:
        export = {"execute": print, "required_secrets": ["token"], "requires_approval": True}
        manifest = make_manifest(requiredSecrets=[], requiresApproval=False)
        tool = LoadedTool.from_export(export, manifest)
        assert tool.required_secrets == []
        assert tool.requires_approval is False

    def test_blank_approval_message_means_generic(self, make_manifest: Any) -> None:
        export = {"execute": print, "get_approval_message": lambda args: "  "}
        tool = LoadedTool.from_export(export, make_manifest())
        assert tool.get_approval_message({}) is None

    def test_keeps_manifest_reference(self, make_manifest: Any) -> None:
        manifest = make_manifest()
        tool = LoadedTool.from_export({"execute": print}, manifest)
        assert tool.manifest is manifest


class TestResolveExport:
    """Tests for picking the export out of an entry module."""

    @staticmethod
    def module(**attrs: Any) -> types.ModuleType:
        mod = types.ModuleType("bundle_entry")
        for key, value in attrs.items():
            setattr(mod, key, value)
        return mod

    def test_declared_export_first(self, make_manifest: Any) -> None:
        manifest = make_manifest(
            entry={"runtime": "python", "main": "main.py", "exportName": "forecast"}
        )
        mod = self.module(
            forecast={"name": "declared", "execute": print},
            tool={"name": "conventional", "execute": print},
        )
        assert resolve_export(mod, manifest).name == "declared"

    def test_tool_before_default(self, make_manifest: Any) -> None:
        mod = self.module(
            tool={"name": "from_tool", "execute": print},
            default={"name": "from_default", "execute": print},
        )
        assert resolve_export(mod, make_manifest()).name == "from_tool"

    def test_default_export(self, make_manifest: Any) -> None:
        mod = self.module(default=ForecastTool)
        assert resolve_export(mod, make_manifest()).name == "forecast"

    def test_falls_through_invalid_candidate(self, make_manifest: Any) -> None:
        mod = self.module(tool="not a tool", default={"execute": print})
        assert resolve_export(mod, make_manifest()).name == "weather"

    def test_nothing_exported(self, make_manifest: Any) -> None:
        with pytest.raises(ExportShapeError, match="no export found"):
            resolve_export(self.module(helper=print), make_manifest())

    def test_reports_every_problem(self, make_manifest: Any) -> None:
        mod = self.module(tool=None, default={"name": 5, "execute": print})
        with pytest.raises(ExportShapeError) as exc_info:
            resolve_export(mod, make_manifest())
        message = str(exc_info.value)
        assert "tool:" in message
        assert "default:" in message
