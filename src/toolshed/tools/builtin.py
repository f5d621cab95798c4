"""
Built-in in-process tools.

These tools ship with toolshed and are always present in the catalog:
- echo: Echo back input text
- time: Current time in ISO 8601
- add: Add two numbers
- order_pizza: Mock pizza order (requires approval)

Built-ins take precedence over installed tools of the same name.
"""

import math
import time
from datetime import UTC, datetime
from typing import Any

from toolshed.tools.base import Tool, ToolContext, ToolOutput


class EchoTool(Tool):
    """
    Echo back input text.

    Arguments:
        text (str): Text to echo; non-string input is echoed as JSON

    Returns:
        {"text": str}
    """

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo back input text. Input: { text: string }"

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        text = args.get("text") if isinstance(args, dict) else args
        if text is None:
            text = ""
        elif not isinstance(text, str):
            text = str(text)
        return ToolOutput.ok({"text": text})


class TimeTool(Tool):
    """Return the current UTC time."""

    @property
    def name(self) -> str:
        return "time"

    @property
    def description(self) -> str:
        return "Return the current time in ISO 8601. Input: {}"

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        return ToolOutput.ok({"iso": datetime.now(UTC).isoformat()})


class AddTool(Tool):
    """
    Add two numbers.

    Arguments:
        a (number | numeric str): First operand (required)
        b (number | numeric str): Second operand (required)

    Returns:
        {"sum": number}
    """

    @property
    def name(self) -> str:
        return "add"

    @property
    def description(self) -> str:
        return "Add two numbers. Input: { a: number, b: number }"

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        try:
            a = _parse_number(args.get("a"), "a")
            b = _parse_number(args.get("b"), "b")
        except ValueError as e:
            return ToolOutput.fail(str(e))
        return ToolOutput.ok({"sum": a + b})


class PizzaOrderTool(Tool):
    """
    Mock pizza order.

    Placing an order has a real-world side effect, so every call needs
    human approval.

    Arguments:
        name (str): Who the order is for (required)
        address (str): Delivery address (required)

    Returns:
        {"orderId": str, "message": str}
    """

    @property
    def name(self) -> str:
        return "order_pizza"

    @property
    def description(self) -> str:
        return "Mock pizza order. Input: { name: string, address: string }"

    @property
    def requires_approval(self) -> bool:
        return True

    def get_approval_message(self, args: dict[str, Any]) -> str | None:
        name = args.get("name") or "<missing name>"
        address = args.get("address") or "<missing address>"
        return f"Order a pizza for {name} at {address}?"

    def validate_args(self, args: dict[str, Any]) -> list[str]:
        """Validate order_pizza arguments."""
        errors = []
        for key in ("name", "address"):
            value = args.get(key)
            if not isinstance(value, str) or not value.strip():
                errors.append(f"Missing {key}")
        return errors

    def execute(self, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        errors = self.validate_args(args)
        if errors:
            return ToolOutput.fail("; ".join(errors))

        name = args["name"].strip()
        address = args["address"].strip()
        return ToolOutput.ok({
            "orderId": f"pizza_{int(time.time() * 1000)}",
            "message": f"Order placed for {name} at {address}.",
        })


def _parse_number(value: Any, label: str) -> int | float:
    """Accept finite numbers or numeric strings."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid number for {label}")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"Invalid number for {label}")
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            raise ValueError(f"Invalid number for {label}") from None
        if math.isfinite(parsed):
            return parsed
    raise ValueError(f"Invalid number for {label}")


def builtin_tools() -> list[Tool]:
    """Create fresh instances of every built-in tool."""
    return [EchoTool(), TimeTool(), AddTool(), PizzaOrderTool()]
