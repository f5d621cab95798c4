"""
Tool invocation pipeline.

Every tool call, whether the agent or the operator asked for it, goes
through the same gates:

    1. Resolve the tool by name in the catalog
    2. Check the secrets the tool declared (optionally prompting for them)
    3. Ask for human approval when the tool requires it
    4. Execute with a context holding only the declared secrets
    5. Record exactly one ExecutionLog

States:
    RESOLVED -> SECRETS_CHECKED -> APPROVAL_CHECKED -> EXECUTED | DENIED | FAILED

Design Principles:
    - Fail-closed: a missing secret or anything short of an explicit "yes"
      denies the call, and execute() never starts
    - Denials and failures are returned as data, never raised, so the agent
      loop always gets a turn-ending answer
    - Full audit: every terminal state is logged with timestamps and hashes
"""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from toolshed.errors import (
    ApprovalDeniedError,
    InvocationError,
    MissingSecretError,
    ToolExecutionError,
    ToolNotFoundError,
)
from toolshed.invocation.interaction import Interaction
from toolshed.schema import ExecutionLog, LogStatus
from toolshed.store.db import ToolshedDB, compute_hash, generate_id
from toolshed.tools.base import Tool, ToolContext, ToolOutput
from toolshed.tools.catalog import Catalog
from toolshed.vault.secret_store import SecretStore, secret_key

logger = logging.getLogger(__name__)


class InvocationState(str, Enum):
    """Furthest state an invocation reached."""

    RESOLVED = "resolved"
    SECRETS_CHECKED = "secrets_checked"
    APPROVAL_CHECKED = "approval_checked"
    EXECUTED = "executed"
    DENIED = "denied"
    FAILED = "failed"


@dataclass
class InvocationResult:
    """
    Outcome of one invocation.

    Attributes:
        tool_name: Name the tool was requested under
        state: Terminal state (EXECUTED, DENIED or FAILED)
        status: Logged status (success, denied, error)
        output: Tool output data on success
        error: Human-readable denial or failure message
        detail: The structured error behind a denial or failure
        log: The execution record written for this invocation
    """

    tool_name: str
    state: InvocationState
    status: LogStatus
    log: ExecutionLog
    output: Any = None
    error: str | None = None
    detail: InvocationError | None = None

    @property
    def ok(self) -> bool:
        """Whether the tool ran and succeeded."""
        return self.status == LogStatus.SUCCESS

    @property
    def log_id(self) -> str | None:
        return self.log.log_id

    def to_dict(self) -> dict[str, Any]:
        """Compact form for feeding back to the model or printing as JSON."""
        data: dict[str, Any] = {"tool": self.tool_name, "status": self.status.value}
        if self.ok:
            data["output"] = self.output
        else:
            data["error"] = self.error
        return data


class InvocationPipeline:
    """
    Gatekeeper between "the agent wants tool X" and X actually running.

    Attributes:
        catalog: Current catalog snapshot; replace it after installs
        secrets: Secret store consulted for declared secrets
        db: Where execution logs are recorded (kept in memory if None)
        interaction: Human surface for approvals and secret prompts
        prompt_for_secrets: Ask the human for missing secrets before denying

    Usage:
        pipeline = InvocationPipeline(catalog, secrets, db, ConsoleInteraction())
        result = pipeline.invoke("order_pizza", {"name": "Ada", "address": "..."})
        if not result.ok:
            print(result.error)
    """

    def __init__(
        self,
        catalog: Catalog,
        secrets: SecretStore,
        db: ToolshedDB | None = None,
        interaction: Interaction | None = None,
        prompt_for_secrets: bool = False,
    ) -> None:
        self.catalog = catalog
        self.secrets = secrets
        self.db = db
        self.interaction = interaction
        self.prompt_for_secrets = prompt_for_secrets

    def invoke(self, tool_name: str, args: dict[str, Any] | None = None) -> InvocationResult:
        """
        Run one tool call through every gate.

        Args:
            tool_name: Catalog name of the tool
            args: Tool input (a JSON object)

        Returns:
            InvocationResult; denials and failures are reported here, not raised
        """
        started_at = datetime.now(UTC)
        if args is None:
            args = {}

        if not isinstance(args, dict):
            detail = ToolExecutionError(
                tool=tool_name,
                message=f"Tool input for {tool_name} must be a JSON object",
            )
            return self._finish(tool_name, args, started_at, InvocationState.FAILED, detail=detail)

        # Resolve
        tool = self.catalog.get_optional(tool_name)
        if tool is None:
            detail = ToolNotFoundError(tool=tool_name, tool_args=args)
            return self._finish(tool_name, args, started_at, InvocationState.FAILED, detail=detail)

        # Secrets
        granted, missing = self._collect_secrets(tool)
        if missing:
            detail = MissingSecretError(tool=tool.name, tool_args=args, missing=missing)
            return self._finish(tool_name, args, started_at, InvocationState.DENIED, detail=detail)

        # Approval
        if tool.requires_approval:
            denial = self._request_approval(tool, args)
            if denial is not None:
                return self._finish(tool_name, args, started_at, InvocationState.DENIED, detail=denial)

        # Execute
        context = ToolContext(
            tool_name=tool.name,
            invocation_id=generate_id(),
            secrets=granted,
        )
        try:
            output = tool.execute(args, context)
        except (Exception, SystemExit) as e:
            detail = ToolExecutionError(
                tool=tool.name,
                tool_args=args,
                underlying_error=str(e) or type(e).__name__,
            )
            return self._finish(tool_name, args, started_at, InvocationState.FAILED, detail=detail)

        if isinstance(output, ToolOutput):
            if not output.success:
                detail = ToolExecutionError(
                    tool=tool.name,
                    tool_args=args,
                    underlying_error=output.error or "tool reported failure",
                )
                return self._finish(
                    tool_name, args, started_at, InvocationState.FAILED, detail=detail
                )
            output = output.data

        try:
            output = _json_safe(output)
        except (TypeError, ValueError, RecursionError) as e:
            detail = ToolExecutionError(
                tool=tool.name,
                tool_args=args,
                underlying_error=f"output could not be serialized: {e}",
            )
            return self._finish(tool_name, args, started_at, InvocationState.FAILED, detail=detail)

        return self._finish(tool_name, args, started_at, InvocationState.EXECUTED, output=output)

    # =========================================================================
    # Gates
    # =========================================================================

    def _collect_secrets(self, tool: Tool) -> tuple[dict[str, str], list[str]]:
        """Look up each declared secret; returns (granted, missing names)."""
        granted: dict[str, str] = {}
        missing: list[str] = []
        for name in tool.required_secrets:
            key = secret_key(tool.name, name)
            value = self.secrets.get_secret(key)
            if value is None and self.prompt_for_secrets and self.interaction is not None:
                value = self._prompt_for_secret(tool, name, key)
            if value is None:
                missing.append(name)
            else:
                granted[name] = value
        return granted, missing

    def _prompt_for_secret(self, tool: Tool, name: str, key: str) -> str | None:
        try:
            value = self.interaction.prompt_secret(f"Enter secret '{name}' for tool '{tool.name}'")
        except EOFError:
            return None
        if not value or not value.strip():
            return None
        self.secrets.set_secret_once(key, value.strip())
        # Re-read: if another writer got there first, its value stands
        return self.secrets.get_secret(key)

    def _request_approval(self, tool: Tool, args: dict[str, Any]) -> ApprovalDeniedError | None:
        """Returns None when approved, otherwise the denial."""
        prompt = self.approval_message(tool, args)
        if self.interaction is None:
            return ApprovalDeniedError(
                tool=tool.name,
                tool_args=args,
                prompt=prompt,
                message=f"Approval required for {tool.name} but no one is available to approve it",
            )
        try:
            approved = self.interaction.confirm(prompt)
        except EOFError:
            approved = False
        if approved is not True:
            return ApprovalDeniedError(tool=tool.name, tool_args=args, prompt=prompt)
        return None

    @staticmethod
    def approval_message(tool: Tool, args: dict[str, Any]) -> str:
        """The tool's own confirmation text, or a generic one."""
        try:
            custom = tool.get_approval_message(args)
        except Exception as e:
            logger.warning("Approval message for %s failed: %s", tool.name, e)
            custom = None
        if isinstance(custom, str) and custom.strip():
            return custom
        return f"Allow tool '{tool.name}' to run with input {json.dumps(args, default=str)}?"

    # =========================================================================
    # Logging
    # =========================================================================

    def _finish(
        self,
        tool_name: str,
        args: Any,
        started_at: datetime,
        state: InvocationState,
        output: Any = None,
        detail: InvocationError | None = None,
    ) -> InvocationResult:
        """Record the single execution log and build the result."""
        if state == InvocationState.EXECUTED:
            status = LogStatus.SUCCESS
        elif state == InvocationState.DENIED:
            status = LogStatus.DENIED
        else:
            status = LogStatus.ERROR

        error = detail.message if detail is not None else None
        if detail is not None:
            logger.info("Tool %s %s: %s", tool_name, status.value, error)

        log = ExecutionLog(
            log_id=generate_id(),
            tool_name=tool_name,
            input=args,
            output=output,
            error=error,
            status=status,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            input_hash=compute_hash(args),
            output_hash=compute_hash(output),
        )
        if self.db is not None:
            self.db.record_execution(log)

        return InvocationResult(
            tool_name=tool_name,
            state=state,
            status=status,
            log=log,
            output=output,
            error=error,
            detail=detail,
        )


def _json_safe(value: Any) -> Any:
    """Round-trip a tool's output through JSON so it can be logged and hashed."""
    return json.loads(json.dumps(value, default=str))
