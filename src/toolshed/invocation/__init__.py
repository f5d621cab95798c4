"""
Invocation module for toolshed.

Gates every tool call behind declared secrets and human approval, then
executes it and records the outcome.
"""

from toolshed.invocation.interaction import (
    ConsoleInteraction,
    Interaction,
    ScriptedInteraction,
)
from toolshed.invocation.pipeline import (
    InvocationPipeline,
    InvocationResult,
    InvocationState,
)

__all__ = [
    "ConsoleInteraction",
    "Interaction",
    "InvocationPipeline",
    "InvocationResult",
    "InvocationState",
    "ScriptedInteraction",
]
