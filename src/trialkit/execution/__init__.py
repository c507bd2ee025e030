"""Invocation execution helpers."""

from trialkit.execution.invoker import DefaultInvoker, Invoker
from trialkit.execution.tracer import InvocationTracer


__all__ = ["DefaultInvoker", "InvocationTracer", "Invoker"]
