"""Reporters rendering run results."""

from trialkit.reports.base import Reporter
from trialkit.reports.console import ConsoleReporter
from trialkit.reports.json_report import JsonReporter


__all__ = ["ConsoleReporter", "JsonReporter", "Reporter"]
