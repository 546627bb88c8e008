"""Telemetry and observability helpers.

This package emits deterministic run events for stage and poller auditing.
"""

from .logger import RunLogger

__all__ = ["RunLogger"]
