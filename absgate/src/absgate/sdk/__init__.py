"""
ABS SDK

Execution-side client for decision envelopes.
"""

from absgate.sdk.client import GovernanceClient, ClientConfig, ExecutionResult, ExecutionStatus

__all__ = ["GovernanceClient", "ClientConfig", "ExecutionResult", "ExecutionStatus"]
