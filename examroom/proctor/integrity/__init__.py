"""Environment integrity monitoring"""

from .monitor import IntegrityMonitor, MonitorState
from .policy import EscalationPolicy, policy_for
from .signals import (
    EnvironmentSignal,
    KeyAction,
    SignalKind,
    SignalSource,
    SyntheticEnvironment,
    classify_key
)

__all__ = [
    "IntegrityMonitor",
    "MonitorState",
    "EscalationPolicy",
    "policy_for",
    "EnvironmentSignal",
    "KeyAction",
    "SignalKind",
    "SignalSource",
    "SyntheticEnvironment",
    "classify_key"
]
