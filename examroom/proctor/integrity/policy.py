"""
Escalation Policy - per device class violation handling
"""

from dataclasses import dataclass
from typing import Dict, Optional

from ...config import settings
from ..models import DeviceClass


@dataclass(frozen=True)
class EscalationPolicy:
    """
    How a violation escalates toward expulsion.

    Attributes:
        grace_period: Seconds between the violation and termination
        recoverable: Whether resolving the triggering condition within the
                     grace period cancels the escalation
    """
    grace_period: float
    recoverable: bool


def default_policies() -> Dict[DeviceClass, EscalationPolicy]:
    """Policies built from current settings"""
    return {
        # Terminates after a fixed delay, no recovery
        DeviceClass.DESKTOP: EscalationPolicy(
            grace_period=settings.DESKTOP_TERMINATION_DELAY,
            recoverable=False
        ),
        # Warning; resolving the trigger inside the grace period cancels it
        DeviceClass.MOBILE: EscalationPolicy(
            grace_period=settings.MOBILE_GRACE_PERIOD,
            recoverable=True
        ),
    }


def policy_for(
    device_class: DeviceClass,
    overrides: Optional[Dict[DeviceClass, EscalationPolicy]] = None
) -> EscalationPolicy:
    """Select the escalation policy for a device class"""
    policies = default_policies()
    if overrides:
        policies.update(overrides)
    return policies[DeviceClass(device_class)]
