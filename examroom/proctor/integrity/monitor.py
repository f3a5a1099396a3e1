"""
Integrity Monitor - turns environment signals into violations and escalates them

States:
    disarmed -> armed -> (warning | pending_termination) -> terminated
                  ^            |
                  +------------+  (mobile recovery only)
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..models import DeviceClass, ViolationEvent, ViolationType
from ..scheduling import Scheduler, ScheduledCall
from ..utils.logging import log_escalation, log_violation
from .policy import EscalationPolicy, policy_for
from .signals import EnvironmentSignal, KeyAction, SignalKind, SignalSource, classify_key

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    DISARMED = "disarmed"
    ARMED = "armed"
    WARNING = "warning"
    PENDING_TERMINATION = "pending_termination"
    TERMINATED = "terminated"


# Which recovery signal resolves which violation
_RESOLVED_BY: Dict[ViolationType, SignalKind] = {
    ViolationType.FULLSCREEN_EXIT: SignalKind.FULLSCREEN_ENTERED,
    ViolationType.TAB_SWITCH: SignalKind.PAGE_VISIBLE,
    ViolationType.APP_SWITCH: SignalKind.PAGE_VISIBLE,
    ViolationType.RESTRICTED_KEY: SignalKind.RETURNED_TO_EXAM,
}


class IntegrityMonitor:
    """
    Classifies environment signals, records violations and applies the
    device-class escalation policy.

    Only the first escalation is tracked: further violations while a warning
    or pending termination is running are recorded but do not restart or
    stack timers. Termination latches; afterwards every signal is ignored.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        device_class: DeviceClass,
        on_terminate: Callable[[ViolationEvent], None],
        policy: Optional[EscalationPolicy] = None,
        session_id: str = "-"
    ):
        self.scheduler = scheduler
        self.device_class = DeviceClass(device_class)
        self.policy = policy or policy_for(self.device_class)
        self.session_id = session_id
        self._on_terminate = on_terminate

        self.state = MonitorState.DISARMED
        self.events: List[ViolationEvent] = []
        self.trigger: Optional[ViolationEvent] = None
        self._deadline: Optional[float] = None
        self._handle: Optional[ScheduledCall] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ============== Lifecycle ==============

    @property
    def is_terminated(self) -> bool:
        return self.state == MonitorState.TERMINATED

    @property
    def is_escalating(self) -> bool:
        return self.state in (MonitorState.WARNING, MonitorState.PENDING_TERMINATION)

    def attach(self, source: SignalSource):
        """Subscribe to a signal source (replaces any previous subscription)"""
        self.detach()
        self._unsubscribe = source.subscribe(self.handle)

    def detach(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def arm(self):
        if self.state == MonitorState.DISARMED:
            self.state = MonitorState.ARMED
            logger.debug(f"Integrity monitor armed for {self.session_id} ({self.device_class.value})")

    def disarm(self):
        """Stop monitoring and cancel any running escalation"""
        self._cancel_timer()
        self.detach()
        if self.state != MonitorState.TERMINATED:
            self.state = MonitorState.DISARMED
            self.trigger = None

    # ============== Signal Handling ==============

    def handle(self, signal: EnvironmentSignal) -> Optional[ViolationEvent]:
        """
        Process one environment signal.

        Returns:
            The recorded ViolationEvent, or None if the signal was not a
            violation (or was ignored)
        """
        if self.state in (MonitorState.DISARMED, MonitorState.TERMINATED):
            return None

        violation_type = self.classify(signal)
        if violation_type is not None:
            return self._record(violation_type)

        self._maybe_recover(signal)
        return None

    def classify(self, signal: EnvironmentSignal) -> Optional[ViolationType]:
        if signal.kind == SignalKind.FULLSCREEN_EXITED:
            return ViolationType.FULLSCREEN_EXIT
        if signal.kind == SignalKind.PAGE_HIDDEN:
            if self.device_class == DeviceClass.MOBILE:
                return ViolationType.APP_SWITCH
            return ViolationType.TAB_SWITCH
        if signal.kind == SignalKind.KEY_DOWN and signal.key:
            action = classify_key(signal.key, ctrl=signal.ctrl, alt=signal.alt, meta=signal.meta)
            if action == KeyAction.VIOLATION:
                return ViolationType.RESTRICTED_KEY
        return None

    def _record(self, violation_type: ViolationType) -> ViolationEvent:
        event = ViolationEvent(
            type=violation_type,
            device_class=self.device_class,
            timestamp=self.scheduler.time()
        )
        self.events.append(event)

        escalating = self.state == MonitorState.ARMED
        log_violation(self.session_id, violation_type.value, self.device_class.value, escalating)

        if escalating:
            self._escalate(event)
        return event

    def _escalate(self, event: ViolationEvent):
        self.trigger = event
        self.state = (
            MonitorState.WARNING if self.policy.recoverable
            else MonitorState.PENDING_TERMINATION
        )
        self._deadline = self.scheduler.now() + self.policy.grace_period
        self._handle = self.scheduler.call_later(self.policy.grace_period, self._expire)

        log_escalation(self.session_id, "started", {
            "state": self.state.value,
            "trigger": event.type.value,
            "grace_period": self.policy.grace_period
        })

    def _maybe_recover(self, signal: EnvironmentSignal):
        if self.state != MonitorState.WARNING or self.trigger is None:
            return

        resolves = (
            signal.kind == SignalKind.RETURNED_TO_EXAM
            or _RESOLVED_BY[self.trigger.type] == signal.kind
        )
        if not resolves:
            return

        self._cancel_timer()
        recovered = self.trigger
        self.trigger = None
        self.state = MonitorState.ARMED
        log_escalation(self.session_id, "recovered", {"trigger": recovered.type.value})

    def _expire(self):
        self._handle = None
        self._deadline = None
        if not self.is_escalating:
            return

        self.state = MonitorState.TERMINATED
        self.detach()
        trigger = self.trigger
        log_escalation(self.session_id, "expelled", {"trigger": trigger.type.value})
        self._on_terminate(trigger)

    def _cancel_timer(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._deadline = None

    # ============== Reporting ==============

    def seconds_until_termination(self) -> Optional[float]:
        """Remaining grace time while escalating, else None"""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self.scheduler.now())

    def violation_counts(self) -> Dict[str, int]:
        counts = {violation.value: 0 for violation in ViolationType}
        for event in self.events:
            counts[event.type.value] += 1
        counts["total"] = len(self.events)
        return counts
