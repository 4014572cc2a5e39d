"""Service layer exports for the laundry dispatch platform."""

from .audit import AuditRecorder
from .collaborators import MessageBusNotifier, MessageBusRobotTransport, NotificationCollaborator, RobotTransport
from .dispatch import Assignment, DispatchEngine
from .lifecycle import LifecycleController
from .liveness import LivenessMonitor
from .messaging import AMQPMessageBus, InMemoryMessageBus, MessageBus, MessageEnvelope, MQTTMessageBus, build_message_bus
from .registry import RobotRegistry

__all__ = [
	"AuditRecorder",
	"Assignment",
	"DispatchEngine",
	"LifecycleController",
	"LivenessMonitor",
	"RobotRegistry",
	"RobotTransport",
	"NotificationCollaborator",
	"MessageBusRobotTransport",
	"MessageBusNotifier",
	"MessageBus",
	"MessageEnvelope",
	"InMemoryMessageBus",
	"MQTTMessageBus",
	"AMQPMessageBus",
	"build_message_bus",
]
