from .master import Order, MachineLoad
from .quality import TrackedProduct, ProductionStandard
from .automation import AutomationRule, RuleExecution, Notification, InboxMessage
from .planning import Event

__all__ = [
    "Order",
    "MachineLoad",
    "TrackedProduct",
    "ProductionStandard",
    "AutomationRule",
    "RuleExecution",
    "Notification",
    "InboxMessage",
    "Event",
]
