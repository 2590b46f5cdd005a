import json
import logging
from datetime import timedelta
from typing import Any, Dict, List

from sqlmodel import Session, select

from .database import engine
from .models.master import MachineLoad, Order
from .models.quality import ProductionStandard, TrackedProduct
from .utils.helpers import utcnow

logger = logging.getLogger(__name__)


# Built-in rule set offered by "import defaults"
DEFAULT_RULES: List[Dict[str, Any]] = [
    {
        "name": "Capacity shortage alert",
        "description": "Warn when open demand exceeds weekly machine capacity by more than 40h",
        "trigger": {"type": "capacity_shortage", "conditions": {"threshold": 40}},
        "action": {"type": "send_notification", "params": {"severity": "warning"}},
        "debounceMinutes": 60,
    },
    {
        "name": "Low efficiency warning",
        "description": "Warn when average machine efficiency drops below 80%",
        "trigger": {"type": "low_efficiency", "conditions": {"threshold": 80}},
        "action": {"type": "send_notification", "params": {"severity": "warning"}},
        "debounceMinutes": 120,
    },
    {
        "name": "Delayed orders",
        "description": "Alert as soon as one order is past its planned date",
        "trigger": {"type": "order_delay", "conditions": {"minDelayedOrders": 1}},
        "action": {"type": "send_notification", "params": {"severity": "critical"}},
        "debounceMinutes": 360,
    },
    {
        "name": "Unstaffed machines",
        "description": "Warn when a machine has no operator assigned",
        "trigger": {"type": "missing_operator", "conditions": {"threshold": 1}},
        "action": {"type": "send_notification", "params": {"severity": "warning"}},
        "debounceMinutes": 60,
    },
    {
        "name": "Blocked by dependencies",
        "description": "Inform when orders wait on unfinished predecessors",
        "trigger": {"type": "dependency_blocked", "conditions": {"threshold": 1}},
        "action": {"type": "send_notification", "params": {"severity": "info"}},
        "debounceMinutes": 180,
    },
    {
        "name": "Temporary rejection reminder",
        "description": "Remind once when a product sits in temporary rejection for 7+ days",
        "trigger": {"type": "inspection_overdue", "conditions": {"daysOverdue": 7}},
        "action": {"type": "inspection_reminder", "params": {}},
        "debounceMinutes": 1440,
    },
    {
        "name": "Production standard drift",
        "description": "Report standards whose observed median deviates 5% or more",
        "trigger": {"type": "standard_deviation", "conditions": {"minSamples": 5, "minDeviation": 5}},
        "action": {"type": "send_notification", "params": {"severity": "info"}},
        "debounceMinutes": 10080,
    },
    {
        "name": "Auto-learn production standards",
        "description": "Move standards 30% towards the observed median when they deviate 10% or more",
        "enabled": False,
        "trigger": {"type": "standard_deviation", "conditions": {"minSamples": 5, "minDeviation": 10}},
        "action": {"type": "auto_learning_update", "params": {"learningRate": 0.3, "dryRun": True}},
        "debounceMinutes": 10080,
    },
]


def seed_demo_data() -> None:
    """
    Seeds a small shop floor: machines, a chain of dependent orders, tracked
    products and production standards.
    Skips seeding if the Order table is non-empty.
    """
    now = utcnow()

    with Session(engine) as session:
        # Skip if already seeded
        if session.exec(select(Order)).first():
            return

        # === Machines ===
        machines = [
            MachineLoad(machine_id="M-CUT-01", station="Cutting", operator_name="A. Berger", hours_per_week=40, production_hours=36, actual_hours=31),
            MachineLoad(machine_id="M-CUT-02", station="Cutting", operator_name="L. Novak", hours_per_week=40, production_hours=32, actual_hours=30),
            MachineLoad(machine_id="M-WLD-01", station="Welding", operator_name=None, hours_per_week=38, production_hours=30, actual_hours=21),
            MachineLoad(machine_id="M-PNT-01", station="Paint", operator_name="S. Okafor", hours_per_week=35, production_hours=28, actual_hours=27),
            MachineLoad(machine_id="M-ASM-01", station="Assembly", operator_name="", hours_per_week=40, production_hours=34, actual_hours=25),
        ]
        session.add_all(machines)

        # === Orders ===
        # ORD-100 -> ORD-101 -> ORD-103 -> ORD-105 is the longest chain
        orders = [
            ("ORD-100", "FR-200", "shipped", 12, 11, -6, "M-CUT-01", []),
            ("ORD-101", "FR-200", "in_production", 16, 9, -2, "M-WLD-01", ["ORD-100"]),
            ("ORD-102", "BR-310", "planned", 6, None, 1, "M-CUT-02", []),
            ("ORD-103", "FR-200", "planned", 20, None, 3, "M-PNT-01", ["ORD-101"]),
            ("ORD-104", "BR-310", "planned", None, None, 4, "M-ASM-01", ["ORD-102"]),
            ("ORD-105", "FR-200", "planned", 10, None, 6, "M-ASM-01", ["ORD-103", "ORD-104"]),
            ("ORD-106", "HX-050", "quality_check", 4, 4, -1, "M-CUT-02", []),
        ]
        for oid, item, status, est, act, day_offset, machine, deps in orders:
            session.add(Order(
                order_id=oid,
                item_code=item,
                status=status,
                estimated_hours=est,
                actual_hours=act,
                planned_date=now + timedelta(days=day_offset),
                machine=machine,
                dependencies_json=json.dumps(deps),
            ))

        # === Production standards ===
        session.add_all([
            ProductionStandard(item_code="FR-200", machine="M-CUT-01", standard_minutes=45),
            ProductionStandard(item_code="BR-310", machine="M-CUT-02", standard_minutes=30),
        ])

        # === Tracked products ===
        # FR-200 on M-CUT-01 runs ~52 min against a 45 min standard
        fr_durations = [50, 52, 55, 51, 53, 49]
        for i, minutes in enumerate(fr_durations):
            started = now - timedelta(days=10 - i, hours=3)
            session.add(TrackedProduct(
                lot_number=f"LOT-FR-{i + 1:03d}",
                item_code="FR-200",
                origin_machine="M-CUT-01",
                current_station="Shipping",
                status="completed",
                started_at=started,
                completed_at=started + timedelta(minutes=minutes),
            ))

        session.add_all([
            TrackedProduct(
                lot_number="LOT-BR-001",
                item_code="BR-310",
                origin_machine="M-CUT-02",
                current_station="Rework",
                inspection_status="temporary_reject",
                inspection_timestamp=now - timedelta(days=9),
                started_at=now - timedelta(days=10),
            ),
            TrackedProduct(
                lot_number="LOT-BR-002",
                item_code="BR-310",
                origin_machine="M-CUT-02",
                current_station="Rework",
                inspection_status="temporary_reject",
                inspection_timestamp=now - timedelta(days=2),
                started_at=now - timedelta(days=3),
            ),
        ])

        session.commit()
        logger.info("Demo data seeded: %d machines, %d orders", len(machines), len(orders))
