"""
The demo seed must produce a consistent, schedulable shop floor.
"""

from sqlmodel import Session, select

from factory_ops.database import create_db_and_tables, engine
from factory_ops.models.master import Order
from factory_ops.seed_data import DEFAULT_RULES, seed_demo_data
from factory_ops.services import schedule as schedule_service
from factory_ops.services.automation import evaluate_enabled_rules, import_default_rules


def test_demo_data_is_schedulable_and_evaluable():
    create_db_and_tables()
    seed_demo_data()
    seed_demo_data()  # second call is a no-op

    with Session(engine) as session:
        assert len(session.exec(select(Order)).all()) == 7

        schedule = schedule_service.compute_order_schedule(session)
        assert schedule["critical_path"][:2] == ["ORD-100", "ORD-101"]
        assert schedule["critical_path"][-1] == "ORD-105"

        assert import_default_rules(session)["imported"] == len(DEFAULT_RULES)
        result = evaluate_enabled_rules(session)
        assert result["summary"]["error"] == 0
        assert result["summary"]["triggered"] >= 1
