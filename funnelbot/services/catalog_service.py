"""Read-only access to the content catalogs.

Every query opens a short-lived session. Connectivity problems are logged and
reported as "no data" so the engine falls through to the next branch.
"""

from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from funnelbot.logging_config import get_logger
from funnelbot.models import (
    Campaign,
    MembershipPlan,
    OptionResponse,
    PaymentMethodStep,
    PlanOption,
    ScheduleText,
)

logger = get_logger("catalog_service")


class CatalogStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _read(self, label: str, query: Callable[[Session], object], default):
        db = self._session_factory()
        try:
            return query(db)
        except SQLAlchemyError as e:
            logger.error(f"Catalog read failed: {label}", extra={"context": {"error": str(e)}})
            return default
        finally:
            db.close()

    def list_plans(self) -> list[MembershipPlan]:
        return self._read(
            "members",
            lambda db: db.query(MembershipPlan).order_by(MembershipPlan.id).all(),
            [],
        )

    def list_plan_options(self, plan_id: int) -> list[PlanOption]:
        return self._read(
            "member_options",
            lambda db: (
                db.query(PlanOption)
                .filter(PlanOption.plan_id == plan_id)
                .order_by(PlanOption.option_number)
                .all()
            ),
            [],
        )

    def get_option_response(self, plan_id: int, option_number: int) -> Optional[OptionResponse]:
        return self._read(
            "member_option_responses",
            lambda db: (
                db.query(OptionResponse)
                .filter(OptionResponse.plan_id == plan_id, OptionResponse.option_number == option_number)
                .order_by(OptionResponse.id)
                .first()
            ),
            None,
        )

    def list_payment_methods(self, response_id: int) -> list[str]:
        """Distinct method names for a response, in the order they were catalogued."""

        def query(db: Session):
            first_id = func.min(PaymentMethodStep.id).label("first_id")
            return (
                db.query(PaymentMethodStep.method_name, first_id)
                .filter(PaymentMethodStep.response_id == response_id)
                .group_by(PaymentMethodStep.method_name)
                .order_by(first_id)
                .all()
            )

        return [row.method_name for row in self._read("payment_methods", query, [])]

    def list_payment_steps(self, response_id: int, method_name: str) -> list[PaymentMethodStep]:
        return self._read(
            "payment_method_steps",
            lambda db: (
                db.query(PaymentMethodStep)
                .filter(
                    PaymentMethodStep.response_id == response_id,
                    PaymentMethodStep.method_name == method_name,
                )
                .order_by(PaymentMethodStep.step_order, PaymentMethodStep.id)
                .all()
            ),
            [],
        )

    def get_schedule_text(self, response_id: int, condition: str) -> Optional[str]:
        row = self._read(
            "schedule_texts",
            lambda db: (
                db.query(ScheduleText)
                .filter(ScheduleText.response_id == response_id, ScheduleText.condition == condition)
                .order_by(ScheduleText.id)
                .first()
            ),
            None,
        )
        return row.message if row else None

    def list_campaigns(self) -> list[Campaign]:
        return self._read(
            "bot_foundation",
            lambda db: db.query(Campaign).order_by(Campaign.id).all(),
            [],
        )

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        return self._read(
            "bot_foundation",
            lambda db: db.query(Campaign).filter(Campaign.id == campaign_id).first(),
            None,
        )
