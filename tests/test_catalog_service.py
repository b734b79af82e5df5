from unittest.mock import Mock

from sqlalchemy.exc import OperationalError

from funnelbot.models import (
    Campaign,
    MembershipPlan,
    OptionResponse,
    PaymentMethodStep,
    PlanOption,
    ScheduleText,
)
from funnelbot.services.catalog_service import CatalogStore


class TestMembershipCatalog:
    def test_plans_in_catalog_order(self, catalog, seed):
        seed(MembershipPlan(name="Plan Oro"), MembershipPlan(name="Plan Plata"))
        assert [plan.name for plan in catalog.list_plans()] == ["Plan Oro", "Plan Plata"]

    def test_options_ordered_by_number(self, catalog, seed):
        (plan,) = seed(MembershipPlan(name="Plan Oro"))
        seed(
            PlanOption(plan_id=plan.id, option_number=2, option_text="Horarios"),
            PlanOption(plan_id=plan.id, option_number=1, option_text="Beneficios"),
        )
        options = catalog.list_plan_options(plan.id)
        assert [(o.option_number, o.option_text) for o in options] == [(1, "Beneficios"), (2, "Horarios")]

    def test_option_response_lookup(self, catalog, seed):
        (plan,) = seed(MembershipPlan(name="Plan Oro"))
        seed(OptionResponse(plan_id=plan.id, option_number=2, response_kind="submenu", message="Paga así"))

        response = catalog.get_option_response(plan.id, 2)
        assert response.response_kind == "submenu"
        assert catalog.get_option_response(plan.id, 3) is None


class TestPaymentCatalog:
    def _seed_steps(self, seed):
        (plan,) = seed(MembershipPlan(name="Plan Oro"))
        (response,) = seed(OptionResponse(plan_id=plan.id, option_number=1, response_kind="submenu"))
        seed(
            PaymentMethodStep(response_id=response.id, method_name="Yape", step_order=2, content="Envía captura"),
            PaymentMethodStep(response_id=response.id, method_name="Tarjeta", step_order=1, content="Link de pago"),
            PaymentMethodStep(response_id=response.id, method_name="Yape", step_order=1, step_kind="image", content="qr.png"),
        )
        return response

    def test_methods_deduplicated_in_catalog_order(self, catalog, seed):
        response = self._seed_steps(seed)
        assert catalog.list_payment_methods(response.id) == ["Yape", "Tarjeta"]

    def test_steps_ordered(self, catalog, seed):
        response = self._seed_steps(seed)
        steps = catalog.list_payment_steps(response.id, "Yape")
        assert [(s.step_kind, s.content) for s in steps] == [("image", "qr.png"), ("text", "Envía captura")]

    def test_no_methods(self, catalog):
        assert catalog.list_payment_methods(999) == []

    def test_schedule_text(self, catalog, seed):
        seed(
            ScheduleText(response_id=4, condition="within", message="Te atendemos ahora"),
            ScheduleText(response_id=4, condition="outside", message="Te escribimos mañana"),
        )
        assert catalog.get_schedule_text(4, "outside") == "Te escribimos mañana"
        assert catalog.get_schedule_text(5, "within") is None


class TestCampaignCatalog:
    def test_campaigns(self, catalog, seed):
        seed(Campaign(keywords='["congreso"]', welcome_text="Bienvenido"))
        campaigns = catalog.list_campaigns()
        assert len(campaigns) == 1
        assert catalog.get_campaign(campaigns[0].id).welcome_text == "Bienvenido"
        assert catalog.get_campaign(404) is None


class TestCatalogFailure:
    def test_unreachable_store_reads_as_empty(self):
        db = Mock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
        store = CatalogStore(lambda: db)

        assert store.list_plans() == []
        assert store.list_payment_methods(1) == []
        assert store.get_campaign(1) is None
        assert store.get_schedule_text(1, "within") is None
        assert db.close.call_count == 4
