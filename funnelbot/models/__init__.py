from funnelbot.models.campaign import Campaign
from funnelbot.models.contact_state import ContactState
from funnelbot.models.membership_plan import MembershipPlan
from funnelbot.models.option_response import OptionResponse
from funnelbot.models.payment_method_step import PaymentMethodStep
from funnelbot.models.plan_option import PlanOption
from funnelbot.models.schedule_text import ScheduleText
from funnelbot.models.unrecognized_message import UnrecognizedMessage

__all__ = [
    "Campaign",
    "ContactState",
    "MembershipPlan",
    "OptionResponse",
    "PaymentMethodStep",
    "PlanOption",
    "ScheduleText",
    "UnrecognizedMessage",
]
