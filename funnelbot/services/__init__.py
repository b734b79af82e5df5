from funnelbot.services.matcher import (
    contains_any,
    match_by_keywords,
    match_by_number_or_word,
)
from funnelbot.services.permission_service import Domain, PermissionSet, allows
from funnelbot.services.state_machine import (
    NONE_TAG,
    FunnelState,
    InvalidTransitionError,
    StateTag,
    can_transition,
    transition,
)
