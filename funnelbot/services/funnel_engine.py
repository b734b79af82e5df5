"""Funnel engine: decides what to send a contact and where their funnel state goes next.

Each inbound message runs one read -> decide -> write cycle under a per-contact
lock. Content is delivered after the lock is released, in decision order.
"""

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from funnelbot.config import Settings, settings as default_settings
from funnelbot.logging_config import ContactLoggerAdapter, get_logger
from funnelbot.models.campaign import PAYMENT_CHOICE_STEPS, PRESENTATION_STEPS
from funnelbot.services.business_hours import is_within_business_hours
from funnelbot.services.catalog_service import CatalogStore
from funnelbot.services.contact_state_service import NO_GUARD, ContactStateStore, StateSnapshot, WriteOutcome
from funnelbot.services.dispatcher import ContentDispatcher, OutboundItem
from funnelbot.services.matcher import (
    contains_any,
    match_by_keywords,
    match_by_number_or_word,
    normalize_text,
    parse_keyword_list,
    plan_keywords,
)
from funnelbot.services.permission_service import Domain, PermissionSet, allows
from funnelbot.services.result import STATE_CONFLICT, Result
from funnelbot.services.state_machine import NONE_TAG, FunnelState, StateTag, expire, transition
from funnelbot.services.transport import is_group_or_broadcast

logger = get_logger("funnel_engine")

MODALITY_WORDS = (
    "1", "2", "3", "4",
    "pase vip", "pase premiun", "pase general", "pase virtual", "pase",
    "vip", "premiun", "virtual", "general",
)
PAYMENT_WORDS = (
    "1", "2", "yape", "depósito", "deposito", "transferencia", "tarjeta",
    "tarjeta de crédito", "tarjeta de debito", "tarjeta de débito",
)
YAPE_WORDS = ("1", "yape")
PAYMENT_HINT = re.compile(r"pago|yape|transferencia|tarjeta|método", re.IGNORECASE)

MSG_PRICE = "💰 *Precio:* {price}"
MSG_OPTIONS_HEADER = "📋 *Elige una opción:*"
MSG_OPTIONS_FOOTER = "Responde con el número de la opción."
MSG_METHODS_HEADER = "💳 *Métodos de pago disponibles:*"
MSG_METHODS_FOOTER = "Responde con el número o el nombre del método."
MSG_METHOD_GUIDANCE = "No reconocí ese método de pago. Elige uno de la lista:"
MSG_OPTION_UNAVAILABLE = "Esa opción no está disponible por ahora. Elige otra opción de la lista."
MSG_NO_PAYMENT_METHODS = "Lo sentimos, no hay métodos de pago disponibles para esta opción."
MSG_GENERIC_ERROR = "❌ Ocurrió un error con esta opción. Por favor intenta más tarde."
MSG_PROCESSING_ERROR = "❌ Error al procesar tu solicitud. Por favor intenta más tarde."


class Action(str, Enum):
    IGNORED = "ignored"
    EXPIRED = "expired"
    PAYMENT_STEPS = "payment_steps"
    PAYMENT_GUIDANCE = "payment_guidance"
    MEMBER_OPTION = "member_option"
    OPTION_UNRECOGNIZED = "option_unrecognized"
    MEMBER_SEQUENCE = "member_sequence"
    FOUNDATION_PAYMENT_PROMPT = "foundation_payment_prompt"
    FOUNDATION_PAYMENT_STEPS = "foundation_payment_steps"
    FOUNDATION_WAITING = "foundation_waiting"
    COOLDOWN = "cooldown"
    CAMPAIGN_SEQUENCE = "campaign_sequence"
    UNRECOGNIZED = "unrecognized"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass
class Decision:
    action: Action
    items: list[OutboundItem] = field(default_factory=list)
    next_tag: Optional[StateTag] = None  # None keeps the stored state
    cleanup: bool = False  # drop the idle record before writing
    log_unrecognized: bool = False


@dataclass
class FunnelOutcome:
    action: Action
    tag: Optional[StateTag] = None
    sent: int = 0


def format_plan_options(options) -> str:
    lines = [f"{option.option_number}. {option.option_text}" for option in options]
    return "\n".join([MSG_OPTIONS_HEADER, "", *lines, "", MSG_OPTIONS_FOOTER])


def format_payment_methods(methods: list[str], header: Optional[str] = None) -> str:
    lines = [f"{position}. {name}" for position, name in enumerate(methods, start=1)]
    return "\n".join([header or MSG_METHODS_HEADER, "", *lines, "", MSG_METHODS_FOOTER])


def step_item(kind: str, content: str) -> OutboundItem:
    kind = (kind or "").strip().lower()
    if kind == "image":
        return OutboundItem.image(content)
    if kind in {"document", "pdf"}:
        return OutboundItem.document(content)
    return OutboundItem.text(content)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _KeyedLocks:
    """asyncio locks created on demand per key and dropped once unused."""

    def __init__(self):
        self._locks: dict[str, list] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        entry = self._locks.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class _DeliveryChain:
    """Orders deliveries per contact by the order their decisions were committed."""

    def __init__(self):
        self._tails: dict[str, asyncio.Future] = {}

    def reserve(self, key: str) -> tuple[Optional[asyncio.Future], asyncio.Future]:
        previous = self._tails.get(key)
        turn = asyncio.get_running_loop().create_future()
        self._tails[key] = turn
        return previous, turn

    def release(self, key: str, turn: asyncio.Future) -> None:
        if not turn.done():
            turn.set_result(None)
        if self._tails.get(key) is turn:
            del self._tails[key]


@dataclass
class EngineSession:
    """Process-level context the engine runs under."""

    permissions: PermissionSet
    started_at: datetime = field(default_factory=_utcnow)
    last_activity_at: Optional[datetime] = None


class FunnelEngine:
    def __init__(
        self,
        catalog: CatalogStore,
        states: ContactStateStore,
        dispatcher: ContentDispatcher,
        session: EngineSession,
        *,
        config: Settings = default_settings,
        now_func: Callable[[], datetime] = _utcnow,
    ):
        self.catalog = catalog
        self.states = states
        self.dispatcher = dispatcher
        self.session = session
        self.now_func = now_func

        self.state_ttl = timedelta(minutes=config.state_ttl_minutes)
        self.cooldown = timedelta(minutes=config.cooldown_minutes)
        self.idle_cleanup = timedelta(minutes=config.idle_cleanup_minutes)
        self.member_option_max = config.member_option_max
        self.utc_offset_hours = config.business_utc_offset_hours
        self.default_campaign_id = config.default_campaign_id

        self._state_locks = _KeyedLocks()
        self._deliveries = _DeliveryChain()
        self._tasks: set[asyncio.Task] = set()
        self._accepting = True
        self._in_flight = 0

    # --- lifecycle ---

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def last_activity_at(self) -> Optional[datetime]:
        return self.session.last_activity_at

    def submit(self, contact_id: str, body: str) -> Optional[asyncio.Task]:
        """Schedule an inbound message. Returns None once the engine is stopping."""
        if not self._accepting:
            logger.info("Engine stopped, dropping inbound message", extra={"context": {"contact_id": contact_id}})
            return None
        task = asyncio.create_task(self.handle_inbound(contact_id, body))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def stop(self) -> None:
        """Stop accepting messages and let in-flight cycles finish."""
        self._accepting = False
        pending = list(self._tasks)
        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight message(s)")
            await asyncio.gather(*pending, return_exceptions=True)

    async def current_state(self, contact_id: str) -> Optional[StateSnapshot]:
        return await asyncio.to_thread(self.states.get, contact_id)

    # --- message handling ---

    async def handle_inbound(self, contact_id: str, body: Optional[str]) -> FunnelOutcome:
        if is_group_or_broadcast(contact_id):
            return FunnelOutcome(Action.IGNORED)

        text = normalize_text(body)
        if not text:
            return FunnelOutcome(Action.IGNORED)

        log = ContactLoggerAdapter(logger, {"contact_id": contact_id})
        log.info(f"Processing message: {text!r}", context={"role": self.session.permissions.role})
        self._in_flight += 1
        try:
            async with self._state_locks.hold(contact_id):
                now = self.now_func()
                self.session.last_activity_at = now
                read = await asyncio.to_thread(self.states.read, contact_id)
                snapshot = read.unwrap_or(None)
                decision = await self._decide(text, snapshot, now, log)
                committed = await self._commit(contact_id, body, snapshot, decision, now, log, guarded=read.ok)
                if not committed.ok:
                    return FunnelOutcome(Action.CONFLICT, snapshot.tag if snapshot else NONE_TAG)
                committed_tag = committed.value
                lane = self._deliveries.reserve(contact_id) if decision.items else None

            sent = 0
            if lane is not None:
                sent = await self._deliver(contact_id, decision.items, lane)
            log.info(f"Message handled: {decision.action.value}", context={"state": committed_tag.encode(), "sent": sent})
            return FunnelOutcome(decision.action, committed_tag, sent)
        except Exception:
            log.exception("Failed to process message")
            await self.dispatcher.send_item(contact_id, OutboundItem.text(MSG_PROCESSING_ERROR), log)
            return FunnelOutcome(Action.ERROR)
        finally:
            self._in_flight -= 1

    async def _deliver(self, contact_id: str, items: list[OutboundItem], lane) -> int:
        previous, turn = lane
        try:
            if previous is not None:
                await asyncio.shield(previous)
            result = await self.dispatcher.dispatch(contact_id, items)
            return result.value if result.ok else 0
        finally:
            self._deliveries.release(contact_id, turn)

    async def _commit(
        self,
        contact_id: str,
        body: str,
        snapshot: Optional[StateSnapshot],
        decision: Decision,
        now: datetime,
        log,
        guarded: bool = True,
    ) -> Result[StateTag]:
        """Persist the decision and return the resulting tag.

        Unguarded writes are used when the state could not be read.
        """
        current = snapshot.tag if snapshot else NONE_TAG
        expected = snapshot.updated_at if snapshot else None
        if not guarded:
            expected = NO_GUARD

        if decision.cleanup and snapshot is not None:
            outcome = await asyncio.to_thread(self.states.delete, contact_id, if_updated_at=expected)
            if outcome == WriteOutcome.CONFLICT:
                return Result.failure("Contact state changed before cleanup", STATE_CONFLICT)
            if outcome == WriteOutcome.OK:
                log.info("Removed idle contact state")
                current, expected = NONE_TAG, None

        if decision.next_tag is not None:
            target = transition(current, decision.next_tag)
            outcome = await asyncio.to_thread(
                self.states.write, contact_id, target, now=now, if_updated_at=expected
            )
            if outcome == WriteOutcome.CONFLICT:
                log.warning("Dropping decision made on a stale state", context={"action": decision.action.value})
                return Result.failure("Contact state changed concurrently", STATE_CONFLICT)
            current = target

        if decision.log_unrecognized:
            log.info(f"Unrecognized message: {body!r}")
            await asyncio.to_thread(self.states.log_unrecognized, contact_id, body, now=now)

        return Result.success(current)

    async def _decide(self, text: str, snapshot: Optional[StateSnapshot], now: datetime, log) -> Decision:
        tag = snapshot.tag if snapshot else NONE_TAG
        age = now - snapshot.updated_at if snapshot else None

        if not tag.is_none and age > self.state_ttl:
            log.info(f"State {tag.encode()} expired after {age}")
            return Decision(Action.EXPIRED, next_tag=expire(tag))

        if tag.state == FunnelState.PAYMENT_METHOD_SELECTION:
            return await self._resolve_payment_method(tag.ref_id, text)

        if tag.state == FunnelState.MEMBER_OPTION_SELECTION:
            return await self._resolve_member_option(tag.ref_id, text, now)

        permissions = self.session.permissions
        if allows(permissions, Domain.MEMBERS.value):
            plans = await asyncio.to_thread(self.catalog.list_plans)
            plan = match_by_keywords(text, plans, lambda p: plan_keywords(p.name))
            if plan is not None:
                log.info(f"Matched membership plan {plan.id}: {plan.name}")
                return await self._member_sequence(plan)
        else:
            log.debug("Members domain not permitted")

        if allows(permissions, Domain.FOUNDATION.value):
            return await self._foundation(text, tag, age, log)

        log.debug("Foundation domain not permitted")
        return Decision(Action.UNRECOGNIZED, log_unrecognized=True)

    # --- members ---

    async def _member_sequence(self, plan) -> Decision:
        items = []
        if plan.post_media_ref:
            items.append(OutboundItem.image(plan.post_media_ref))
        if plan.benefit_text:
            items.append(OutboundItem.text(plan.benefit_text))
        if plan.pdf_media_ref:
            items.append(OutboundItem.document(plan.pdf_media_ref))
        if plan.price:
            items.append(OutboundItem.text(MSG_PRICE.format(price=plan.price)))

        options = await asyncio.to_thread(self.catalog.list_plan_options, plan.id)
        if not options:
            return Decision(Action.MEMBER_SEQUENCE, items)

        items.append(OutboundItem.text(format_plan_options(options)))
        return Decision(Action.MEMBER_SEQUENCE, items, next_tag=StateTag.member_option_selection(plan.id))

    async def _resolve_member_option(self, plan_id: int, text: str, now: datetime) -> Decision:
        number = match_by_number_or_word(text, (), max_number=self.member_option_max)
        if number is None:
            return Decision(Action.OPTION_UNRECOGNIZED, log_unrecognized=True)

        response = await asyncio.to_thread(self.catalog.get_option_response, plan_id, number)
        if response is None:
            return Decision(Action.MEMBER_OPTION, [OutboundItem.text(MSG_OPTION_UNAVAILABLE)])

        kind = (response.response_kind or "").strip().lower()
        message = (response.message or "").strip()

        if kind == "text":
            items = [OutboundItem.text(message)] if message else []
            if message and PAYMENT_HINT.search(message):
                methods = await asyncio.to_thread(self.catalog.list_payment_methods, response.id)
                if methods:
                    items.append(OutboundItem.text(format_payment_methods(methods)))
                    return Decision(
                        Action.MEMBER_OPTION, items, next_tag=StateTag.payment_method_selection(response.id)
                    )
            return Decision(Action.MEMBER_OPTION, items, next_tag=NONE_TAG)

        if kind == "schedule":
            condition = "within" if is_within_business_hours(now, self.utc_offset_hours) else "outside"
            scheduled = await asyncio.to_thread(self.catalog.get_schedule_text, response.id, condition)
            reply = scheduled or message
            items = [OutboundItem.text(reply)] if reply else []
            return Decision(Action.MEMBER_OPTION, items, next_tag=NONE_TAG)

        if kind == "submenu":
            methods = await asyncio.to_thread(self.catalog.list_payment_methods, response.id)
            if not methods:
                return Decision(Action.MEMBER_OPTION, [OutboundItem.text(MSG_NO_PAYMENT_METHODS)], next_tag=NONE_TAG)
            return Decision(
                Action.MEMBER_OPTION,
                [OutboundItem.text(format_payment_methods(methods, header=message or None))],
                next_tag=StateTag.payment_method_selection(response.id),
            )

        return Decision(Action.MEMBER_OPTION, [OutboundItem.text(message or MSG_GENERIC_ERROR)], next_tag=NONE_TAG)

    async def _resolve_payment_method(self, response_id: int, text: str) -> Decision:
        methods = await asyncio.to_thread(self.catalog.list_payment_methods, response_id)
        if not methods:
            return Decision(Action.PAYMENT_STEPS, [OutboundItem.text(MSG_NO_PAYMENT_METHODS)], next_tag=NONE_TAG)

        position = match_by_number_or_word(text, methods)
        if position is None:
            guidance = format_payment_methods(methods, header=MSG_METHOD_GUIDANCE)
            return Decision(Action.PAYMENT_GUIDANCE, [OutboundItem.text(guidance)])

        method = methods[position - 1]
        steps = await asyncio.to_thread(self.catalog.list_payment_steps, response_id, method)
        items = [step_item(step.step_kind, step.content) for step in steps if step.content]
        return Decision(Action.PAYMENT_STEPS, items, next_tag=NONE_TAG)

    # --- foundation ---

    async def _campaign_for(self, tag: StateTag):
        campaign_id = tag.ref_id if tag.ref_id is not None else self.default_campaign_id
        return await asyncio.to_thread(self.catalog.get_campaign, campaign_id)

    async def _foundation(self, text: str, tag: StateTag, age: Optional[timedelta], log) -> Decision:
        if tag.state == FunnelState.FOUNDATION_MODALITY_SELECTION:
            if not contains_any(text, MODALITY_WORDS):
                return Decision(Action.FOUNDATION_WAITING)
            campaign = await self._campaign_for(tag)
            if campaign is None:
                log.warning("Campaign for modality selection not found")
                return Decision(Action.FOUNDATION_WAITING)
            items = [OutboundItem.text(campaign.payment_prompt_text)] if campaign.payment_prompt_text else []
            return Decision(
                Action.FOUNDATION_PAYMENT_PROMPT,
                items,
                next_tag=StateTag.foundation_payment_selection(tag.ref_id),
            )

        if tag.state == FunnelState.FOUNDATION_PAYMENT_SELECTION:
            if not contains_any(text, PAYMENT_WORDS):
                return Decision(Action.FOUNDATION_WAITING)
            campaign = await self._campaign_for(tag)
            if campaign is None:
                log.warning("Campaign for payment selection not found")
                return Decision(Action.FOUNDATION_WAITING)
            choice = "yape" if contains_any(text, YAPE_WORDS) else "card"
            items = [step_item(kind, value) for kind, value in campaign.iter_steps(PAYMENT_CHOICE_STEPS[choice])]
            return Decision(Action.FOUNDATION_PAYMENT_STEPS, items, next_tag=NONE_TAG)

        cleanup = False
        if age is not None:
            if age < self.cooldown:
                log.info(f"Contact cooling down ({age} since last update)")
                return Decision(Action.COOLDOWN)
            cleanup = age > self.idle_cleanup

        campaigns = await asyncio.to_thread(self.catalog.list_campaigns)
        campaign = match_by_keywords(text, campaigns, lambda c: parse_keyword_list(c.keywords))
        if campaign is None:
            return Decision(Action.UNRECOGNIZED, cleanup=cleanup, log_unrecognized=True)

        log.info(f"Matched campaign {campaign.id}")
        items = [step_item(kind, value) for kind, value in campaign.iter_steps(PRESENTATION_STEPS)]
        return Decision(
            Action.CAMPAIGN_SEQUENCE,
            items,
            next_tag=StateTag.foundation_modality_selection(campaign.id),
            cleanup=cleanup,
        )
