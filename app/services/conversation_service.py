"""Conversation service: runs state machine decisions against the stores.

Every read-mutate-write of a session happens under the per-user lock. A
decision is applied to a working copy; effects run first, and the copy is
saved only when all of them succeeded. Outbound commands are sent after the
save.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Set

from app.entities import ConversationSession, OrderStatus, PaymentOrder, SessionState, utcnow
from app.errors import AnalysisErrorKind, AnalysisFailure, AppError, SessionExistsError, UpstreamError
from app.logging_config import LoggerAdapter, get_logger
from app.schemas.events import InboundEvent, OutboundCommand, send_options, send_text
from app.services import templates
from app.services.alert_service import send_alert_async
from app.services.analysis.base import ImageAnalyzer
from app.services.documents.base import DocumentGenerator
from app.services.messaging.base import MessagingGateway
from app.services.payment_service import PaymentOrderManager
from app.services.reconciliation_service import PaymentReconciler
from app.services.result import Result
from app.services.session_lock import KeyedLock
from app.services.state_machine import Decision, Effect, decide, transition
from app.stores.base import SessionStore

logger = get_logger("conversation_service")

AlertSender = Callable[[str, str, Optional[dict]], Awaitable[bool]]

# Shown when an effect fails; the session is left untouched.
EFFECT_FALLBACKS = {
    Effect.CREATE_ORDER: templates.MSG_PAYMENT_LINK_FAILED,
    Effect.RENEW_ORDER: templates.MSG_PAYMENT_LINK_FAILED,
    Effect.CHECK_PAYMENT: templates.MSG_PAYMENT_NOT_CONFIRMED,
    Effect.REDELIVER_DOCUMENT: templates.MSG_DOCUMENT_DELAYED,
}


class ConversationService:
    def __init__(
        self,
        sessions: SessionStore,
        payments: PaymentOrderManager,
        reconciler: PaymentReconciler,
        messaging: MessagingGateway,
        analyzer: ImageAnalyzer,
        documents: DocumentGenerator,
        price_minor_units: int = 69900,
        currency: str = "INR",
        analysis_timeout_seconds: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
        alert: AlertSender = send_alert_async,
    ):
        self.sessions = sessions
        self.payments = payments
        self.reconciler = reconciler
        self.messaging = messaging
        self.analyzer = analyzer
        self.documents = documents
        self.price_minor_units = price_minor_units
        self.currency = currency
        self.analysis_timeout_seconds = analysis_timeout_seconds
        self.locks = KeyedLock()
        self._clock = clock
        self._alert = alert
        self._tasks: Set[asyncio.Task] = set()
        reconciler.add_listener(self.on_payment_event)

    @property
    def price_text(self) -> str:
        return templates.format_price(self.price_minor_units, self.currency)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def handle_event(self, event: InboundEvent) -> Result[ConversationSession]:
        log = LoggerAdapter(logger, {"user_id": event.user_id, "event_id": event.id})
        async with self.locks.lock(event.user_id):
            session = self._load_or_create(event)
            previous_state = session.state
            decision = decide(session, event, self.price_text)
            log.info(
                f"Event {event.kind} in {previous_state.value}",
                context={"intent": decision.intent.value if decision.intent else None, "next": decision.next_state.value},
            )

            session.state = decision.next_state
            try:
                extra_commands = await self._run_effects(session, decision)
            except AppError as e:
                log.warning(f"Effect failed, session not saved: {e.message}", context={"code": e.code})
                fallback = next(
                    (EFFECT_FALLBACKS[effect] for effect in decision.effects if effect in EFFECT_FALLBACKS),
                    templates.MSG_ERROR,
                )
                await self._dispatch([send_text(event.user_id, fallback)])
                return Result.from_error(e)

            self.sessions.save(session)
            if session.state != previous_state:
                log.info(f"State {previous_state.value} -> {session.state.value}")

            if Effect.START_ANALYSIS in decision.effects:
                self._spawn(self._run_analysis(session.user_id, session.analysis_generation, event.image_ref))

            await self._dispatch(decision.commands + extra_commands)
            return Result.success(session)

    def _load_or_create(self, event: InboundEvent) -> ConversationSession:
        session = self.sessions.get(event.user_id)
        if session is not None:
            return session
        profile = {"name": event.profile_name} if event.profile_name else {}
        try:
            session = self.sessions.create(event.user_id, profile)
        except SessionExistsError:
            session = self.sessions.get(event.user_id)
        logger.info("Session created", extra={"context": {"user_id": event.user_id}})
        return session

    async def _run_effects(self, session: ConversationSession, decision: Decision) -> List[OutboundCommand]:
        commands: List[OutboundCommand] = []
        for effect in decision.effects:
            if effect == Effect.START_ANALYSIS:
                session.analysis = None
                session.analyzed_at = None
                session.analysis_generation += 1
                session.analysis_started_at = self._clock()
            elif effect == Effect.CREATE_ORDER:
                commands += await self._create_order(session)
            elif effect == Effect.RENEW_ORDER:
                commands += await self._renew_order(session)
            elif effect == Effect.CHECK_PAYMENT:
                commands += await self._check_payment(session)
            elif effect == Effect.CLEAR_ANALYSIS:
                self._clear_analysis(session)
            elif effect == Effect.REDELIVER_DOCUMENT:
                commands += await self._redeliver_document(session)
        return commands

    async def _create_order(self, session: ConversationSession) -> List[OutboundCommand]:
        order = await self.payments.create_order(
            session.user_id,
            self.price_minor_units,
            self.currency,
            analysis_snapshot=session.analysis,
        )
        session.active_payment_order_id = order.order_id
        return [send_text(session.user_id, templates.format_payment_link(self.payments.payment_link(order)))]

    async def _renew_order(self, session: ConversationSession) -> List[OutboundCommand]:
        current = self.payments.get_order(session.active_payment_order_id) if session.active_payment_order_id else None
        if current and current.status == OrderStatus.COMPLETED:
            return await self._complete_purchase(session, current)
        if current and current.status == OrderStatus.CREATED:
            return [send_text(session.user_id, templates.format_payment_link(self.payments.payment_link(current)))]
        return await self._create_order(session)

    async def _check_payment(self, session: ConversationSession) -> List[OutboundCommand]:
        order_id = session.active_payment_order_id
        if not order_id:
            active = self.payments.get_active_order_for_user(session.user_id)
            order_id = active.order_id if active else None
        if not order_id:
            return [send_text(session.user_id, templates.MSG_PAYMENT_NOT_CONFIRMED)]

        # The lock is held here, so listeners are not notified; completion runs inline.
        result = await self.reconciler.reconcile_by_polling(order_id, notify=False)
        if not result.ok:
            return [send_text(session.user_id, templates.MSG_PAYMENT_NOT_CONFIRMED)]

        order = result.value.order
        if order.status == OrderStatus.COMPLETED:
            return await self._complete_purchase(session, order)
        if order.status == OrderStatus.FAILED:
            return [send_text(session.user_id, templates.format_payment_failed(order.failure_reason))]
        return [send_text(session.user_id, templates.MSG_PAYMENT_NOT_CONFIRMED)]

    def _clear_analysis(self, session: ConversationSession) -> None:
        session.analysis = None
        session.analyzed_at = None
        session.analysis_started_at = None
        session.active_payment_order_id = None
        session.pdf_delivered = False
        session.document_ref = None
        session.completed_at = None

    async def _redeliver_document(self, session: ConversationSession) -> List[OutboundCommand]:
        completed = [
            order for order in self.payments.list_orders_for_user(session.user_id) if order.status == OrderStatus.COMPLETED
        ]
        if not completed:
            return [send_text(session.user_id, templates.MSG_COMPLETED)]
        order = completed[-1]
        ref = await self._document_for(order, session)
        session.document_ref = ref
        session.pdf_delivered = True
        return [send_text(session.user_id, templates.format_document_delivery(ref))]

    async def _document_for(self, order: PaymentOrder, session: ConversationSession) -> str:
        """Generate the guide for an order once; later calls reuse the stored ref."""
        if order.document_ref:
            return order.document_ref
        ref = await self.documents.generate(order.analysis_snapshot or session.analysis, order.user_id, order.order_id)
        self.payments.orders.set_document_ref(order.order_id, ref)
        order.document_ref = ref
        return ref

    async def _complete_purchase(self, session: ConversationSession, order: PaymentOrder) -> List[OutboundCommand]:
        session.state = transition(SessionState.PAYMENT_PENDING, SessionState.COMPLETED)
        session.active_payment_order_id = None
        session.has_paid = True
        session.completed_at = order.completed_at or self._clock()
        commands = [send_text(session.user_id, templates.MSG_PAYMENT_CONFIRMED)]
        try:
            ref = await self._document_for(order, session)
        except AppError as e:
            logger.error(
                f"Document generation failed: {e.message}",
                extra={"context": {"user_id": session.user_id, "order_id": order.order_id}},
            )
            await self._alert(
                "CRITICAL",
                "Guide not delivered after payment",
                {"user_id": session.user_id, "order_id": order.order_id, "error": e.message},
            )
            session.pdf_delivered = False
            commands.append(send_text(session.user_id, templates.MSG_DOCUMENT_DELAYED))
            return commands

        session.document_ref = ref
        session.pdf_delivered = True
        commands.append(send_text(session.user_id, templates.format_document_delivery(ref)))
        logger.info("Purchase completed", extra={"context": {"user_id": session.user_id, "order_id": order.order_id}})
        return commands

    # ------------------------------------------------------------------
    # Payment notifications
    # ------------------------------------------------------------------

    async def on_payment_event(self, order: PaymentOrder) -> None:
        """Listener for order transitions reported by the reconciler."""
        async with self.locks.lock(order.user_id):
            session = self.sessions.get(order.user_id)
            if session is None or session.state != SessionState.PAYMENT_PENDING:
                logger.info(
                    "Payment event ignored for session not awaiting payment",
                    extra={"context": {"order_id": order.order_id, "state": session.state.value if session else None}},
                )
                return

            if order.status == OrderStatus.COMPLETED:
                commands = await self._complete_purchase(session, order)
                self.sessions.save(session)
                await self._dispatch(commands)
            elif order.status == OrderStatus.FAILED and session.active_payment_order_id == order.order_id:
                await self._dispatch([send_text(session.user_id, templates.format_payment_failed(order.failure_reason))])

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for background analysis tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _download_and_analyze(self, image_ref: str) -> dict:
        media = await self.messaging.download_media(image_ref)
        return await self.analyzer.analyze(media.data, media.mime_type)

    async def _run_analysis(self, user_id: str, generation: int, image_ref: str) -> None:
        analysis, failure = None, None
        try:
            analysis = await asyncio.wait_for(self._download_and_analyze(image_ref), timeout=self.analysis_timeout_seconds)
        except asyncio.TimeoutError:
            failure = AnalysisFailure("Analysis timed out", AnalysisErrorKind.TIMEOUT)
        except AnalysisFailure as e:
            failure = e
        except UpstreamError as e:
            kind = AnalysisErrorKind.TIMEOUT if e.code == "upstream_timeout" else AnalysisErrorKind.UNKNOWN
            failure = AnalysisFailure(e.message, kind)
        except Exception as e:
            logger.error(f"Unexpected analysis error: {e}", exc_info=True, extra={"context": {"user_id": user_id}})
            failure = AnalysisFailure("Unexpected analysis error", AnalysisErrorKind.UNKNOWN)

        if failure is not None:
            logger.warning(
                f"Analysis failed: {failure.message}",
                extra={"context": {"user_id": user_id, "kind": failure.kind.value}},
            )
        await self.apply_analysis_result(user_id, generation, analysis=analysis, failure=failure)

    async def apply_analysis_result(
        self,
        user_id: str,
        generation: int,
        analysis: Optional[dict] = None,
        failure: Optional[AnalysisFailure] = None,
    ) -> bool:
        """Apply an analysis outcome if the session still waits for it.

        Returns False when the result is stale: the session left `analyzing`
        or a newer analysis was started.
        """
        async with self.locks.lock(user_id):
            session = self.sessions.get(user_id)
            if session is None or session.state != SessionState.ANALYZING or session.analysis_generation != generation:
                logger.info(
                    "Discarding stale analysis result",
                    extra={
                        "context": {
                            "user_id": user_id,
                            "generation": generation,
                            "state": session.state.value if session else None,
                        }
                    },
                )
                return False

            session.analysis_started_at = None
            if analysis is not None and failure is None:
                session.state = transition(session.state, SessionState.RESULTS_SHOWN)
                session.analysis = analysis
                session.analyzed_at = self._clock()
                commands = [send_text(user_id, text) for text in templates.format_analysis_results(analysis)]
                commands.append(send_options(user_id, templates.MSG_RESULTS_OPTIONS, templates.RESULTS_OPTIONS))
            else:
                kind = failure.kind if failure else AnalysisErrorKind.UNKNOWN
                session.state = transition(session.state, SessionState.WAITING_FOR_PHOTO)
                commands = [send_text(user_id, templates.format_analysis_failure(kind))]

            self.sessions.save(session)
            logger.info(f"Analysis applied: {session.state.value}", extra={"context": {"user_id": user_id}})
            await self._dispatch(commands)
            return True

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _dispatch(self, commands: List[OutboundCommand]) -> None:
        for command in commands:
            try:
                await self.messaging.send(command)
            except UpstreamError as e:
                logger.error(
                    f"Failed to deliver message: {e.message}",
                    extra={"context": {"user_id": command.user_id, "kind": command.kind}},
                )
                await self._alert("ERROR", "Message delivery failed", {"user_id": command.user_id, "error": e.message})

    # ------------------------------------------------------------------
    # Analytics and user data
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        sessions = self.sessions.all()
        now = self._clock()
        states = {}
        for session in sessions:
            states[session.state.value] = states.get(session.state.value, 0) + 1
        total = len(sessions)
        analysed = sum(1 for session in sessions if session.analysis)
        paid = sum(1 for session in sessions if session.has_completed_payment)
        return {
            "total": total,
            "active_24h": sum(1 for session in sessions if session.last_active > now - timedelta(days=1)),
            "with_analysis": analysed,
            "paid": paid,
            "average_messages": round(sum(session.message_count for session in sessions) / total) if total else 0,
            "state_distribution": states,
            "analysis_conversion": round(analysed / total * 100, 2) if total else 0.0,
            "payment_conversion": round(paid / analysed * 100, 2) if analysed else 0.0,
        }

    def export_user(self, user_id: str) -> Optional[dict]:
        session = self.sessions.get(user_id)
        if session is None:
            return None
        data = session.to_dict()
        data["orders"] = [order.to_dict() for order in self.payments.list_orders_for_user(user_id)]
        return data

    async def delete_user(self, user_id: str) -> bool:
        """Remove the session and any unpaid orders. Paid orders are kept for accounting."""
        async with self.locks.lock(user_id):
            deleted = self.sessions.delete(user_id)
            for order in self.payments.list_orders_for_user(user_id):
                if order.status != OrderStatus.COMPLETED:
                    self.payments.orders.delete(order.order_id)
        if deleted:
            logger.info("User data deleted", extra={"context": {"user_id": user_id}})
        return deleted
