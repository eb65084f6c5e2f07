"""
TenderDesk - main façade of the tender lifecycle

The single entry point for the office's presentation layers (CLI, read API,
scripts). Every action loads the streams it needs, lets the domain
components decide, commits the resulting events atomically and returns an
``ActionResult``; domain rejections come back as values, never exceptions.

Example:
    >>> from tender_lifecycle import TenderDesk
    >>> desk = TenderDesk("tenders.db")
    >>> nit_id = desk.publish_nit(12, date(2024, 6, 3)).value
    >>> work_id = desk.add_work(nit_id, 1, Decimal("1000000"), "Drain at ward 4").value
    >>> bid_id = desk.register_bid(work_id, "agency-17").value
    >>> desk.qualification_status(work_id).value["message"]
    '1 of 1 bids still await technical evaluation'
"""

import sqlite3
import threading
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tender_lifecycle.kernel.bus import EventHandler, InProcessBus
from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.errors import (
    AlreadyAwarded,
    AwardNotFound,
    BidNotFound,
    ConcurrentModification,
    DuplicateNitMemo,
    NitNotFound,
    TenderDeskError,
    ValidationFailed,
    WorkNotFound,
)
from tender_lifecycle.kernel.event_store import SQLiteEventStore, StreamWrite
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import (
    generate_id,
    ledger_stream,
    memo_register_stream,
    nit_stream,
    work_stream,
)
from tender_lifecycle.kernel.logging import (
    LogOperation,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from tender_lifecycle.kernel.metrics import (
    awards_issued_total,
    overpayment_anomalies_total,
    payments_recorded_total,
    record_action_outcome,
    track_action_duration,
    update_tender_status_gauge,
)
from tender_lifecycle.kernel.policy import TenderPolicy
from tender_lifecycle.kernel.results import ActionError, ActionResult, Anomaly
from tender_lifecycle.kernel.time import RealTimeProvider, TimeProvider, financial_year_range
from tender_lifecycle.ledger import commands as ledger_commands
from tender_lifecycle.ledger.certificate import completion_certificate as build_certificate
from tender_lifecycle.ledger.events import LEDGER_STREAM
from tender_lifecycle.ledger.models import Deductions, Ledger, LedgerTotals
from tender_lifecycle.ledger.payments import compute_totals as compute_ledger_totals
from tender_lifecycle.ledger.payments import record_payment as record_payment_entry
from tender_lifecycle.ledger.state import load_ledger
from tender_lifecycle.tender import award as award_rules
from tender_lifecycle.tender import commands
from tender_lifecycle.tender import nit as nit_rules
from tender_lifecycle.tender import qualification, transitions
from tender_lifecycle.tender.models import MemoRegister, Nit, TenderStatus, Work
from tender_lifecycle.tender.projections import NitRegistry, WorkRegistry, work_summary
from tender_lifecycle.tender.state import load_memo_register, load_nit, load_work

logger = get_logger(__name__)


class TenderDesk:
    """
    Tender desk façade

    Covers the whole tender lifecycle of an office:
    - NIT booking, publication, memo corrections and deletion
    - Works, bids, technical evaluation and the qualification gate
    - Financial bids, award, work order, agreement and delivery
    - Cancellation cascade and retender
    - Payment ledger, totals and completion certificates
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: TenderPolicy | None = None,
        time_provider: TimeProvider | None = None,
        bus: InProcessBus | None = None,
        actor_id: str = "system",
    ) -> None:
        """
        Initialize the desk

        Args:
            sqlite_path: Path to the SQLite tender record store
            policy: Office policy (defaults if None)
            time_provider: Time provider (real time if None)
            bus: Event bus for committed events (a private one if None)
            actor_id: Actor stamped on events when an action names none
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or TenderPolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.actor_id = actor_id

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.bus = bus or InProcessBus()

        # Initialize projections; they follow the store, not the bus
        self.nit_registry = NitRegistry()
        self.work_registry = WorkRegistry()
        self._applied_position = 0
        self._projection_lock = threading.Lock()

        self._rebuild_projections()

    def _rebuild_projections(self) -> None:
        """Rebuild all projections from the event store"""
        with LogOperation(logger, "rebuild_projections", db=str(self.sqlite_path)):
            self._catch_up_projections()

    def _catch_up_projections(self) -> None:
        """
        Apply every event committed since the last one the projections saw

        Events written by other desks on the same database (a CLI run while
        the read API is serving) are picked up here too.
        """
        with self._projection_lock:
            newer = self.event_store.load_events_after(self._applied_position)
            for position, event in newer:
                self.nit_registry.apply_event(event)
                self.work_registry.apply_event(event)
                self._applied_position = position
            if newer or self._applied_position == 0:
                update_tender_status_gauge(self.work_registry.status_summary())

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a consumer of committed events ("*" for all)"""
        self.bus.subscribe(event_type, handler)

    # Plumbing

    def _context(self, actor_id: str | None) -> CommandContext:
        return CommandContext(
            command_id=generate_id(),
            actor_id=actor_id or self.actor_id,
            issued_at=self.time_provider.now(),
        )

    def _run(
        self,
        action: str,
        operation: Callable[[CommandContext], Any],
        actor_id: str | None = None,
        **log_context: Any,
    ) -> ActionResult:
        """
        Execute one action and convert its outcome into an ActionResult

        The operation returns a plain value, or an ActionResult when it has
        anomalies to report.
        """
        set_correlation_id(generate_correlation_id())
        ctx = self._context(actor_id)
        log = logger.bind(action=action, command_id=ctx.command_id, **log_context)

        try:
            outcome = operation(ctx)
        except TenderDeskError as e:
            error = ActionError.from_exception(e)
            if e.category == "infrastructure":
                log.error("Action failed", error=str(e), exc_info=True)
                error = _infrastructure_error(action)
            elif e.category == "concurrency":
                log.warning("Action lost a concurrent update", code=e.code, **e.details)
            else:
                log.info("Action rejected", code=e.code, category=e.category, **e.details)
            record_action_outcome(action, error.category)
            return ActionResult.failure(error)
        except ValidationError as e:
            error = ActionError.from_validation_error(e)
            log.info("Action rejected", code=error.code, field=error.details["field"])
            record_action_outcome(action, error.category)
            return ActionResult.failure(error)
        except (sqlite3.Error, OSError) as e:
            log.error("Action failed", error=str(e), exc_info=True)
            record_action_outcome(action, "infrastructure")
            return ActionResult.failure(_infrastructure_error(action))

        result = outcome if isinstance(outcome, ActionResult) else ActionResult.success(outcome)
        record_action_outcome(action, "ok")
        log.debug("Action completed", anomalies=len(result.anomalies))
        return result

    def _commit(self, events: list[Event], guards: dict[str, int] | None = None) -> list[Event]:
        """
        Store the events of one action atomically, bring the read views up
        to date, then publish them

        Events are grouped per stream; ledger streams are append-only and
        written at their head, all other streams at the version loaded.
        """
        by_stream: dict[str, list[Event]] = {}
        for event in events:
            by_stream.setdefault(event.stream_id, []).append(event)

        writes = [
            StreamWrite(
                stream_id=stream_id,
                events=stream_events,
                expected_version=(
                    None
                    if stream_events[0].stream_type == LEDGER_STREAM
                    else stream_events[0].version - 1
                ),
            )
            for stream_id, stream_events in by_stream.items()
        ]
        stored = self.event_store.append_batch(writes, guards)
        self._catch_up_projections()
        self.bus.publish_events(stored)
        return stored

    def _load_nit(self, nit_id: str) -> Nit:
        nit = load_nit(self.event_store.load_stream(nit_stream(nit_id)))
        if nit is None or nit.deleted:
            raise NitNotFound(nit_id)
        return nit

    def _load_work(self, work_id: str) -> Work:
        work = load_work(self.event_store.load_stream(work_stream(work_id)))
        if work is None:
            raise WorkNotFound(work_id)
        return work

    def _load_register(self, year: int) -> MemoRegister:
        return load_memo_register(year, self.event_store.load_stream(memo_register_stream(year)))

    def _load_ledger(self, work_id: str) -> Ledger:
        return load_ledger(work_id, self.event_store.load_stream(ledger_stream(work_id)))

    def _find_work_id(self, event_type: str, key: str, value: str) -> str | None:
        """Scan stored events for the work carrying a bid or award id"""
        for event in self.event_store.query_events(stream_type="work", event_type=event_type):
            if event.payload.get(key) == value:
                return event.payload["work_id"]
        return None

    def _work_for_bid(self, bid_id: str) -> Work:
        work_id = self.work_registry.work_id_for_bid(bid_id) or self._find_work_id(
            "BidRegistered", "bid_id", bid_id
        )
        if work_id is None:
            raise BidNotFound(bid_id)
        return self._load_work(work_id)

    def _work_for_award(self, award_id: str) -> Work:
        work_id = self.work_registry.work_id_for_award(award_id) or self._find_work_id(
            "ContractAwarded", "award_id", award_id
        )
        if work_id is None:
            raise AwardNotFound(award_id)
        return self._load_work(work_id)

    # NIT operations

    @track_action_duration("publish_nit")
    def publish_nit(
        self,
        memo_number: int,
        memo_date: date,
        is_supply: bool = False,
        actor_id: str | None = None,
    ) -> ActionResult:
        """
        Publish a NIT under a memo number

        A number already booked (and not yet published) publishes that NIT;
        a new number books and publishes in one commit.

        Returns:
            ActionResult with the nit_id
        """

        def operation(ctx: CommandContext) -> str:
            command = commands.PublishNit(
                memo_number=memo_number, memo_date=memo_date, is_supply=is_supply
            )
            register = self._load_register(command.memo_date.year)
            holder = register.holder_of(command.memo_number)
            if holder is not None:
                nit = self._load_nit(holder)
                if nit.published:
                    raise DuplicateNitMemo(command.memo_number, register.year)
                self._commit(nit_rules.publish_nit(ctx, nit))
                return nit.nit_id

            nit, events = nit_rules.book_nit(
                ctx,
                register,
                command.memo_number,
                command.memo_date,
                command.is_supply,
                self.policy.office_code,
            )
            events += nit_rules.publish_nit(ctx, nit, version_offset=1)
            self._commit(events)
            return nit.nit_id

        return self._run("publish_nit", operation, actor_id, memo_number=memo_number)

    @track_action_duration("book_nit")
    def book_nit(
        self,
        memo_number: int,
        memo_date: date,
        is_supply: bool = False,
        actor_id: str | None = None,
    ) -> ActionResult:
        """Book a memo number for a NIT that is not published yet"""

        def operation(ctx: CommandContext) -> str:
            command = commands.BookNit(
                memo_number=memo_number, memo_date=memo_date, is_supply=is_supply
            )
            register = self._load_register(command.memo_date.year)
            nit, events = nit_rules.book_nit(
                ctx,
                register,
                command.memo_number,
                command.memo_date,
                command.is_supply,
                self.policy.office_code,
            )
            self._commit(events)
            return nit.nit_id

        return self._run("book_nit", operation, actor_id, memo_number=memo_number)

    @track_action_duration("amend_nit_memo")
    def amend_nit_memo(
        self,
        nit_id: str,
        memo_number: int,
        memo_date: date,
        is_supply: bool | None = None,
        actor_id: str | None = None,
    ) -> ActionResult:
        """Correct the memo number/date of an unpublished NIT"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            command = commands.AmendNitMemo(
                nit_id=nit_id, memo_number=memo_number, memo_date=memo_date, is_supply=is_supply
            )
            nit = self._load_nit(command.nit_id)
            current = self._load_register(nit.memo_date.year)
            target = (
                current
                if command.memo_date.year == current.year
                else self._load_register(command.memo_date.year)
            )
            events = nit_rules.amend_nit_memo(
                ctx,
                nit,
                command.memo_number,
                command.memo_date,
                nit.is_supply if command.is_supply is None else command.is_supply,
                current,
                target,
            )
            self._commit(events)
            return self._nit_view(self._load_nit(nit.nit_id))

        return self._run("amend_nit_memo", operation, actor_id, nit_id=nit_id)

    @track_action_duration("delete_nit")
    def delete_nit(self, nit_id: str, actor_id: str | None = None) -> ActionResult:
        """Delete a NIT without works, freeing its memo number"""

        def operation(ctx: CommandContext) -> str:
            command = commands.DeleteNit(nit_id=nit_id)
            nit = self._load_nit(command.nit_id)
            register = self._load_register(nit.memo_date.year)
            self._commit(nit_rules.delete_nit(ctx, nit, register))
            return nit.nit_id

        return self._run("delete_nit", operation, actor_id, nit_id=nit_id)

    @track_action_duration("add_work")
    def add_work(
        self,
        nit_id: str,
        serial_no: int,
        estimated_cost: Decimal | str | int,
        description: str = "",
        actor_id: str | None = None,
    ) -> ActionResult:
        """
        Add a work to a NIT's schedule

        Returns:
            ActionResult with the work_id
        """

        def operation(ctx: CommandContext) -> str:
            command = commands.AddWork(
                nit_id=nit_id,
                serial_no=serial_no,
                estimated_cost=estimated_cost,
                description=description,
            )
            nit = self._load_nit(command.nit_id)
            work_id, events = nit_rules.add_work(
                ctx, nit, command.serial_no, command.description, command.estimated_cost
            )
            self._commit(events)
            return work_id

        return self._run("add_work", operation, actor_id, nit_id=nit_id, serial_no=serial_no)

    # Bid operations

    @track_action_duration("register_bid")
    def register_bid(
        self, work_id: str, agency_id: str, actor_id: str | None = None
    ) -> ActionResult:
        """
        Register an agency's bid; the first bid opens technical bids

        Returns:
            ActionResult with the bid_id
        """

        def operation(ctx: CommandContext) -> str:
            command = commands.RegisterBid(work_id=work_id, agency_id=agency_id)
            work = self._load_work(command.work_id)
            nit = self._load_nit(work.nit_id)
            bid_id, events = qualification.register_bid(ctx, work, nit, command.agency_id)
            self._commit(events)
            return bid_id

        return self._run("register_bid", operation, actor_id, work_id=work_id)

    @track_action_duration("submit_technical_evaluation")
    def submit_technical_evaluation(
        self,
        bid_id: str,
        qualify: bool,
        evaluation_doc_ref: str | None = None,
        actor_id: str | None = None,
    ) -> ActionResult:
        """Record whether a bid passed technical evaluation"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            command = commands.SubmitTechnicalEvaluation(
                bid_id=bid_id, qualify=qualify, evaluation_doc_ref=evaluation_doc_ref
            )
            work = self._work_for_bid(command.bid_id)
            events = qualification.record_evaluation(
                ctx, work, command.bid_id, command.qualify, command.evaluation_doc_ref
            )
            self._commit(events)
            return qualification.assess_qualification(self._load_work(work.work_id)).model_dump()

        return self._run("submit_technical_evaluation", operation, actor_id, bid_id=bid_id)

    @track_action_duration("withdraw_bid")
    def withdraw_bid(self, bid_id: str, actor_id: str | None = None) -> ActionResult:
        """Withdraw a bid that has not been evaluated"""

        def operation(ctx: CommandContext) -> str:
            command = commands.WithdrawBid(bid_id=bid_id)
            work = self._work_for_bid(command.bid_id)
            self._commit(qualification.withdraw_bid(ctx, work, command.bid_id))
            return command.bid_id

        return self._run("withdraw_bid", operation, actor_id, bid_id=bid_id)

    @track_action_duration("record_financial_bid")
    def record_financial_bid(
        self,
        bid_id: str,
        bidding_amount: Decimal | str | int,
        actor_id: str | None = None,
    ) -> ActionResult:
        """Record a qualified bid's offer; the last one moves the work to FinancialEvaluation"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            command = commands.RecordFinancialBid(bid_id=bid_id, bidding_amount=bidding_amount)
            work = self._work_for_bid(command.bid_id)
            stored = self._commit(
                qualification.record_financial_bid(
                    ctx, work, command.bid_id, command.bidding_amount
                )
            )
            return _work_ack(self._load_work(work.work_id), stored)

        return self._run("record_financial_bid", operation, actor_id, bid_id=bid_id)

    # Tender status operations

    @track_action_duration("advance_tender_stage")
    def advance_tender_stage(
        self,
        work_id: str,
        target_status: TenderStatus | str,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> ActionResult:
        """
        Move a work one step along its tender path

        Cancelled goes through the cancellation cascade; AOC is only reached
        by awarding.

        Args:
            expected_version: Work version the caller based the decision on;
                ConcurrentModification if the work has moved since
        """

        def operation(ctx: CommandContext) -> dict[str, Any]:
            command = commands.AdvanceTenderStage(
                work_id=work_id, target_status=target_status, expected_version=expected_version
            )
            work = self._load_work(command.work_id)
            if command.expected_version is not None and work.version != command.expected_version:
                raise ConcurrentModification(
                    work_stream(work.work_id), command.expected_version, work.version
                )
            if command.target_status == TenderStatus.CANCELLED:
                return self._cancel(ctx, work)

            stored = self._commit(transitions.transition(ctx, work, command.target_status))
            return _work_ack(self._load_work(work.work_id), stored)

        return self._run(
            "advance_tender_stage", operation, actor_id, work_id=work_id, target=str(target_status)
        )

    @track_action_duration("cancel_work")
    def cancel_work(self, work_id: str, actor_id: str | None = None) -> ActionResult:
        """Cancel a work; cancelling the NIT's last live work cancels the NIT"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            command = commands.CancelWork(work_id=work_id)
            return self._cancel(ctx, self._load_work(command.work_id))

        return self._run("cancel_work", operation, actor_id, work_id=work_id)

    def _cancel(self, ctx: CommandContext, work: Work) -> dict[str, Any]:
        events = transitions.transition(ctx, work, TenderStatus.CANCELLED)
        nit = self._load_nit(work.nit_id)
        siblings = [self._load_work(wid) for wid in nit.work_ids if wid != work.work_id]
        cascade = transitions.nit_cancellation_cascade(ctx, nit, siblings, work.work_id)

        # The cascade decision holds only while the siblings stay as read
        guards = {work_stream(sibling.work_id): sibling.version for sibling in siblings}
        guards[nit_stream(nit.nit_id)] = nit.version
        stored = self._commit(events + cascade, guards)

        ack = _work_ack(self._load_work(work.work_id), stored)
        ack["nit_cancelled"] = bool(cascade)
        return ack

    @track_action_duration("reopen_for_retender")
    def reopen_for_retender(self, work_id: str, actor_id: str | None = None) -> ActionResult:
        """Reset a Cancelled/Retender work to ToBeOpened, withdrawing its old bids"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            command = commands.ReopenForRetender(work_id=work_id)
            work = self._load_work(command.work_id)
            nit = self._load_nit(work.nit_id)
            stored = self._commit(transitions.reopen_for_retender(ctx, work, nit))
            return _work_ack(self._load_work(work.work_id), stored)

        return self._run("reopen_for_retender", operation, actor_id, work_id=work_id)

    # Award operations

    @track_action_duration("award_contract")
    def award_contract(
        self,
        work_id: str,
        winning_bid_id: str,
        work_order_memo_no: str | int,
        work_order_memo_date: date,
        actor_id: str | None = None,
    ) -> ActionResult:
        """
        Award a work to a qualified bid and issue the work order

        Returns:
            ActionResult with the award_id
        """

        def operation(ctx: CommandContext) -> str:
            command = commands.AwardContract(
                work_id=work_id,
                winning_bid_id=winning_bid_id,
                work_order_memo_no=work_order_memo_no,
                work_order_memo_date=work_order_memo_date,
            )
            work = self._load_work(command.work_id)
            award_id, events = award_rules.award_contract(
                ctx,
                work,
                command.winning_bid_id,
                command.work_order_memo_no,
                command.work_order_memo_date,
            )
            try:
                self._commit(events)
            except ConcurrentModification:
                latest = self._load_work(work.work_id)
                if latest.award is not None:
                    raise AlreadyAwarded(work.work_id, latest.award.award_id) from None
                raise
            awards_issued_total.inc()
            return award_id

        return self._run("award_contract", operation, actor_id, work_id=work_id)

    @track_action_duration("record_agreement")
    def record_agreement(
        self,
        award_id: str,
        agreement_no: str | None = None,
        agreement_date: date | None = None,
        actor_id: str | None = None,
    ) -> ActionResult:
        """
        Record the agreement executed for an award

        Returns:
            ActionResult with the agreement_id
        """

        def operation(ctx: CommandContext) -> str:
            command = commands.RecordAgreement(
                award_id=award_id, agreement_no=agreement_no, agreement_date=agreement_date
            )
            work = self._work_for_award(command.award_id)
            agreement_id, events = award_rules.record_agreement(
                ctx, work, command.award_id, command.agreement_no, command.agreement_date
            )
            self._commit(events)
            return agreement_id

        return self._run("record_agreement", operation, actor_id, award_id=award_id)

    @track_action_duration("acknowledge_delivery")
    def acknowledge_delivery(
        self, award_id: str, delivered_on: date | None = None, actor_id: str | None = None
    ) -> ActionResult:
        """Mark a work order as delivered to the agency"""

        def operation(ctx: CommandContext) -> str:
            command = commands.AcknowledgeDelivery(award_id=award_id, delivered_on=delivered_on)
            work = self._work_for_award(command.award_id)
            self._commit(
                award_rules.acknowledge_delivery(ctx, work, command.award_id, command.delivered_on)
            )
            return command.award_id

        return self._run("acknowledge_delivery", operation, actor_id, award_id=award_id)

    # Work status operations

    @track_action_duration("change_work_status")
    def change_work_status(
        self,
        work_id: str,
        target_status: str,
        completion_date: date | None = None,
        actor_id: str | None = None,
    ) -> ActionResult:
        """Move an awarded work forward; billpaid needs a final bill on the ledger"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            command = commands.ChangeWorkStatus(
                work_id=work_id, target_status=target_status, completion_date=completion_date
            )
            work = self._load_work(command.work_id)
            ledger = self._load_ledger(work.work_id)
            stored = self._commit(
                transitions.change_work_status(
                    ctx,
                    work,
                    command.target_status,
                    final_bill_recorded=ledger.has_final_bill,
                    completion_date=command.completion_date,
                )
            )
            return _work_ack(self._load_work(work.work_id), stored)

        return self._run(
            "change_work_status", operation, actor_id, work_id=work_id, target=str(target_status)
        )

    # Payment operations

    @track_action_duration("record_payment")
    def record_payment(
        self,
        work_id: str,
        gross_bill_amount: Decimal | str | int,
        deductions: Deductions | dict[str, Any] | None = None,
        bill_type: str = "running bill",
        bill_payment_date: date | None = None,
        completion_date: date | None = None,
        egram_voucher_no: str | None = None,
        gpms_voucher_no: str | None = None,
        mb_reference: str | None = None,
        actor_id: str | None = None,
    ) -> ActionResult:
        """
        Record a bill paid against an awarded work

        Returns:
            ActionResult with the entry_id; an overpaid ledger adds an
            OverpaymentAnomaly to the result's anomalies
        """

        def operation(ctx: CommandContext) -> ActionResult:
            command = ledger_commands.RecordPayment(
                work_id=work_id,
                gross_bill_amount=gross_bill_amount,
                deductions=deductions if deductions is not None else Deductions(),
                bill_type=bill_type,
                bill_payment_date=bill_payment_date,
                completion_date=completion_date,
                egram_voucher_no=egram_voucher_no,
                gpms_voucher_no=gpms_voucher_no,
                mb_reference=mb_reference,
            )
            work = self._load_work(command.work_id)
            entry_id, events = record_payment_entry(
                ctx,
                work,
                self._load_ledger(work.work_id),
                command.gross_bill_amount,
                command.deductions,
                command.bill_type,
                maturity_months=self.policy.security_deposit_maturity_months,
                bill_payment_date=command.bill_payment_date,
                completion_date=command.completion_date,
                egram_voucher_no=command.egram_voucher_no,
                gpms_voucher_no=command.gpms_voucher_no,
                mb_reference=command.mb_reference,
            )
            self._commit(events)
            payments_recorded_total.labels(bill_type=command.bill_type.value).inc()

            totals = self._totals(work)
            if totals.anomalies:
                overpayment_anomalies_total.inc()
            return ActionResult.success(entry_id, _anomalies(totals))

        return self._run(
            "record_payment",
            operation,
            actor_id,
            work_id=work_id,
            egram_voucher_no=egram_voucher_no,
            gpms_voucher_no=gpms_voucher_no,
        )

    def _totals(self, work: Work) -> LedgerTotals:
        ledger = self._load_ledger(work.work_id)
        return compute_ledger_totals(work.work_id, work.estimated_cost, ledger.entries)

    # Queries

    @track_action_duration("compute_totals")
    def compute_totals(self, work_id: str) -> ActionResult:
        """Paid, deductions, net and pending of a work's ledger"""

        def operation(ctx: CommandContext) -> ActionResult:
            totals = self._totals(self._load_work(work_id))
            return ActionResult.success(totals.model_dump(mode="json"), _anomalies(totals))

        return self._run("compute_totals", operation, work_id=work_id)

    @track_action_duration("completion_certificate")
    def completion_certificate(self, work_id: str) -> ActionResult:
        """Completion certificate of a work (derived, nothing is stored)"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            work = self._load_work(work_id)
            nit = self._load_nit(work.nit_id)
            entries = self._load_ledger(work.work_id).entries
            return build_certificate(work, nit, entries).model_dump(mode="json")

        return self._run("completion_certificate", operation, work_id=work_id)

    def get_nit(self, nit_id: str) -> ActionResult:
        return self._run("get_nit", lambda ctx: self._nit_view(self._load_nit(nit_id)))

    def get_work(self, work_id: str) -> ActionResult:
        return self._run("get_work", lambda ctx: self._work_view(self._load_work(work_id)))

    def qualification_status(self, work_id: str) -> ActionResult:
        """Where a work stands against the three-qualified-bidders gate"""

        def operation(ctx: CommandContext) -> dict[str, Any]:
            assessment = qualification.assess_qualification(self._load_work(work_id))
            return {**assessment.model_dump(), "can_advance": assessment.can_advance}

        return self._run("qualification_status", operation, work_id=work_id)

    def list_nits(self, financial_year: str | None = None) -> ActionResult:
        """Live NITs, optionally those of one financial year ('2024-25')"""

        def operation(ctx: CommandContext) -> list[dict[str, Any]]:
            self._catch_up_projections()
            if financial_year is None:
                return self.nit_registry.list_all()
            try:
                financial_year_range(financial_year)
            except ValueError as e:
                raise ValidationFailed("financial_year", str(e)) from e
            return self.nit_registry.list_by_financial_year(financial_year)

        return self._run("list_nits", operation)

    def list_works(
        self, tender_status: TenderStatus | str | None = None, nit_id: str | None = None
    ) -> ActionResult:
        """Works of the office, optionally filtered by tender status or NIT"""

        def operation(ctx: CommandContext) -> list[dict[str, Any]]:
            self._catch_up_projections()
            status = None
            if tender_status is not None:
                try:
                    status = TenderStatus(tender_status)
                except ValueError as e:
                    raise ValidationFailed("tender_status", str(e)) from e

            if nit_id is None:
                return self.work_registry.list_by_status(status)
            works = self.work_registry.list_by_nit(nit_id)
            if status is not None:
                works = [w for w in works if w["tender_status"] == status.value]
            return works

        return self._run("list_works", operation)

    def tender_status_summary(self) -> ActionResult:
        """Number of works in every tender status"""

        def operation(ctx: CommandContext) -> dict[str, int]:
            self._catch_up_projections()
            return self.work_registry.status_summary()

        return self._run("tender_status_summary", operation)

    # Views

    def _nit_view(self, nit: Nit) -> dict[str, Any]:
        view = nit.model_dump(mode="json")
        view["reference"] = nit.reference
        works = [work_summary(self._load_work(work_id)) for work_id in nit.work_ids]
        view["works"] = sorted(works, key=lambda w: w["serial_no"])
        return view

    def _work_view(self, work: Work) -> dict[str, Any]:
        view = work.model_dump(mode="json")
        view["qualification"] = qualification.assess_qualification(work).model_dump()
        return view


def _work_ack(work: Work, stored: list[Event]) -> dict[str, Any]:
    return {
        "work_id": work.work_id,
        "tender_status": work.tender_status.value,
        "work_status": work.work_status.value if work.work_status else None,
        "version": work.version,
        "events": [event.event_type for event in stored],
    }


def _anomalies(totals: LedgerTotals) -> list[Anomaly]:
    return [
        Anomaly(
            code=anomaly.code,
            message=anomaly.message,
            details=anomaly.model_dump(mode="json", exclude={"code"}),
        )
        for anomaly in totals.anomalies
    ]


def _infrastructure_error(action: str) -> ActionError:
    return ActionError(
        code="InfrastructureError",
        category="infrastructure",
        message="The tender record store could not complete the action; retry later",
        details={"action": action},
    )
