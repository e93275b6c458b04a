"""Transactional store for liabilities, their schedules and close-out.

Each mutating operation is one ``Session.begin()`` block: the engine computes a
new liability aggregate, the store writes every changed row, and either all of it
commits or none of it does. Business-rule rejections come back as a failed
OperationResult; storage errors come back as a retryable one.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Sequence

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from loanledger.config import settings
from loanledger.data import ledger
from loanledger.exceptions import (
    InvalidAmount,
    InvalidInstallmentState,
    InvalidTerm,
    LiabilityError,
    NotFound,
    StorageFailure,
)
from loanledger.models.db import AccountRecord, Base, LiabilityRecord, LiabilityScheduleRecord
from loanledger.models.impact import (
    ConstraintMode,
    CurrentTerms,
    ExtraPaymentOption,
    ExtraPaymentStrategy,
    ImpactPreview,
    PaymentImpact,
    ProposedChange,
)
from loanledger.models.liability import (
    AmountChangePolicy,
    Installment,
    InterestType,
    Liability,
    LiabilityStatus,
    ScheduleStatus,
    SkipPolicy,
)
from loanledger.models.results import OperationResult
from loanledger.models.settlement import (
    FinalAction,
    MovementKind,
    SettlementAdjustment,
    SettlementStatus,
)
from loanledger.engine import impact, redistribution, schedule
from loanledger.engine import settlement as reconciler
from loanledger.engine.amortization import (
    add_months,
    check_term,
    money,
    months_between,
    payoff_term,
    required_payment,
)

logger = logging.getLogger(__name__)


def make_session_factory(database_url: Optional[str] = None, echo: bool = False) -> sessionmaker:
    """Engine + sessionmaker with the schema created."""
    url = database_url or settings.database_url
    kwargs: dict = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(engine)
    return sessionmaker(engine, expire_on_commit=False)


def _installment_from(row: LiabilityScheduleRecord) -> Installment:
    return Installment(
        id=row.id,
        liability_id=row.liability_id,
        due_date=row.due_date,
        amount=row.amount,
        status=ScheduleStatus(row.status),
        principal_component=row.principal_component,
        interest_component=row.interest_component,
        payment_number=row.payment_number,
        total_payments=row.total_payments,
        remaining_balance=row.remaining_balance,
        notes=dict(row.notes or {}),
    )


def _liability_from(record: LiabilityRecord) -> Liability:
    return Liability(
        id=record.id,
        title=record.title,
        currency=record.currency,
        current_balance=record.current_balance,
        original_amount=record.original_amount,
        interest_rate_apy=record.interest_rate_apy,
        interest_type=InterestType(record.interest_type),
        periodical_payment=record.periodical_payment,
        start_date=record.start_date,
        targeted_payoff_date=record.targeted_payoff_date,
        status=LiabilityStatus(record.status),
        installments=tuple(_installment_from(r) for r in record.schedules),
    )


def _fill_schedule_row(row: LiabilityScheduleRecord, inst: Installment) -> None:
    row.due_date = inst.due_date
    row.amount = inst.amount
    row.status = inst.status.value
    row.principal_component = inst.principal_component
    row.interest_component = inst.interest_component
    row.payment_number = inst.payment_number
    row.total_payments = inst.total_payments
    row.remaining_balance = inst.remaining_balance
    row.notes = dict(inst.notes)


def _sync_schedules(record: LiabilityRecord, installments: Sequence[Installment]) -> None:
    """Make the schedule rows match ``installments``: update by id, add new, drop missing."""
    existing = {row.id: row for row in record.schedules}
    wanted = {inst.id for inst in installments}

    for row in list(record.schedules):
        if row.id not in wanted:
            record.schedules.remove(row)

    for inst in installments:
        row = existing.get(inst.id)
        if row is None:
            row = LiabilityScheduleRecord(id=inst.id, liability_id=record.id)
            record.schedules.append(row)
        _fill_schedule_row(row, inst)


def _write_liability(record: LiabilityRecord, liability: Liability) -> None:
    record.current_balance = money(liability.current_balance)
    record.original_amount = money(liability.original_amount)
    record.interest_rate_apy = liability.interest_rate_apy
    record.periodical_payment = money(liability.periodical_payment)
    record.targeted_payoff_date = liability.targeted_payoff_date
    record.status = liability.status.value
    # Always issue an UPDATE on the parent so its version guards schedule-only edits too
    record.updated_at = func.now()
    _sync_schedules(record, liability.installments)


def _current_terms(liability: Liability, today: date) -> CurrentTerms:
    end = liability.targeted_payoff_date
    if end is None:
        end = add_months(today, payoff_term(
            liability.current_balance, liability.periodical_payment,
            liability.interest_rate_apy, liability.interest_type,
        ))
    return CurrentTerms(
        balance=liability.current_balance,
        payment=liability.periodical_payment,
        annual_rate_pct=liability.interest_rate_apy,
        end_date=end,
        interest_type=liability.interest_type,
    )


class LiabilityStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        confirmation_token: Optional[str] = None,
        max_periods: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.confirmation_token = confirmation_token or settings.settlement_confirmation_token
        self.max_periods = max_periods or settings.max_schedule_periods

    # -- plumbing ---------------------------------------------------------

    def _load(self, session: Session, liability_id: uuid.UUID) -> LiabilityRecord:
        record = session.scalars(
            select(LiabilityRecord)
            .where(LiabilityRecord.id == liability_id)
            .options(selectinload(LiabilityRecord.schedules))
        ).first()
        if record is None:
            raise NotFound(f"Liability {liability_id} not found")
        return record

    def _run(
        self,
        action: str,
        subject: object,
        work: Callable[[Session], tuple[str, int]],
    ) -> OperationResult:
        try:
            with self._session_factory.begin() as session:
                message, count = work(session)
        except LiabilityError as e:
            logger.warning("%s rejected for %s: %s", action, subject, e)
            return OperationResult.failed(e)
        except SQLAlchemyError as e:
            logger.error("%s failed for %s, rolled back: %s", action, subject, e)
            return OperationResult.failed(
                StorageFailure(f"Could not save {action}; nothing was changed. Please try again.")
            )
        logger.info("%s committed for %s (%d rows)", action, subject, count)
        return OperationResult.ok(message, count)

    def _read(self, action: str, work: Callable[[Session], object]):
        try:
            with self._session_factory() as session:
                return work(session)
        except SQLAlchemyError as e:
            logger.error("%s failed: %s", action, e)
            raise StorageFailure(f"Could not load {action}. Please try again.") from e

    # -- liabilities ------------------------------------------------------

    def create_liability(
        self,
        amount: Decimal,
        annual_rate_pct: Decimal,
        start_date: date,
        term_months: Optional[int] = None,
        payment: Optional[Decimal] = None,
        end_date: Optional[date] = None,
        interest_type: InterestType = InterestType.REDUCING,
        title: str = "",
        currency: str = "USD",
    ) -> Liability:
        """Create a liability and its full schedule.

        Give either ``term_months`` or ``end_date`` (the payment is solved) or a
        ``payment`` (the end date is solved). The first installment falls due one
        month after ``start_date``.
        """
        if amount <= 0:
            raise InvalidAmount(f"Amount must be greater than 0, got {amount}")
        if annual_rate_pct < 0:
            raise InvalidAmount("Interest rate cannot be negative")
        if term_months is not None:
            check_term(term_months)
            end_date = end_date or add_months(start_date, term_months)
        if end_date is not None and payment is None:
            term = months_between(start_date, end_date)
            payment = required_payment(amount, annual_rate_pct, term, interest_type)
        if payment is None:
            raise InvalidTerm("Give a term, an end date or a payment")
        if payment <= 0:
            raise InvalidAmount("Payment must be greater than 0")

        draft = Liability(
            title=title,
            currency=currency,
            current_balance=money(amount),
            original_amount=money(amount),
            interest_rate_apy=annual_rate_pct,
            interest_type=interest_type,
            periodical_payment=money(payment),
            start_date=start_date,
            targeted_payoff_date=end_date,
        )
        liability = schedule.regenerate_schedule(draft, today=start_date, max_periods=self.max_periods)

        def work(session: Session) -> Liability:
            record = LiabilityRecord(
                id=liability.id,
                title=liability.title,
                currency=liability.currency,
                interest_type=liability.interest_type.value,
                start_date=liability.start_date,
            )
            session.add(record)
            _write_liability(record, liability)
            return liability

        try:
            with self._session_factory.begin() as session:
                created = work(session)
        except SQLAlchemyError as e:
            logger.error("Creating liability %r failed: %s", title, e)
            raise StorageFailure("Could not save the liability. Please try again.") from e
        logger.info(
            "Created liability %s: %s at %s%% with %d installments",
            created.id, created.original_amount, created.interest_rate_apy, len(created.installments),
        )
        return created

    def get_liability(self, liability_id: uuid.UUID) -> Liability:
        return self._read(
            f"liability {liability_id}",
            lambda session: _liability_from(self._load(session, liability_id)),
        )

    # -- schedule ---------------------------------------------------------

    def compute_schedule(
        self,
        liability_id: uuid.UUID,
        balance: Decimal,
        payment: Decimal,
        annual_rate_pct: Decimal,
        start_date: date,
        end_date: date,
    ) -> list[Installment]:
        """Schedule the given terms would produce for this liability. Nothing is saved."""
        liability = self.get_liability(liability_id)
        return schedule.compute_schedule(
            liability.id, balance, payment, annual_rate_pct, start_date, end_date,
            liability.interest_type, max_periods=self.max_periods,
        )

    def preview_impact(
        self,
        liability_id: uuid.UUID,
        change: ProposedChange,
        mode: ConstraintMode = ConstraintMode.KEEP_PAYMENT_SAME,
        today: Optional[date] = None,
        custom_payment: Optional[Decimal] = None,
        custom_end_date: Optional[date] = None,
    ) -> ImpactPreview:
        today = today or date.today()
        liability = self.get_liability(liability_id)
        return impact.preview_impact(
            _current_terms(liability, today), change, mode, today, custom_payment, custom_end_date,
        )

    def extra_payment_options(
        self,
        liability_id: uuid.UUID,
        extra_amount: Decimal,
        today: Optional[date] = None,
    ) -> list[ExtraPaymentOption]:
        today = today or date.today()
        liability = self.get_liability(liability_id)
        return impact.extra_payment_options(
            _current_terms(liability, today),
            extra_amount,
            remaining_periods=len(liability.pending),
            first_due=schedule.first_due_date(liability, today),
        )

    def recalculate(
        self,
        liability_id: uuid.UUID,
        payment: Optional[Decimal] = None,
        annual_rate_pct: Optional[Decimal] = None,
        end_date: Optional[date] = None,
        new_total_amount: Optional[Decimal] = None,
        mode: ConstraintMode = ConstraintMode.KEEP_PAYMENT_SAME,
        today: Optional[date] = None,
    ) -> OperationResult:
        """Commit new terms and replace the pending tail of the schedule.

        ``new_total_amount`` is the revised amount owed; the original amount moves
        by the same delta. When only amount or rate change, ``mode`` decides
        whether the payment or the end date stays put.
        """
        today = today or date.today()

        def work(session: Session) -> tuple[str, int]:
            record = self._load(session, liability_id)
            liability = _liability_from(record)

            if new_total_amount is not None:
                impact.validate_amount_update(liability.current_balance, new_total_amount)
                delta = money(new_total_amount) - liability.current_balance
                liability = replace(
                    liability,
                    current_balance=money(new_total_amount),
                    original_amount=liability.original_amount + delta,
                )
            rate = liability.interest_rate_apy if annual_rate_pct is None else annual_rate_pct
            if rate < 0:
                raise InvalidAmount("Interest rate cannot be negative")

            balance = liability.current_balance
            first_due = schedule.first_due_date(liability, today)
            new_payment, new_end = payment, end_date
            if new_payment is not None and new_payment <= 0:
                raise InvalidAmount("Payment must be greater than 0")
            if mode == ConstraintMode.CUSTOM_PAYMENT and new_payment is None:
                raise InvalidAmount("A custom payment amount greater than 0 is required")

            if new_end is not None and new_payment is None:
                new_payment = required_payment(
                    balance, rate, months_between(first_due, new_end) + 1, liability.interest_type,
                )
            elif new_end is None:
                target = liability.targeted_payoff_date
                if new_payment is None and mode == ConstraintMode.KEEP_END_DATE_SAME and target:
                    new_payment = required_payment(
                        balance, rate, months_between(first_due, target) + 1, liability.interest_type,
                    )
                    new_end = target
                else:
                    new_payment = new_payment or liability.periodical_payment
                    term = payoff_term(balance, new_payment, rate, liability.interest_type)
                    new_end = add_months(first_due, max(term, 1) - 1)

            updated = schedule.regenerate_schedule(
                liability, new_payment, rate, new_end, today, max_periods=self.max_periods,
            )
            _write_liability(record, updated)
            pending = len(updated.pending)
            return f"Schedule recalculated: {pending} pending installments of {updated.periodical_payment}", pending

        return self._run("recalculation", liability_id, work)

    # -- per-installment edits ---------------------------------------------

    def _redistribute(
        self,
        action: str,
        liability_id: uuid.UUID,
        edit: Callable[[Liability], redistribution.Redistribution],
        message: str,
    ) -> OperationResult:
        def work(session: Session) -> tuple[str, int]:
            record = self._load(session, liability_id)
            result = edit(_liability_from(record))
            _write_liability(record, result.liability)
            return message, result.updated_count

        return self._run(action, liability_id, work)

    def skip_installment(
        self, liability_id: uuid.UUID, schedule_id: uuid.UUID, policy: SkipPolicy,
    ) -> OperationResult:
        return self._redistribute(
            "skip",
            liability_id,
            lambda liability: redistribution.skip_installment(liability, schedule_id, policy),
            f"Payment skipped ({policy.value.replace('_', ' ')})",
        )

    def change_installment_amount(
        self,
        liability_id: uuid.UUID,
        schedule_id: uuid.UUID,
        new_amount: Decimal,
        policy: AmountChangePolicy,
    ) -> OperationResult:
        return self._redistribute(
            "amount change",
            liability_id,
            lambda liability: redistribution.change_installment_amount(liability, schedule_id, new_amount, policy),
            f"Payment amount changed to {money(new_amount)}",
        )

    def change_installment_date(
        self, liability_id: uuid.UUID, schedule_id: uuid.UUID, new_date: date,
    ) -> OperationResult:
        return self._redistribute(
            "date change",
            liability_id,
            lambda liability: redistribution.change_installment_date(liability, schedule_id, new_date),
            f"Payment moved to {new_date.isoformat()}",
        )

    def pay_installment(
        self,
        liability_id: uuid.UUID,
        schedule_id: uuid.UUID,
        account_id: Optional[uuid.UUID] = None,
        paid_on: Optional[date] = None,
    ) -> OperationResult:
        """Mark an installment paid: its principal comes off the balance."""
        paid_on = paid_on or date.today()

        def work(session: Session) -> tuple[str, int]:
            record = self._load(session, liability_id)
            row = next((r for r in record.schedules if r.id == schedule_id), None)
            if row is None:
                raise NotFound(f"Installment {schedule_id} not found on liability {liability_id}")
            if row.status not in (ScheduleStatus.PENDING.value, ScheduleStatus.OVERDUE.value):
                raise InvalidInstallmentState(f"Installment is already {row.status}")

            if account_id is not None:
                ledger.get_account(session, account_id).balance -= row.amount
            principal = min(row.principal_component, record.current_balance)
            record.current_balance -= principal
            if record.current_balance <= 0:
                record.status = LiabilityStatus.PAID_OFF.value
            row.status = ScheduleStatus.COMPLETED.value
            row.notes = {**(row.notes or {}), "paid_on": paid_on.isoformat()}

            ledger.record_entry(
                session,
                MovementKind.INSTALLMENT_PAYMENT,
                row.amount,
                paid_on,
                liability_id=liability_id,
                account_id=account_id,
                currency=record.currency,
                description=f"Installment {row.payment_number} of {row.total_payments}",
                details={"principal": str(principal), "interest": str(row.interest_component)},
            )
            return f"Payment of {row.amount} recorded", 1

        return self._run("payment", liability_id, work)

    def preview_payment(
        self, liability_id: uuid.UUID, amount: Decimal, paid_on: Optional[date] = None,
    ) -> PaymentImpact:
        paid_on = paid_on or date.today()
        liability = self.get_liability(liability_id)
        return impact.payment_impact(
            _current_terms(liability, paid_on), amount, paid_on, opening_balance=liability.original_amount,
        )

    def record_payment(
        self,
        liability_id: uuid.UUID,
        amount: Decimal,
        account_id: Optional[uuid.UUID] = None,
        paid_on: Optional[date] = None,
    ) -> OperationResult:
        """Record a payment of any size: the period's interest first, the rest off the balance.

        The schedule is left as is unless the payment clears the balance, in which
        case the pending installments are cancelled.
        """
        paid_on = paid_on or date.today()

        def work(session: Session) -> tuple[str, int]:
            record = self._load(session, liability_id)
            liability = _liability_from(record)
            result = impact.payment_impact(
                _current_terms(liability, paid_on), amount, paid_on, opening_balance=liability.original_amount,
            )

            if account_id is not None:
                ledger.get_account(session, account_id).balance -= money(amount)
            updated = replace(liability, current_balance=result.new_balance)
            if result.new_balance <= 0:
                updated = replace(
                    updated,
                    status=LiabilityStatus.PAID_OFF,
                    installments=tuple(
                        replace(i, status=ScheduleStatus.CANCELLED, notes={**i.notes, "paid_off": True})
                        if i.is_pending else i
                        for i in liability.installments
                    ),
                )
            _write_liability(record, updated)

            ledger.record_entry(
                session,
                MovementKind.LIABILITY_PAYMENT,
                money(amount),
                paid_on,
                liability_id=liability_id,
                account_id=account_id,
                currency=record.currency,
                description="Payment",
                details={"principal": str(result.principal_paid), "interest": str(result.interest_paid)},
            )
            return (
                f"Payment of {money(amount)} recorded: {result.principal_paid} principal, "
                f"{result.interest_paid} interest",
                1,
            )

        return self._run("payment", liability_id, work)

    def apply_extra_payment(
        self,
        liability_id: uuid.UUID,
        amount: Decimal,
        strategy: ExtraPaymentStrategy,
        account_id: Optional[uuid.UUID] = None,
        payments_to_skip: Optional[int] = None,
        today: Optional[date] = None,
    ) -> OperationResult:
        """Apply a one-off extra payment and regenerate the pending tail in one transaction."""
        today = today or date.today()

        def work(session: Session) -> tuple[str, int]:
            record = self._load(session, liability_id)
            updated = schedule.apply_extra_payment(
                _liability_from(record), amount, strategy, today, payments_to_skip, max_periods=self.max_periods,
            )
            if account_id is not None:
                ledger.get_account(session, account_id).balance -= money(amount)
            _write_liability(record, updated)

            ledger.record_entry(
                session,
                MovementKind.EXTRA_PAYMENT,
                money(amount),
                today,
                liability_id=liability_id,
                account_id=account_id,
                currency=record.currency,
                description=f"Extra payment ({strategy.value.replace('_', ' ')})",
            )
            pending = len(updated.pending)
            return (
                f"Extra payment of {money(amount)} applied: {pending} pending installments "
                f"of {updated.periodical_payment}",
                pending,
            )

        return self._run("extra payment", liability_id, work)

    # -- accounts ----------------------------------------------------------

    def open_account(self, name: str, currency: str = "USD", balance: Decimal = Decimal("0")) -> uuid.UUID:
        account = AccountRecord(id=uuid.uuid4(), name=name, currency=currency, balance=money(balance))
        try:
            with self._session_factory.begin() as session:
                session.add(account)
        except SQLAlchemyError as e:
            logger.error("Opening account %r failed: %s", name, e)
            raise StorageFailure("Could not save the account. Please try again.") from e
        logger.info("Opened account %s (%s)", account.id, name)
        return account.id

    def get_account(self, account_id: uuid.UUID) -> AccountRecord:
        return self._read(
            f"account {account_id}",
            lambda session: ledger.get_account(session, account_id),
        )

    def draw_funds(
        self,
        liability_id: uuid.UUID,
        account_id: uuid.UUID,
        amount: Decimal,
        on: Optional[date] = None,
    ) -> OperationResult:
        """Move borrowed money into an account; it stays tagged to the liability."""
        on = on or date.today()

        def work(session: Session) -> tuple[str, int]:
            record = self._load(session, liability_id)
            ledger.draw_funds(session, record.id, account_id, money(amount), on, record.currency)
            return f"{money(amount)} drawn into account", 1

        return self._run("draw", liability_id, work)

    # -- settlement --------------------------------------------------------

    def get_settlement_status(self, liability_id: uuid.UUID) -> SettlementStatus:
        def work(session: Session) -> SettlementStatus:
            liability = _liability_from(self._load(session, liability_id))
            return reconciler.settlement_status(liability, ledger.holdings(session, liability_id))

        return self._read(f"settlement status of {liability_id}", work)

    def execute_settlement(
        self,
        liability_id: uuid.UUID,
        adjustments: Sequence[SettlementAdjustment],
        final_action: Optional[FinalAction] = None,
        unaccounted_amount: Optional[Decimal] = None,
        confirmation: Optional[str] = None,
        today: Optional[date] = None,
    ) -> OperationResult:
        """Materialize every adjustment, resolve the remainder and delete the liability.

        All of it is one transaction: on any failure the liability, its schedule
        and every balance are left exactly as they were.
        """
        today = today or date.today()
        try:
            reconciler.check_confirmation(confirmation, self.confirmation_token)
        except LiabilityError as e:
            logger.warning("Settlement rejected for %s: %s", liability_id, e)
            return OperationResult.failed(e)

        def work(session: Session) -> tuple[str, int]:
            record = self._load(session, liability_id)
            status = reconciler.settlement_status(_liability_from(record), ledger.holdings(session, liability_id))
            movements = reconciler.plan_settlement(status, adjustments, final_action, unaccounted_amount, today)

            for movement in movements:
                ledger.apply_movement(session, liability_id, movement, record.currency)
            ledger.drop_funds(session, liability_id)
            session.delete(record)
            return f"Liability settled and deleted ({len(movements)} ledger movements)", len(movements)

        return self._run("settlement", liability_id, work)
