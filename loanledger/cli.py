"""CLI for offline amortization and impact previews.

Usage:
    python -m loanledger.cli schedule 12000 --rate 12 --term 12 --start 2024-01-01
    python -m loanledger.cli schedule 12000 --rate 12 --payment 500
    python -m loanledger.cli impact 12000 --rate 12 --payment 1066.19 --end 2024-12-01 --field rate --value 18
"""

import argparse
import sys
from datetime import date
from decimal import Decimal, InvalidOperation

from loanledger.config import settings
from loanledger.engine.amortization import add_months, payoff_term, required_payment
from loanledger.engine.impact import preview_impact
from loanledger.engine.schedule import compute_schedule
from loanledger.exceptions import LiabilityError
from loanledger.models.impact import ConstraintMode, CurrentTerms, ProposedChange, ProposedField
from loanledger.models.liability import InterestType, new_id


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}")


def print_schedule(installments, currency: str = "USD") -> None:
    print(f"\n{'=' * 72}")
    print(f"  {'#':>4}  {'Due':<10}  {'Payment':>12}  {'Principal':>12}  {'Interest':>10}  {'Balance':>12}")
    print(f"{'=' * 72}")
    for i in installments:
        print(
            f"  {i.payment_number:>4}  {i.due_date.isoformat():<10}  {i.amount:>12,.2f}  "
            f"{i.principal_component:>12,.2f}  {i.interest_component:>10,.2f}  {i.remaining_balance:>12,.2f}"
        )
    total = sum(i.amount for i in installments)
    interest = sum(i.interest_component for i in installments)
    print(f"{'-' * 72}")
    print(f"  {len(installments)} payments, total {total:,.2f} {currency}, interest {interest:,.2f}")
    print()


def print_impact(preview) -> None:
    def signed(value) -> str:
        return "n/a" if value is None else f"{value:+,}"

    print(f"\n{'=' * 60}")
    print(f"  Impact Preview")
    print(f"{'=' * 60}")
    print(f"  Payment:         {preview.old_payment:>12,.2f} -> {preview.new_payment:>12,.2f}  ({signed(preview.payment_change)})")
    print(f"  Term (months):   {str(preview.old_term_months or 'n/a'):>12} -> {preview.new_term_months:>12}  ({signed(preview.term_change_months)})")
    print(f"  End date:        {preview.old_end_date.isoformat():>12} -> {preview.new_end_date.isoformat():>12}")
    old_interest = "n/a" if preview.old_total_interest is None else f"{preview.old_total_interest:,.2f}"
    print(f"  Total interest:  {old_interest:>12} -> {preview.new_total_interest:>12,.2f}  ({signed(preview.interest_change)})")
    print()


def cmd_schedule(args) -> None:
    itype = InterestType(args.interest_type)
    first_due = add_months(args.start, 1)
    if args.payment is not None:
        payment = args.payment
        term = payoff_term(args.balance, payment, args.rate, itype)
    elif args.term is not None:
        term = args.term
        payment = required_payment(args.balance, args.rate, term, itype)
    else:
        raise LiabilityError("give --term or --payment")
    installments = compute_schedule(
        new_id(), args.balance, payment, args.rate, first_due, add_months(args.start, term), itype,
        max_periods=settings.max_schedule_periods,
    )
    print_schedule(installments)


def cmd_impact(args) -> None:
    current = CurrentTerms(
        balance=args.balance,
        payment=args.payment,
        annual_rate_pct=args.rate,
        end_date=args.end,
        interest_type=InterestType(args.interest_type),
    )
    field = ProposedField(args.field)
    value = _date(args.value) if field == ProposedField.END_DATE else _decimal(args.value)
    preview = preview_impact(
        current,
        ProposedChange(field=field, value=value),
        ConstraintMode(args.mode),
        today=args.today,
        custom_payment=args.custom_payment,
    )
    print_impact(preview)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Liability amortization CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("balance", type=_decimal, help="Outstanding balance")
    common.add_argument("--rate", type=_decimal, default=Decimal("0"), help="Annual rate in percent (default: 0)")
    common.add_argument(
        "--interest-type", choices=[t.value for t in InterestType], default=InterestType.REDUCING.value,
    )

    sched = sub.add_parser("schedule", parents=[common], help="Print a full amortization schedule")
    sched.add_argument("--term", type=int, help="Term in months")
    sched.add_argument("--payment", type=_decimal, help="Monthly payment (solves the term)")
    sched.add_argument("--start", type=_date, default=date.today(), help="Start date; first payment one month later")
    sched.set_defaults(func=cmd_schedule)

    imp = sub.add_parser("impact", parents=[common], help="Preview the effect of changing one term")
    imp.add_argument("--payment", type=_decimal, required=True, help="Current monthly payment")
    imp.add_argument("--end", type=_date, required=True, help="Current end date")
    imp.add_argument("--field", choices=[f.value for f in ProposedField], required=True)
    imp.add_argument("--value", required=True, help="New value (a date for end_date)")
    imp.add_argument("--mode", choices=[m.value for m in ConstraintMode], default=ConstraintMode.KEEP_PAYMENT_SAME.value)
    imp.add_argument("--custom-payment", type=_decimal)
    imp.add_argument("--today", type=_date, default=date.today())
    imp.set_defaults(func=cmd_impact)

    args = parser.parse_args(argv)
    try:
        args.func(args)
    except (LiabilityError, argparse.ArgumentTypeError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
