"""
Tender Desk CLI

Command-line interface for the office tender desk.
Provides commands for NITs, works, bids, awards, payments and monitoring.

Usage:
    tender-desk init --db tenders.db
    tender-desk nit publish --memo 12 --date 2024-06-03
    tender-desk work add --nit <nit_id> --serial 1 --cost 1000000
    tender-desk bid register --work <work_id> --agency agency-17
    tender-desk bid evaluate --bid <bid_id> --qualify
    tender-desk stage advance --work <work_id> --to FinancialBidOpening
    tender-desk award issue --work <work_id> --bid <bid_id> --memo-no 45 --memo-date 2024-08-01
    tender-desk payment record --work <work_id> --gross 400000 --bill-type "final bill"
    tender-desk certificate --work <work_id>
"""

import json
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from tender_lifecycle.desk import TenderDesk
from tender_lifecycle.kernel.logging import configure_logging, is_production
from tender_lifecycle.kernel.policy import TenderPolicy
from tender_lifecycle.kernel.results import ActionResult

# Rejections are logged at INFO; keep them out of the terminal unless asked
configure_logging(
    json_output=is_production(), log_level=os.getenv("TENDER_LOG_LEVEL", "WARNING")
)

app = typer.Typer(
    name="tender-desk",
    help="Tender desk - NIT, bid, award and payment register",
    add_completion=False,
)

# Sub-apps
nit_app = typer.Typer(help="NIT booking and publication commands")
work_app = typer.Typer(help="Work schedule and status commands")
bid_app = typer.Typer(help="Bid registration and evaluation commands")
stage_app = typer.Typer(help="Tender stage commands")
award_app = typer.Typer(help="Award, agreement and delivery commands")
payment_app = typer.Typer(help="Payment ledger commands")

app.add_typer(nit_app, name="nit")
app.add_typer(work_app, name="work")
app.add_typer(bid_app, name="bid")
app.add_typer(stage_app, name="stage")
app.add_typer(award_app, name="award")
app.add_typer(payment_app, name="payment")

# Global state
DEFAULT_DB = Path(".tender.db")
DATE_FORMATS = ["%Y-%m-%d", "%d-%m-%Y"]

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def get_desk(db_path: Optional[Path] = None) -> TenderDesk:
    """Get TenderDesk instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'tender-desk init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return TenderDesk(db, policy=TenderPolicy.from_env())


def unwrap(result: ActionResult) -> Any:
    """Return the action's value, or print its error and exit 1"""
    error = result.error
    if error is not None:
        typer.echo(f"Error [{error.code}]: {error.message}", err=True)
        raise typer.Exit(1)
    for anomaly in result.anomalies:
        typer.echo(f"Warning [{anomaly.code}]: {anomaly.message}", err=True)
    return result.value


def as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value is not None else None


def echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2, default=str))


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new tender database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    TenderDesk(db)
    typer.echo(f"✓ Initialized tender database: {db}")


# NIT commands


@nit_app.command("book")
def nit_book(
    memo: Annotated[int, typer.Option("--memo", help="Memo number")],
    memo_date: Annotated[datetime, typer.Option("--date", formats=DATE_FORMATS)],
    supply: Annotated[bool, typer.Option("--supply", help="Supply NIT")] = False,
    db: DbOption = None,
) -> None:
    """Book a memo number without publishing"""
    desk = get_desk(db)
    nit_id = unwrap(desk.book_nit(memo, memo_date.date(), is_supply=supply))
    typer.echo(f"✓ Booked NIT: {nit_id}")


@nit_app.command("publish")
def nit_publish(
    memo: Annotated[int, typer.Option("--memo", help="Memo number")],
    memo_date: Annotated[datetime, typer.Option("--date", formats=DATE_FORMATS)],
    supply: Annotated[bool, typer.Option("--supply", help="Supply NIT")] = False,
    db: DbOption = None,
) -> None:
    """Publish a NIT (booking the memo number if needed)"""
    desk = get_desk(db)
    nit_id = unwrap(desk.publish_nit(memo, memo_date.date(), is_supply=supply))
    nit = unwrap(desk.get_nit(nit_id))
    typer.echo(f"✓ Published NIT: {nit_id}")
    typer.echo(f"  Reference: {nit['reference']}")


@nit_app.command("amend")
def nit_amend(
    nit_id: Annotated[str, typer.Option("--id", help="NIT ID")],
    memo: Annotated[int, typer.Option("--memo", help="New memo number")],
    memo_date: Annotated[datetime, typer.Option("--date", formats=DATE_FORMATS)],
    db: DbOption = None,
) -> None:
    """Correct the memo number/date of an unpublished NIT"""
    desk = get_desk(db)
    nit = unwrap(desk.amend_nit_memo(nit_id, memo, memo_date.date()))
    typer.echo(f"✓ Amended NIT: {nit_id}")
    typer.echo(f"  Reference: {nit['reference']}")


@nit_app.command("show")
def nit_show(
    nit_id: Annotated[str, typer.Option("--id", help="NIT ID")],
    db: DbOption = None,
) -> None:
    """Show a NIT and its works"""
    desk = get_desk(db)
    echo_json(unwrap(desk.get_nit(nit_id)))


@nit_app.command("list")
def nit_list(
    financial_year: Annotated[
        Optional[str],
        typer.Option("--fy", help="Financial year, e.g. 2024-25"),
    ] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """List NITs"""
    desk = get_desk(db)
    nits = unwrap(desk.list_nits(financial_year))

    if json_output:
        echo_json(nits)
        return
    if not nits:
        typer.echo("No NITs")
        return

    typer.echo(f"NITs ({len(nits)}):")
    for nit in nits:
        state = "cancelled" if nit["cancelled"] else "published" if nit["published"] else "booked"
        typer.echo(f"  {nit['nit_id']}: {nit['reference']} [{state}] works={len(nit['work_ids'])}")


@nit_app.command("delete")
def nit_delete(
    nit_id: Annotated[str, typer.Option("--id", help="NIT ID")],
    db: DbOption = None,
) -> None:
    """Delete a NIT that has no works"""
    desk = get_desk(db)
    unwrap(desk.delete_nit(nit_id))
    typer.echo(f"✓ Deleted NIT: {nit_id}")


# Work commands


@work_app.command("add")
def work_add(
    nit_id: Annotated[str, typer.Option("--nit", help="NIT ID")],
    serial: Annotated[int, typer.Option("--serial", help="Serial number within the NIT")],
    cost: Annotated[str, typer.Option("--cost", help="Final estimated cost")],
    description: Annotated[str, typer.Option("--description", help="Work description")] = "",
    db: DbOption = None,
) -> None:
    """Add a work to a NIT"""
    desk = get_desk(db)
    work_id = unwrap(desk.add_work(nit_id, serial, cost, description))
    typer.echo(f"✓ Added work: {work_id}")


@work_app.command("show")
def work_show(
    work_id: Annotated[str, typer.Option("--id", help="Work ID")],
    db: DbOption = None,
) -> None:
    """Show a work with its bids, award and qualification state"""
    desk = get_desk(db)
    echo_json(unwrap(desk.get_work(work_id)))


@work_app.command("list")
def work_list(
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="Tender status filter"),
    ] = None,
    nit_id: Annotated[Optional[str], typer.Option("--nit", help="NIT ID filter")] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """List works"""
    desk = get_desk(db)
    works = unwrap(desk.list_works(status, nit_id=nit_id))

    if json_output:
        echo_json(works)
        return
    if not works:
        typer.echo("No works")
        return

    typer.echo(f"Works ({len(works)}):")
    for work in works:
        typer.echo(
            f"  {work['work_id']}: #{work['serial_no']} {work['tender_status']} "
            f"est={work['estimated_cost']} bids={work['bid_count']}"
        )


@work_app.command("summary")
def work_summary(db: DbOption = None) -> None:
    """Count works per tender status"""
    desk = get_desk(db)
    summary = unwrap(desk.tender_status_summary())
    typer.echo("Works by tender status:")
    for status, count in summary.items():
        typer.echo(f"  {status}: {count}")


@work_app.command("cancel")
def work_cancel(
    work_id: Annotated[str, typer.Option("--id", help="Work ID")],
    db: DbOption = None,
) -> None:
    """Cancel a work (the NIT follows when it was its last live work)"""
    desk = get_desk(db)
    ack = unwrap(desk.cancel_work(work_id))
    typer.echo(f"✓ Cancelled work: {work_id}")
    if ack["nit_cancelled"]:
        typer.echo("  NIT cancelled: no live works remain")


@work_app.command("retender")
def work_retender(
    work_id: Annotated[str, typer.Option("--id", help="Work ID")],
    db: DbOption = None,
) -> None:
    """Reopen a cancelled or retender work for fresh bids"""
    desk = get_desk(db)
    unwrap(desk.reopen_for_retender(work_id))
    typer.echo(f"✓ Reopened work for retender: {work_id}")


@work_app.command("status")
def work_status(
    work_id: Annotated[str, typer.Option("--id", help="Work ID")],
    to: Annotated[str, typer.Option("--to", help="yettostart | workinprogress | workcompleted | billpaid")],
    completion_date: Annotated[
        Optional[datetime],
        typer.Option("--completion-date", formats=DATE_FORMATS),
    ] = None,
    db: DbOption = None,
) -> None:
    """Move an awarded work to a later work status"""
    desk = get_desk(db)
    ack = unwrap(desk.change_work_status(work_id, to, as_date(completion_date)))
    typer.echo(f"✓ Work status: {ack['work_status']}")


# Bid commands


@bid_app.command("register")
def bid_register(
    work_id: Annotated[str, typer.Option("--work", help="Work ID")],
    agency: Annotated[str, typer.Option("--agency", help="Agency ID")],
    db: DbOption = None,
) -> None:
    """Register an agency's bid on a work"""
    desk = get_desk(db)
    bid_id = unwrap(desk.register_bid(work_id, agency))
    typer.echo(f"✓ Registered bid: {bid_id}")


@bid_app.command("evaluate")
def bid_evaluate(
    bid_id: Annotated[str, typer.Option("--bid", help="Bid ID")],
    qualify: Annotated[
        bool,
        typer.Option("--qualify/--disqualify", help="Technical evaluation result"),
    ],
    doc: Annotated[Optional[str], typer.Option("--doc", help="Evaluation document ref")] = None,
    db: DbOption = None,
) -> None:
    """Record a bid's technical evaluation"""
    desk = get_desk(db)
    assessment = unwrap(desk.submit_technical_evaluation(bid_id, qualify, doc))
    typer.echo(f"✓ Evaluated bid: {bid_id} ({'qualified' if qualify else 'not qualified'})")
    typer.echo(f"  {assessment['message']}")


@bid_app.command("withdraw")
def bid_withdraw(
    bid_id: Annotated[str, typer.Option("--bid", help="Bid ID")],
    db: DbOption = None,
) -> None:
    """Withdraw an unevaluated bid"""
    desk = get_desk(db)
    unwrap(desk.withdraw_bid(bid_id))
    typer.echo(f"✓ Withdrew bid: {bid_id}")


@bid_app.command("amount")
def bid_amount(
    bid_id: Annotated[str, typer.Option("--bid", help="Bid ID")],
    amount: Annotated[str, typer.Option("--amount", help="Bidding amount")],
    db: DbOption = None,
) -> None:
    """Record a qualified bid's financial offer"""
    desk = get_desk(db)
    ack = unwrap(desk.record_financial_bid(bid_id, amount))
    typer.echo(f"✓ Recorded bidding amount {amount} for bid {bid_id}")
    typer.echo(f"  Tender status: {ack['tender_status']}")


@bid_app.command("status")
def bid_status(
    work_id: Annotated[str, typer.Option("--work", help="Work ID")],
    db: DbOption = None,
) -> None:
    """Show where a work stands against the qualification gate"""
    desk = get_desk(db)
    status = unwrap(desk.qualification_status(work_id))
    typer.echo(
        f"Bids: {status['total']} (evaluated {status['evaluated']}, qualified {status['qualified']})"
    )
    typer.echo(f"  {status['message']}")


# Stage commands


@stage_app.command("advance")
def stage_advance(
    work_id: Annotated[str, typer.Option("--work", help="Work ID")],
    to: Annotated[str, typer.Option("--to", help="Target tender status")],
    expected_version: Annotated[
        Optional[int],
        typer.Option("--expected-version", help="Work version the decision is based on"),
    ] = None,
    db: DbOption = None,
) -> None:
    """Advance a work's tender status"""
    desk = get_desk(db)
    ack = unwrap(desk.advance_tender_stage(work_id, to, expected_version))
    typer.echo(f"✓ Tender status: {ack['tender_status']} (version {ack['version']})")


# Award commands


@award_app.command("issue")
def award_issue(
    work_id: Annotated[str, typer.Option("--work", help="Work ID")],
    bid_id: Annotated[str, typer.Option("--bid", help="Winning bid ID")],
    memo_no: Annotated[str, typer.Option("--memo-no", help="Work-order memo number")],
    memo_date: Annotated[datetime, typer.Option("--memo-date", formats=DATE_FORMATS)],
    db: DbOption = None,
) -> None:
    """Award a work and issue its work order"""
    desk = get_desk(db)
    award_id = unwrap(desk.award_contract(work_id, bid_id, memo_no, memo_date.date()))
    work = unwrap(desk.get_work(work_id))
    typer.echo(f"✓ Awarded: {award_id}")
    typer.echo(f"  Bid percentage: {work['work_order']['bid_percentage']}")


@award_app.command("agreement")
def award_agreement(
    award_id: Annotated[str, typer.Option("--award", help="Award ID")],
    number: Annotated[Optional[str], typer.Option("--no", help="Agreement number")] = None,
    agreement_date: Annotated[
        Optional[datetime],
        typer.Option("--date", formats=DATE_FORMATS),
    ] = None,
    db: DbOption = None,
) -> None:
    """Record the agreement executed for an award"""
    desk = get_desk(db)
    agreement_id = unwrap(desk.record_agreement(award_id, number, as_date(agreement_date)))
    typer.echo(f"✓ Recorded agreement: {agreement_id}")


@award_app.command("deliver")
def award_deliver(
    award_id: Annotated[str, typer.Option("--award", help="Award ID")],
    delivered_on: Annotated[
        Optional[datetime],
        typer.Option("--on", formats=DATE_FORMATS),
    ] = None,
    db: DbOption = None,
) -> None:
    """Acknowledge delivery of a work order"""
    desk = get_desk(db)
    unwrap(desk.acknowledge_delivery(award_id, as_date(delivered_on)))
    typer.echo(f"✓ Delivery acknowledged: {award_id}")


# Payment commands


@payment_app.command("record")
def payment_record(
    work_id: Annotated[str, typer.Option("--work", help="Work ID")],
    gross: Annotated[str, typer.Option("--gross", help="Gross bill amount")],
    bill_type: Annotated[
        str,
        typer.Option("--bill-type", help="'running bill' or 'final bill'"),
    ] = "running bill",
    income_tax: Annotated[str, typer.Option("--income-tax")] = "0",
    labour_cess: Annotated[str, typer.Option("--labour-cess")] = "0",
    security_deposit: Annotated[str, typer.Option("--security-deposit")] = "0",
    tds_cgst: Annotated[str, typer.Option("--tds-cgst")] = "0",
    tds_sgst: Annotated[str, typer.Option("--tds-sgst")] = "0",
    paid_on: Annotated[
        Optional[datetime],
        typer.Option("--paid-on", formats=DATE_FORMATS),
    ] = None,
    completion_date: Annotated[
        Optional[datetime],
        typer.Option("--completion-date", formats=DATE_FORMATS),
    ] = None,
    mb_reference: Annotated[Optional[str], typer.Option("--mb", help="Measurement book ref")] = None,
    db: DbOption = None,
) -> None:
    """Record a bill paid against an awarded work"""
    desk = get_desk(db)
    deductions = {
        "income_tax": income_tax,
        "labour_welfare_cess": labour_cess,
        "security_deposit": security_deposit,
        "tds_cgst": tds_cgst,
        "tds_sgst": tds_sgst,
    }
    entry_id = unwrap(
        desk.record_payment(
            work_id,
            gross,
            deductions=deductions,
            bill_type=bill_type,
            bill_payment_date=as_date(paid_on),
            completion_date=as_date(completion_date),
            mb_reference=mb_reference,
        )
    )
    typer.echo(f"✓ Recorded payment: {entry_id}")


@payment_app.command("totals")
def payment_totals(
    work_id: Annotated[str, typer.Option("--work", help="Work ID")],
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show paid and pending amounts of a work"""
    desk = get_desk(db)
    totals = unwrap(desk.compute_totals(work_id))

    if json_output:
        echo_json(totals)
        return
    typer.echo(f"Ledger of work {work_id}:")
    typer.echo(f"  Estimated cost: {totals['estimated_cost']}")
    typer.echo(f"  Total paid: {totals['total_paid']}")
    typer.echo(f"  Deductions: {totals['total_deductions']}")
    typer.echo(f"  Net paid: {totals['total_net']}")
    typer.echo(f"  Pending: {totals['pending']}")
    if totals["has_final_bill"]:
        typer.echo("  Final bill recorded")


@app.command()
def certificate(
    work_id: Annotated[str, typer.Option("--work", help="Work ID")],
    db: DbOption = None,
) -> None:
    """Print the completion certificate of a work"""
    desk = get_desk(db)
    echo_json(unwrap(desk.completion_certificate(work_id)))


# Serving commands


@app.command()
def serve(
    port: Annotated[int, typer.Option("--port", help="Port to listen on")] = 8080,
    host: Annotated[str, typer.Option("--host", help="Interface to bind")] = "127.0.0.1",
    db: DbOption = None,
) -> None:
    """Serve the read-only JSON API and health probes"""
    from tender_lifecycle.read_api import app as api_app
    from tender_lifecycle.read_api import initialize_read_api

    initialize_read_api(db or DEFAULT_DB, get_desk(db))
    api_app.run(host=host, port=port)


@app.command("serve-metrics")
def serve_metrics(
    port: Annotated[int, typer.Option("--port", help="Port to listen on")] = 9090,
) -> None:
    """Expose Prometheus metrics at /metrics"""
    import time

    from tender_lifecycle.kernel.metrics import start_metrics_server

    start_metrics_server(port=port)
    typer.echo(f"✓ Metrics at http://0.0.0.0:{port}/metrics (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        typer.echo("Metrics server stopped")


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
