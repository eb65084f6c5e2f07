"""
NIT lifecycle - booking, amending, publishing, deleting, adding works

A memo number is unique within its calendar year. The year's memo register
is a stream of its own, so two clerks booking the same number at once
collide on that stream's version instead of both succeeding.
"""

from datetime import date
from decimal import Decimal

from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.errors import (
    DuplicateNitMemo,
    DuplicateWorkSerial,
    NitAlreadyPublished,
    NitClosed,
    NitHasWorks,
    NitNotFound,
    ValidationFailed,
)
from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.ids import generate_id
from tender_lifecycle.tender.events import (
    MemoNumberClaimed,
    MemoNumberReleased,
    NitBooked,
    NitDeleted,
    NitMemoAmended,
    NitPublished,
    WorkAdded,
    WorkAttached,
    memo_register_events,
    nit_events,
    work_events,
)
from tender_lifecycle.tender.models import MemoRegister, Nit, Work


def _require_live(nit: Nit) -> None:
    if nit.deleted:
        raise NitNotFound(nit.nit_id)


def _check_memo_free(register: MemoRegister, memo_number: int, nit_id: str | None) -> None:
    holder = register.holder_of(memo_number)
    if holder is not None and holder != nit_id:
        raise DuplicateNitMemo(memo_number, register.year)


def book_nit(
    ctx: CommandContext,
    register: MemoRegister,
    memo_number: int,
    memo_date: date,
    is_supply: bool,
    office_code: str,
) -> tuple[Nit, list[Event]]:
    """
    Book a memo number for a new, unpublished NIT

    Args:
        register: Memo register of memo_date's year

    Returns:
        (the new NIT as it will be after commit, events)
    """
    if memo_number <= 0:
        raise ValidationFailed("memo_number", "must be a positive integer")
    _check_memo_free(register, memo_number, None)

    nit = Nit(
        nit_id=generate_id(),
        memo_number=memo_number,
        memo_date=memo_date,
        is_supply=is_supply,
        office_code=office_code,
    )
    events = memo_register_events(
        ctx,
        register,
        MemoNumberClaimed(year=register.year, memo_number=memo_number, nit_id=nit.nit_id),
    )
    events += nit_events(
        ctx,
        nit,
        NitBooked(
            nit_id=nit.nit_id,
            memo_number=memo_number,
            memo_date=memo_date,
            is_supply=is_supply,
            office_code=office_code,
            booked_at=ctx.issued_at,
        ),
    )
    return nit, events


def publish_nit(ctx: CommandContext, nit: Nit, version_offset: int = 0) -> list[Event]:
    """
    Publish a booked NIT; memo number and date are frozen from here on

    ``version_offset`` lets the caller publish in the same batch that books
    the NIT (the booking event takes version 1).
    """
    _require_live(nit)
    if nit.published:
        raise NitAlreadyPublished(nit.nit_id)

    publishing = nit.model_copy(update={"version": nit.version + version_offset})
    return nit_events(
        ctx,
        publishing,
        NitPublished(nit_id=nit.nit_id, reference=nit.reference, published_at=ctx.issued_at),
    )


def amend_nit_memo(
    ctx: CommandContext,
    nit: Nit,
    memo_number: int,
    memo_date: date,
    is_supply: bool,
    current_register: MemoRegister,
    target_register: MemoRegister,
) -> list[Event]:
    """
    Correct memo number/date of an unpublished NIT

    Args:
        current_register: Register of the NIT's current memo year
        target_register: Register of the new memo year (the same object when unchanged)

    Raises:
        NitAlreadyPublished: Memo fields are frozen after publication
        DuplicateNitMemo: Another NIT holds the new number in that year
    """
    _require_live(nit)
    if nit.published:
        raise NitAlreadyPublished(nit.nit_id)
    if memo_number <= 0:
        raise ValidationFailed("memo_number", "must be a positive integer")

    events: list[Event] = []
    if (nit.memo_date.year, nit.memo_number) != (memo_date.year, memo_number):
        _check_memo_free(target_register, memo_number, nit.nit_id)
        release = MemoNumberReleased(
            year=current_register.year, memo_number=nit.memo_number, nit_id=nit.nit_id
        )
        claim = MemoNumberClaimed(
            year=target_register.year, memo_number=memo_number, nit_id=nit.nit_id
        )
        if current_register.year == target_register.year:
            events += memo_register_events(ctx, target_register, release, claim)
        else:
            events += memo_register_events(ctx, current_register, release)
            events += memo_register_events(ctx, target_register, claim)

    events += nit_events(
        ctx,
        nit,
        NitMemoAmended(
            nit_id=nit.nit_id,
            previous_memo_number=nit.memo_number,
            previous_memo_date=nit.memo_date,
            memo_number=memo_number,
            memo_date=memo_date,
            is_supply=is_supply,
        ),
    )
    return events


def delete_nit(ctx: CommandContext, nit: Nit, register: MemoRegister) -> list[Event]:
    """
    Delete a NIT that has no works; its memo number becomes free again

    Raises:
        NitHasWorks: The NIT still owns works
    """
    _require_live(nit)
    if nit.work_ids:
        raise NitHasWorks(nit.nit_id, len(nit.work_ids))

    events = memo_register_events(
        ctx,
        register,
        MemoNumberReleased(year=register.year, memo_number=nit.memo_number, nit_id=nit.nit_id),
    )
    events += nit_events(ctx, nit, NitDeleted(nit_id=nit.nit_id, deleted_at=ctx.issued_at))
    return events


def add_work(
    ctx: CommandContext,
    nit: Nit,
    serial_no: int,
    description: str,
    estimated_cost: Decimal,
) -> tuple[str, list[Event]]:
    """
    Add a work to the NIT's schedule

    Raises:
        NitClosed: NIT is cancelled or deleted
        DuplicateWorkSerial: Serial number already used in this NIT
        ValidationFailed: Non-positive serial or negative estimate
    """
    if nit.deleted or nit.cancelled:
        raise NitClosed(nit.nit_id, "deleted" if nit.deleted else "cancelled")
    if serial_no <= 0:
        raise ValidationFailed("serial_no", "must be a positive integer")
    if estimated_cost < 0:
        raise ValidationFailed("estimated_cost", "must not be negative")
    if serial_no in nit.work_serials.values():
        raise DuplicateWorkSerial(nit.nit_id, serial_no)

    work = Work(
        work_id=generate_id(),
        nit_id=nit.nit_id,
        serial_no=serial_no,
        description=description,
        estimated_cost=estimated_cost,
    )
    events = nit_events(
        ctx, nit, WorkAttached(nit_id=nit.nit_id, work_id=work.work_id, serial_no=serial_no)
    )
    events += work_events(
        ctx,
        work,
        WorkAdded(
            work_id=work.work_id,
            nit_id=nit.nit_id,
            serial_no=serial_no,
            description=description,
            estimated_cost=estimated_cost,
        ),
    )
    return work.work_id, events
