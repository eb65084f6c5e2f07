"""
Tender Projections

Read views of NITs and works for listings, dashboards and id lookups.
The desk applies committed events to them in commit order, its own and
those of other desks on the same database, before it notifies subscribers.
Decisions are never taken from them (the desk reloads streams for that).

Fun fact: The register clerk's "tender status board" on the office wall is
the original projection. It was rebuilt from the files every Monday!
"""

from datetime import date
from typing import Any

from tender_lifecycle.kernel.events import Event
from tender_lifecycle.kernel.time import financial_year_range
from tender_lifecycle.tender.models import TenderStatus, Work


class NitRegistry:
    """
    NIT registry projection

    Rebuilt from NitBooked, NitMemoAmended, NitPublished, NitDeleted,
    WorkAttached, NitCancelled and NitReinstated events.
    """

    def __init__(self) -> None:
        self.nits: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.event_type == "NitBooked":
            self._apply_nit_booked(event)
        elif event.event_type == "NitMemoAmended":
            self._apply_memo_amended(event)
        elif event.event_type == "NitPublished":
            self._update(event, published=True, published_at=event.payload["published_at"])
        elif event.event_type == "NitDeleted":
            self._update(event, deleted=True)
        elif event.event_type == "WorkAttached":
            self._apply_work_attached(event)
        elif event.event_type == "NitCancelled":
            self._update(event, cancelled=True)
        elif event.event_type == "NitReinstated":
            self._update(event, cancelled=False)

    def _apply_nit_booked(self, event: Event) -> None:
        payload = event.payload
        self.nits[payload["nit_id"]] = {
            "nit_id": payload["nit_id"],
            "memo_number": payload["memo_number"],
            "memo_date": payload["memo_date"],
            "is_supply": payload["is_supply"],
            "office_code": payload["office_code"],
            "reference": _reference(payload),
            "published": False,
            "published_at": None,
            "cancelled": False,
            "deleted": False,
            "work_ids": [],
            "version": event.version,
        }

    def _apply_memo_amended(self, event: Event) -> None:
        nit = self.nits.get(event.payload["nit_id"])
        if nit is None:
            return
        nit.update(
            memo_number=event.payload["memo_number"],
            memo_date=event.payload["memo_date"],
            is_supply=event.payload["is_supply"],
        )
        nit["reference"] = _reference(nit)
        nit["version"] = event.version

    def _apply_work_attached(self, event: Event) -> None:
        nit = self.nits.get(event.payload["nit_id"])
        if nit is not None:
            nit["work_ids"].append(event.payload["work_id"])
            nit["version"] = event.version

    def _update(self, event: Event, **fields: Any) -> None:
        nit = self.nits.get(event.payload["nit_id"])
        if nit is not None:
            nit.update(fields)
            nit["version"] = event.version

    def get(self, nit_id: str) -> dict[str, Any] | None:
        nit = self.nits.get(nit_id)
        if nit is None or nit["deleted"]:
            return None
        return nit

    def list_all(self) -> list[dict[str, Any]]:
        """Live NITs ordered by memo date, then memo number"""
        live = [nit for nit in self.nits.values() if not nit["deleted"]]
        return sorted(live, key=lambda nit: (nit["memo_date"], nit["memo_number"]))

    def list_by_financial_year(self, label: str) -> list[dict[str, Any]]:
        """Live NITs whose memo date falls in a financial year such as '2024-25'"""
        first_day, last_day = financial_year_range(label)
        return [
            nit
            for nit in self.list_all()
            if first_day <= date.fromisoformat(nit["memo_date"]) <= last_day
        ]

    def to_dict(self) -> dict[str, Any]:
        return {"nits": self.nits}


def _reference(nit: dict[str, Any]) -> str:
    year = date.fromisoformat(nit["memo_date"]).year
    return f"{nit['memo_number']}/{nit['office_code']}/{year}"


class WorkRegistry:
    """
    Work registry projection

    Keeps one summary row per work plus bid-id and award-id indexes, so
    actions addressed by bid or award can find their work.
    """

    def __init__(self) -> None:
        self.works: dict[str, dict[str, Any]] = {}
        self.bid_index: dict[str, str] = {}
        self.award_index: dict[str, str] = {}

    def apply_event(self, event: Event) -> None:
        if event.stream_type != "work":
            return
        if event.event_type == "WorkAdded":
            self._apply_work_added(event)
            return

        work = self.works.get(event.payload["work_id"])
        if work is None:
            return
        work["version"] = event.version

        if event.event_type == "BidRegistered":
            work["bid_count"] += 1
            self.bid_index[event.payload["bid_id"]] = work["work_id"]
        elif event.event_type == "BidWithdrawn":
            work["bid_count"] -= 1
            self.bid_index.pop(event.payload["bid_id"], None)
        elif event.event_type == "WorkReopenedForRetender":
            for bid_id in event.payload["withdrawn_bid_ids"]:
                self.bid_index.pop(bid_id, None)
            work["bid_count"] = 0
            work["tender_status"] = TenderStatus.TO_BE_OPENED.value
        elif event.event_type == "TenderStageAdvanced":
            work["tender_status"] = event.payload["to_status"]
        elif event.event_type == "ContractAwarded":
            work["award_id"] = event.payload["award_id"]
            work["agency_id"] = event.payload["agency_id"]
            self.award_index[event.payload["award_id"]] = work["work_id"]
        elif event.event_type == "WorkOrderIssued":
            work["bid_percentage"] = event.payload["bid_percentage"]
        elif event.event_type == "AgreementRecorded":
            work["agreement_no"] = event.payload["agreement_no"]
        elif event.event_type == "WorkStatusChanged":
            work["work_status"] = event.payload["to_status"]
        elif event.event_type == "CompletionDateRecorded":
            work["completion_date"] = event.payload["completion_date"]

    def _apply_work_added(self, event: Event) -> None:
        payload = event.payload
        self.works[payload["work_id"]] = {
            "work_id": payload["work_id"],
            "nit_id": payload["nit_id"],
            "serial_no": payload["serial_no"],
            "description": payload["description"],
            "estimated_cost": payload["estimated_cost"],
            "tender_status": TenderStatus.TO_BE_OPENED.value,
            "work_status": None,
            "bid_count": 0,
            "award_id": None,
            "agency_id": None,
            "bid_percentage": None,
            "agreement_no": None,
            "completion_date": None,
            "version": event.version,
        }

    def get(self, work_id: str) -> dict[str, Any] | None:
        return self.works.get(work_id)

    def work_id_for_bid(self, bid_id: str) -> str | None:
        return self.bid_index.get(bid_id)

    def work_id_for_award(self, award_id: str) -> str | None:
        return self.award_index.get(award_id)

    def list_by_nit(self, nit_id: str) -> list[dict[str, Any]]:
        works = [w for w in self.works.values() if w["nit_id"] == nit_id]
        return sorted(works, key=lambda w: w["serial_no"])

    def list_by_status(self, status: TenderStatus | str | None = None) -> list[dict[str, Any]]:
        """Works in a tender status (all works when status is None)"""
        if status is None:
            return list(self.works.values())
        status_str = status.value if isinstance(status, TenderStatus) else status
        return [w for w in self.works.values() if w["tender_status"] == status_str]

    def status_summary(self) -> dict[str, int]:
        """Work count for every tender status (zero counts included)"""
        summary = {status.value: 0 for status in TenderStatus}
        for work in self.works.values():
            summary[work["tender_status"]] += 1
        return summary

    def to_dict(self) -> dict[str, Any]:
        return {"works": self.works}


def work_summary(work: Work) -> dict[str, Any]:
    """The registry row of a work, built from its loaded stream"""
    return {
        "work_id": work.work_id,
        "nit_id": work.nit_id,
        "serial_no": work.serial_no,
        "description": work.description,
        "estimated_cost": str(work.estimated_cost),
        "tender_status": work.tender_status.value,
        "work_status": work.work_status.value if work.work_status else None,
        "bid_count": len(work.bids),
        "award_id": work.award.award_id if work.award else None,
        "agency_id": work.award.agency_id if work.award else None,
        "bid_percentage": work.work_order.bid_percentage if work.work_order else None,
        "agreement_no": work.agreement.agreement_no if work.agreement else None,
        "completion_date": work.completion_date.isoformat() if work.completion_date else None,
        "version": work.version,
    }
