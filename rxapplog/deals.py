"""Live view over the deals table: initial listing plus realtime changes."""

import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from reactivex import Observable
from reactivex.abc import DisposableBase
from reactivex.subject import BehaviorSubject

from .entry import LogLevel
from .logging import EmptyLogComp, LogComp


@dataclass(frozen=True)
class Deal:
    id: str
    title: str
    price: float
    currency: str
    ticket: float
    yield_percent: float
    sold_percent: float
    days_left: int | None
    image_url: str | None
    description: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Deal":
        """Build a deal from a table row; unknown columns are ignored."""
        days_left = row.get("days_left")
        return cls(
            id=str(row["id"]),
            title=row["title"],
            price=float(row["price"]),
            currency=row["currency"],
            ticket=float(row["ticket"]),
            yield_percent=float(row["yield_percent"]),
            sold_percent=float(row["sold_percent"]),
            days_left=int(days_left) if days_left is not None else None,
            image_url=row.get("image_url"),
            description=row.get("description"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class DealChangeType(Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class DealChange:
    """A realtime change of the deals table.

    ``new`` is set for inserts and updates, ``old`` for deletes.
    """

    type: DealChangeType
    new: Deal | None = None
    old: Deal | None = None


def apply_deal_change(deals: Sequence[Deal], change: DealChange) -> list[Deal]:
    """Return the list after ``change``; the input is not modified."""
    if change.type is DealChangeType.INSERT and change.new is not None:
        return [*deals, change.new]
    if change.type is DealChangeType.UPDATE and change.new is not None:
        updated = change.new
        return [updated if d.id == updated.id else d for d in deals]
    if change.type is DealChangeType.DELETE and change.old is not None:
        removed_id = change.old.id
        return [d for d in deals if d.id != removed_id]
    return list(deals)


class DealsRepository(ABC):
    """Read access to the deals listing."""

    @abstractmethod
    async def get_all(self) -> list[Deal]:
        """All deals, oldest first."""
        ...

    @abstractmethod
    async def get_by_id(self, deal_id: str) -> Deal | None: ...


class LiveDeals:
    """Keeps an up-to-date list of deals.

    ``start`` loads the listing from the repository and then applies every
    :class:`DealChange` from ``changes`` until :meth:`dispose`. A failed load
    is logged and leaves the list empty; the change feed is subscribed either
    way.

    ``snapshots`` replays the current list to new subscribers and emits a new
    list after every change.

    Example:
        >>> live = LiveDeals(repository, logcomp)
        >>> live.snapshots.subscribe(render)
        >>> await live.start(realtime_changes)
    """

    def __init__(self, repository: DealsRepository, logcomp: LogComp | None = None):
        self._repository = repository
        self._logcomp = logcomp if logcomp is not None else EmptyLogComp()
        self._lock = threading.Lock()
        self._deals: list[Deal] = []
        self._loading = True
        self._subject: BehaviorSubject = BehaviorSubject([])
        self._subscription: DisposableBase | None = None

    @property
    def deals(self) -> list[Deal]:
        with self._lock:
            return list(self._deals)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def snapshots(self) -> Observable:
        return self._subject

    async def start(self, changes: Observable | None = None) -> None:
        try:
            deals = await self._repository.get_all()
            self._set(list(deals))
        except Exception as e:
            self._logcomp.log("Failed to fetch deals", LogLevel.ERROR, error=e)
        finally:
            self._loading = False

        if changes is not None:
            self._subscription = changes.subscribe(on_next=self._on_change)

    async def refresh(self, deal_id: str) -> Deal | None:
        """Re-read one deal and apply it as a change.

        A deal that no longer exists is removed from the list.
        """
        try:
            deal = await self._repository.get_by_id(deal_id)
        except Exception as e:
            self._logcomp.log(
                "Failed to fetch deal", LogLevel.ERROR, {"deal_id": deal_id}, error=e
            )
            return None

        with self._lock:
            known = next((d for d in self._deals if d.id == deal_id), None)
        if deal is None:
            if known is not None:
                self._on_change(DealChange(DealChangeType.DELETE, old=known))
        elif known is None:
            self._on_change(DealChange(DealChangeType.INSERT, new=deal))
        else:
            self._on_change(DealChange(DealChangeType.UPDATE, new=deal))
        return deal

    def dispose(self) -> None:
        if self._subscription is not None:
            self._subscription.dispose()
            self._subscription = None

    def _on_change(self, change: DealChange) -> None:
        with self._lock:
            self._deals = apply_deal_change(self._deals, change)
            snapshot = list(self._deals)
        self._subject.on_next(snapshot)

    def _set(self, deals: list[Deal]) -> None:
        with self._lock:
            self._deals = deals
        self._subject.on_next(list(deals))
