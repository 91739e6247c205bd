import asyncio

from reactivex import Subject

from rxapplog import LogLevel, NamedLogComp
from rxapplog.deals import (
    Deal,
    DealChange,
    DealChangeType,
    DealsRepository,
    LiveDeals,
    apply_deal_change,
)


def _deal(deal_id: str, title: str = "Solar farm", **overrides) -> Deal:
    row = {
        "id": deal_id,
        "title": title,
        "price": 1000,
        "currency": "EUR",
        "ticket": 100,
        "yield_percent": 7.5,
        "sold_percent": 40,
        "days_left": 12,
        "image_url": None,
        "description": None,
        "created_at": "2025-01-01T00:00:00Z",
        "updated_at": "2025-01-01T00:00:00Z",
    }
    row.update(overrides)
    return Deal.from_row(row)


class StaticRepository(DealsRepository):
    def __init__(self, deals):
        self.deals = deals

    async def get_all(self):
        return list(self.deals)

    async def get_by_id(self, deal_id):
        return next((d for d in self.deals if d.id == deal_id), None)


class BrokenRepository(DealsRepository):
    async def get_all(self):
        raise ConnectionError("listing unavailable")

    async def get_by_id(self, deal_id):
        return None


def test_deal_from_row():
    deal = _deal("d-1", days_left=None, extra_column="ignored")
    assert deal.price == 1000.0
    assert deal.days_left is None
    assert deal.yield_percent == 7.5


def test_apply_deal_change():
    a, b = _deal("a"), _deal("b")
    deals = [a, b]

    inserted = apply_deal_change(deals, DealChange(DealChangeType.INSERT, new=_deal("c")))
    assert [d.id for d in inserted] == ["a", "b", "c"]

    renamed = _deal("a", title="Wind park")
    updated = apply_deal_change(deals, DealChange(DealChangeType.UPDATE, new=renamed))
    assert updated == [renamed, b]

    deleted = apply_deal_change(deals, DealChange(DealChangeType.DELETE, old=a))
    assert deleted == [b]

    assert deals == [a, b]


def test_update_of_unknown_deal_changes_nothing():
    deals = [_deal("a")]
    change = DealChange(DealChangeType.UPDATE, new=_deal("zzz"))
    assert apply_deal_change(deals, change) == deals


def test_repository_get_by_id():
    repo = StaticRepository([_deal("a")])
    assert asyncio.run(repo.get_by_id("a")).id == "a"
    assert asyncio.run(repo.get_by_id("missing")) is None


def test_live_deals_follow_changes():
    changes = Subject()
    live = LiveDeals(StaticRepository([_deal("a")]))
    snapshots = []
    live.snapshots.subscribe(snapshots.append)
    assert live.loading

    asyncio.run(live.start(changes))
    assert not live.loading
    assert [d.id for d in live.deals] == ["a"]

    changes.on_next(DealChange(DealChangeType.INSERT, new=_deal("b")))
    changes.on_next(DealChange(DealChangeType.DELETE, old=_deal("a")))
    assert [d.id for d in live.deals] == ["b"]

    live.dispose()
    changes.on_next(DealChange(DealChangeType.INSERT, new=_deal("c")))
    assert [d.id for d in live.deals] == ["b"]
    assert [[d.id for d in s] for s in snapshots] == [[], ["a"], ["a", "b"], ["b"]]


def test_live_deals_logs_failed_fetch():
    received = []
    logcomp = NamedLogComp("deals")
    logcomp.set_super(received.append)
    changes = Subject()
    live = LiveDeals(BrokenRepository(), logcomp)

    asyncio.run(live.start(changes))
    assert live.deals == []
    assert not live.loading

    (entry,) = received
    assert entry.level is LogLevel.ERROR
    assert entry.message == "Failed to fetch deals"
    assert entry.context["error_name"] == "ConnectionError"

    changes.on_next(DealChange(DealChangeType.INSERT, new=_deal("late")))
    assert [d.id for d in live.deals] == ["late"]


def test_refresh_single_deal():
    repo = StaticRepository([_deal("a"), _deal("b")])
    live = LiveDeals(repo)
    asyncio.run(live.start())

    repo.deals = [_deal("a", title="Wind park"), _deal("c")]
    assert asyncio.run(live.refresh("a")).title == "Wind park"
    asyncio.run(live.refresh("c"))
    assert asyncio.run(live.refresh("b")) is None

    assert [(d.id, d.title) for d in live.deals] == [("a", "Wind park"), ("c", "Solar farm")]


def test_refresh_failure_is_logged():
    class FlakyRepository(StaticRepository):
        async def get_by_id(self, deal_id):
            raise TimeoutError("listing slow")

    received = []
    logcomp = NamedLogComp("deals")
    logcomp.set_super(received.append)
    live = LiveDeals(FlakyRepository([_deal("a")]), logcomp)
    asyncio.run(live.start())

    assert asyncio.run(live.refresh("a")) is None
    assert [d.id for d in live.deals] == ["a"]
    (entry,) = received
    assert entry.message == "Failed to fetch deal"
    assert entry.context == {"deal_id": "a", "error_name": "TimeoutError"}
