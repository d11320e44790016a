"""Tests for ranking.engine.RankingEngine."""

from __future__ import annotations

import asyncio
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from ranking.config import DEFAULT_CONFIG
from ranking.engine import RankingEngine
from ranking.errors import BatchCancelledError, InvalidInputError, UnknownModeError
from ranking.models import (
    CreatorReputation,
    EngagementStats,
    Impact,
    InsightCategory,
    InsightKind,
    RankingMode,
    RecentVote,
    UserProfile,
    VoteAggregate,
)
from ranking.stores import (
    DataSources,
    InMemoryContentStore,
    InMemoryEngagementStore,
    InMemoryReputationStore,
    InMemoryVoteStore,
)

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class CountingVoteStore:
    """Vote store that counts lookups and can be made slow."""

    def __init__(self, aggregate: VoteAggregate | None = None, delay: float = 0.0) -> None:
        self.calls = 0
        self._aggregate = aggregate or VoteAggregate()
        self._delay = delay
        self._lock = threading.Lock()

    def aggregate(self, content_id: str) -> VoteAggregate:
        with self._lock:
            self.calls += 1
        time.sleep(self._delay)
        return self._aggregate


class FailingStore:
    def aggregate(self, content_id):
        raise ConnectionError("votes backend unreachable")

    def stats(self, content_id):
        raise TimeoutError("engagement backend timed out")

    def lookup(self, creator_id):
        raise ConnectionError("reputation backend unreachable")


class CancelAfter:
    """Cancel signal that trips after *n* checks."""

    def __init__(self, n: int) -> None:
        self._remaining = n

    def is_set(self) -> bool:
        self._remaining -= 1
        return self._remaining < 0


def _insight_keys(result):
    return {(i.kind, i.category, i.impact) for i in result.insights}


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_heavy_burn_item(self, plain_engine, item_a) -> None:
        result = plain_engine.score(item_a, mode=RankingMode.TOP)
        assert result.composite_score >= 500
        # ln(S + 1) * 20 saturates well before S = 500
        assert result.normalized_score == pytest.approx(100.0)
        assert (InsightKind.POSITIVE, InsightCategory.VOTES, Impact.HIGH) in _insight_keys(result)

    def test_quality_floor_in_new_mode(self, engine, make_item) -> None:
        b = make_item("B", quality_score=0.25)
        c = make_item("C", quality_score=0.35)
        ranked = engine.rank([b, c], mode=RankingMode.NEW)
        assert [r.item.content_id for r in ranked] == ["C"]

    def test_controversy_term_only_in_controversial_mode(self, plain_engine, item_d) -> None:
        hot = plain_engine.score(item_d, mode=RankingMode.HOT)
        controversial = plain_engine.score(item_d, mode=RankingMode.CONTROVERSIAL)

        expected_c = (96 / 98) * math.log(99)
        assert controversial.components.controversy == pytest.approx(expected_c)
        c = controversial.components
        base = (0.5 * c.vote + 0.3 * c.engagement + 0.2 * c.time + 0.1 * c.gaming) * c.reputation
        assert controversial.composite_score == pytest.approx(base + 0.4 * expected_c)
        h = hot.components
        hot_base = (0.2 * h.vote + 0.4 * h.engagement + 0.4 * h.time + 0.1 * h.gaming) * h.reputation
        assert hot.composite_score == pytest.approx(hot_base)

    def test_split_vote_ranks_higher_when_controversial(self, plain_engine, make_item) -> None:
        item = make_item("D2", hours_old=48, votes=VoteAggregate(upvotes=50, downvotes=48))
        hot = plain_engine.score(item, mode=RankingMode.HOT)
        controversial = plain_engine.score(item, mode=RankingMode.CONTROVERSIAL)
        assert controversial.composite_score > 2 * hot.composite_score

    def test_concurrent_scores_coalesce(self, clock, make_item) -> None:
        votes = CountingVoteStore(VoteAggregate(upvotes=50, downvotes=48), delay=0.2)
        engine = RankingEngine(clock=clock, sources=DataSources(votes=votes))
        item = make_item("D", hours_old=48, votes=None, engagement=EngagementStats(comments=200))
        barrier = threading.Barrier(16)

        def call():
            barrier.wait()
            return engine.score(item, mode=RankingMode.HOT)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: call(), range(16)))

        assert votes.calls == 1
        assert all(r == results[0] for r in results)
        snap = engine.metrics()
        assert snap.computations == 1
        assert snap.cache_hits + snap.cache_misses == 16
        assert snap.cache_misses == 1

    def test_personal_feed_filters_by_game(self, engine, item_a, make_item) -> None:
        e = make_item("E", game="fortnite")
        profile = UserProfile("u1", preferred_games={"valorant"})
        ranked = engine.recommend_personal(profile, [item_a, e])
        assert [r.item.content_id for r in ranked] == ["A"]

    def test_similar_items(self, engine, make_item) -> None:
        base = make_item("base", tags=frozenset({"clutch", "ace"}))
        f = make_item("F", category="gameplay", tags=frozenset({"clutch"}))
        g = make_item("G", game="fortnite", platform="xbox", category="tutorials")
        results = engine.recommend_similar(base, [f, g])
        assert [(i.content_id, s) for i, s in results] == [("F", pytest.approx(0.7))]


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestProperties:
    def test_upvotes_increase_top_score_within_one_velocity_and_token_band(
        self, plain_engine, make_item
    ) -> None:
        # no tokens and at most 33 votes over 48h: neither step can change
        scores = [
            plain_engine.score(
                make_item(f"u{u}", hours_old=48, votes=VoteAggregate(upvotes=u, downvotes=4)),
                mode=RankingMode.TOP,
            ).composite_score
            for u in range(3, 30)
        ]
        assert all(b > a for a, b in zip(scores, scores[1:]))

    def test_downvotes_never_increase_top_score_below_velocity_threshold(
        self, plain_engine, make_item
    ) -> None:
        scores = [
            plain_engine.score(
                make_item(f"d{d}", hours_old=48, votes=VoteAggregate(upvotes=20, downvotes=d)),
                mode=RankingMode.TOP,
            ).composite_score
            for d in range(0, 30)
        ]
        assert all(b <= a for a, b in zip(scores, scores[1:]))

    def test_downvote_crossing_velocity_threshold_raises_top_score(
        self, plain_engine, make_item
    ) -> None:
        before = plain_engine.score(
            make_item("v0", hours_old=2, votes=VoteAggregate(upvotes=10)), mode="top"
        )
        after = plain_engine.score(
            make_item("v1", hours_old=2, votes=VoteAggregate(upvotes=10, downvotes=1)), mode="top"
        )
        assert after.components.vote == pytest.approx(9.5 * 1.3)
        assert after.composite_score > before.composite_score

    def test_upvote_dropping_below_token_step_lowers_top_score(
        self, plain_engine, make_item
    ) -> None:
        ten = VoteAggregate(upvotes=10, total_tokens_burned=20)
        eleven = VoteAggregate(upvotes=11, total_tokens_burned=20)
        before = plain_engine.score(make_item("t10", hours_old=48, votes=ten), mode="top")
        after = plain_engine.score(make_item("t11", hours_old=48, votes=eleven), mode="top")
        assert before.components.vote == pytest.approx(15.0)
        assert after.components.vote == pytest.approx(11.0)
        assert after.composite_score < before.composite_score

    def test_newer_items_score_higher_in_time_modes(self, plain_engine, make_item) -> None:
        for mode in (RankingMode.TRENDING, RankingMode.HOT):
            older = plain_engine.score(make_item("old", hours_old=10), mode=mode)
            newer = plain_engine.score(make_item("new", hours_old=5), mode=mode)
            assert newer.components.time > older.components.time

    def test_normalized_bounds(self, engine, item_a, item_d, make_item) -> None:
        for item in (item_a, item_d, make_item("quiet", hours_old=400)):
            for mode in RankingMode:
                n = engine.score(item, mode=mode).normalized_score
                assert 0.0 <= n <= 100.0

    def test_repeated_score_is_cached(self, engine, item_a) -> None:
        first = engine.score(item_a)
        second = engine.score(item_a)
        assert first is second
        assert engine.metrics().computations == 1

    def test_controversy_guard(self, plain_engine, make_item) -> None:
        item = make_item("few", votes=VoteAggregate(upvotes=2, downvotes=2))
        assert plain_engine.score(item, mode="controversial").components.controversy == 0.0

    def test_rank_is_reproducible(self, plain_engine, make_item) -> None:
        # every item has no votes and sits on the time floor, so composites tie
        items = [make_item(f"t{i}", hours_old=100 + (i % 3)) for i in range(9)]
        first = [r.item.content_id for r in plain_engine.rank(items, mode="trending")]
        second = [r.item.content_id for r in plain_engine.rank(list(reversed(items)), mode="trending")]
        assert first == second


# ---------------------------------------------------------------------------
# Score entry point
# ---------------------------------------------------------------------------


class TestScore:
    def test_unknown_mode(self, engine, make_item) -> None:
        with pytest.raises(UnknownModeError):
            engine.score(make_item(), mode="spicy")

    def test_future_item_rejected(self, engine, make_item) -> None:
        item = make_item(created_at=NOW + timedelta(hours=1))
        with pytest.raises(InvalidInputError):
            engine.score(item)

    def test_embedded_invalid_engagement_rejected(self, engine, make_item) -> None:
        item = make_item(engagement=EngagementStats(click_through_rate=1.2))
        with pytest.raises(InvalidInputError):
            engine.score(item)
        assert engine.metrics().cache_size == 0

    def test_embedded_vote_window_over_limit_rejected(self, engine, make_item) -> None:
        window = [RecentVote(f"v{i}", NOW) for i in range(300)]
        item = make_item(votes=VoteAggregate(upvotes=300, recent_votes=window))
        with pytest.raises(InvalidInputError):
            engine.score(item)

    def test_ab_group_override(self, engine, make_item) -> None:
        result = engine.score(make_item(), ab_test_group="variant_a")
        assert result.ab_group == "variant_a"

    def test_unknown_ab_group(self, engine, make_item) -> None:
        with pytest.raises(InvalidInputError):
            engine.score(make_item(), ab_test_group="variant_z")

    def test_groups_are_cached_separately(self, engine, make_item) -> None:
        item = make_item(votes=VoteAggregate(upvotes=40))
        a = engine.score(item, mode=RankingMode.TOP, ab_test_group="variant_a")
        b = engine.score(item, mode=RankingMode.TOP, ab_test_group="variant_b")
        assert a.composite_score != b.composite_score
        assert engine.metrics().cache_size == 2

    def test_force_recalculate(self, engine, item_a) -> None:
        engine.score(item_a)
        engine.score(item_a, force_recalculate=True)
        snap = engine.metrics()
        assert snap.computations == 2
        assert snap.cache_misses == 2

    def test_new_bucket_recomputes(self, engine, clock, item_a) -> None:
        first = engine.score(item_a)
        clock.advance(299)
        assert engine.score(item_a) is first
        clock.advance(1)
        assert engine.score(item_a) is not first
        assert engine.metrics().computations == 2

    def test_ttl_expiry_within_bucket(self, clock, item_a) -> None:
        engine = RankingEngine(config=DEFAULT_CONFIG.with_cache(ttl_seconds=60), clock=clock)
        first = engine.score(item_a)
        clock.advance(61)
        assert engine.score(item_a) is not first


class TestStoreResolution:
    def test_resolves_by_id(self, clock, item_a) -> None:
        engine = RankingEngine(clock=clock, sources=DataSources(content=InMemoryContentStore([item_a])))
        assert engine.score("A").content_id == "A"

    def test_unknown_id(self, clock) -> None:
        engine = RankingEngine(clock=clock, sources=DataSources(content=InMemoryContentStore()))
        with pytest.raises(InvalidInputError):
            engine.score("missing")

    def test_id_without_content_store(self, engine) -> None:
        with pytest.raises(InvalidInputError):
            engine.score("A")

    def test_stores_fill_missing_views(self, clock, make_item) -> None:
        votes = InMemoryVoteStore()
        votes.put("x", VoteAggregate(upvotes=7))
        sources = DataSources(
            votes=votes,
            engagement=InMemoryEngagementStore({"x": EngagementStats(views=40, likes=4)}),
            reputation=InMemoryReputationStore({"creator-1": CreatorReputation(gamerscore=2000)}),
        )
        engine = RankingEngine(clock=clock, sources=sources)
        result = engine.score(make_item("x", votes=None, engagement=None))
        assert result.components.vote == pytest.approx(7.0)
        assert result.components.engagement > 0
        assert result.components.reputation == pytest.approx(1.2)
        assert not [i for i in result.insights if i.kind is InsightKind.WARNING]

    def test_store_failures_degrade_with_warnings(self, clock, caplog, make_item) -> None:
        failing = FailingStore()
        engine = RankingEngine(
            clock=clock,
            sources=DataSources(votes=failing, engagement=failing, reputation=failing),
        )
        with caplog.at_level("WARNING", logger="ranking.engine"):
            result = engine.score(make_item("x", votes=None, engagement=None))

        warnings = {i.category for i in result.insights if i.kind is InsightKind.WARNING}
        assert warnings == {
            InsightCategory.VOTES,
            InsightCategory.ENGAGEMENT,
            InsightCategory.REPUTATION,
        }
        assert result.components.vote == 0.0
        assert result.components.engagement == 0.0
        assert result.components.reputation == 1.0
        assert "votes backend unreachable" in caplog.text

    def test_invalid_store_data_degrades(self, clock, make_item) -> None:
        bad = InMemoryEngagementStore({"x": EngagementStats(views=-3)})
        engine = RankingEngine(clock=clock, sources=DataSources(engagement=bad))
        result = engine.score(make_item("x", engagement=None))
        assert (InsightKind.WARNING, InsightCategory.ENGAGEMENT, Impact.MEDIUM) in _insight_keys(result)

    def test_store_vote_window_over_limit_degrades(self, clock, make_item) -> None:
        window = [RecentVote(f"v{i}", NOW) for i in range(300)]
        votes = MagicMock()
        votes.aggregate.return_value = VoteAggregate(upvotes=300, recent_votes=window)
        engine = RankingEngine(clock=clock, sources=DataSources(votes=votes))
        result = engine.score(make_item("x", votes=None))
        assert result.components.vote == 0.0
        assert (InsightKind.WARNING, InsightCategory.VOTES, Impact.MEDIUM) in _insight_keys(result)

    def test_reputation_looked_up_once_per_miss(self, clock, make_item) -> None:
        reputation = MagicMock()
        reputation.lookup.return_value = CreatorReputation(clan_status="founder")
        engine = RankingEngine(clock=clock, sources=DataSources(reputation=reputation))
        item = make_item("x")
        first = engine.score(item)
        engine.score(item)
        reputation.lookup.assert_called_once_with("creator-1")
        assert first.components.reputation == pytest.approx(1.3)

    def test_embedded_views_skip_stores(self, clock, make_item) -> None:
        votes = CountingVoteStore()
        engine = RankingEngine(clock=clock, sources=DataSources(votes=votes))
        engine.score(make_item("x", votes=VoteAggregate(upvotes=1)))
        assert votes.calls == 0

    def test_failed_build_is_not_cached(self, clock, make_item) -> None:
        store = InMemoryContentStore()
        engine = RankingEngine(clock=clock, sources=DataSources(content=store))
        with pytest.raises(InvalidInputError):
            engine.score("late")
        store.put(make_item("late"))
        assert engine.score("late").content_id == "late"


# ---------------------------------------------------------------------------
# Batch scoring
# ---------------------------------------------------------------------------


class TestBatch:
    def test_preserves_order(self, engine, make_item) -> None:
        items = [make_item(f"b{i}") for i in range(7)]
        results = engine.batch_score(items, batch_size=3)
        assert [r.content_id for r in results] == [f"b{i}" for i in range(7)]

    def test_cancel_returns_prefix(self, engine, make_item) -> None:
        items = [make_item(f"b{i}") for i in range(7)]
        with pytest.raises(BatchCancelledError) as excinfo:
            engine.batch_score(items, batch_size=3, cancel_event=CancelAfter(2))
        assert [r.content_id for r in excinfo.value.partial] == [f"b{i}" for i in range(6)]

    def test_cancel_before_start(self, engine, make_item) -> None:
        event = threading.Event()
        event.set()
        with pytest.raises(BatchCancelledError) as excinfo:
            engine.batch_score([make_item()], cancel_event=event)
        assert excinfo.value.partial == []

    def test_invalid_batch_size(self, engine, make_item) -> None:
        with pytest.raises(InvalidInputError):
            engine.batch_score([make_item()], batch_size=-1)

    def test_empty_batch(self, engine) -> None:
        assert engine.batch_score([]) == []

    def test_async_variant(self, engine, make_item) -> None:
        items = [make_item(f"a{i}") for i in range(5)]
        results = asyncio.run(engine.batch_score_async(items, mode="top", batch_size=2))
        assert [r.content_id for r in results] == [f"a{i}" for i in range(5)]
        assert all(r.mode is RankingMode.TOP for r in results)

    def test_async_cancel(self, engine, make_item) -> None:
        items = [make_item(f"a{i}") for i in range(5)]
        with pytest.raises(BatchCancelledError) as excinfo:
            asyncio.run(
                engine.batch_score_async(items, batch_size=2, cancel_event=CancelAfter(1))
            )
        assert len(excinfo.value.partial) == 2


# ---------------------------------------------------------------------------
# Config, realtime and metrics
# ---------------------------------------------------------------------------


class TestUpdateConfig:
    def test_swaps_config_and_clears_cache(self, engine, item_a) -> None:
        engine.score(item_a)
        new_config = DEFAULT_CONFIG.with_ab_testing(False)
        engine.update_config(new_config)
        assert engine.config is new_config
        assert engine.metrics().cache_size == 0
        engine.score(item_a)
        assert engine.metrics().computations == 2

    def test_rejects_wrong_type(self, engine) -> None:
        with pytest.raises(InvalidInputError):
            engine.update_config({"ab_testing": False})


class TestRealtime:
    def test_only_high_traffic_items_rescored(self, clock, make_item) -> None:
        busy = make_item("busy", engagement=EngagementStats(views=20_000))
        quiet = make_item("quiet", engagement=EngagementStats(views=50))
        engine = RankingEngine(
            clock=clock, sources=DataSources(content=InMemoryContentStore([busy, quiet]))
        )
        scores = engine.realtime_scores(["busy", "quiet", "ghost"])
        assert set(scores) == {"busy"}
        engine.realtime_scores(["busy"])
        assert engine.metrics().computations == 2

    def test_requires_content_store(self, engine) -> None:
        with pytest.raises(InvalidInputError):
            engine.realtime_scores(["x"])


class TestMetrics:
    def test_counts_hits_and_misses(self, engine, item_a, item_d) -> None:
        engine.score(item_a)
        engine.score(item_a)
        engine.score(item_d)
        snap = engine.metrics()
        assert snap.cache_misses == 2
        assert snap.cache_hits == 1
        assert snap.computations == 2
        assert snap.cache_size == 2
        assert snap.last_update == NOW
        assert snap.average_computation_ms >= 0.0

    def test_personal_feed_bypasses_shared_cache(self, engine, item_a) -> None:
        profile = UserProfile("u1", content_type_preferences={"highlights": 2.0})
        engine.recommend_personal(profile, [item_a])
        assert engine.metrics().cache_size == 0


class TestRank:
    def test_filters_by_window(self, engine, make_item) -> None:
        items = [make_item("fresh", hours_old=2), make_item("old", hours_old=30)]
        ranked = engine.rank(items, mode="hot", time_window_hours=24)
        assert [r.item.content_id for r in ranked] == ["fresh"]
        assert ranked[0].ranked_at == NOW

    def test_rank_uses_cache(self, engine, item_a) -> None:
        engine.rank([item_a])
        engine.rank([item_a])
        assert engine.metrics().computations == 1
