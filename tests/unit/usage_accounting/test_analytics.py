"""
Unit Tests for Usage Analytics

Tests the pure aggregation functions over usage records.
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from context_budget.usage_accounting import (
    AgentCostMetrics,
    GroupBy,
    TimeRange,
    UsageGroupKey,
    aggregate_metrics,
    calculate_savings,
)

DAY_ONE = datetime(2025, 3, 1, 10, 0, tzinfo=UTC)
DAY_TWO = DAY_ONE + timedelta(days=1)


def _metric(
    agent_id: str,
    timestamp: datetime,
    saved: int = 100,
    strategy: str = "History pruning",
) -> AgentCostMetrics:
    original = 1000
    optimized = original - saved
    return AgentCostMetrics(
        agent_id=agent_id,
        conversation_id=f"{agent_id}-conv",
        timestamp=timestamp,
        original_prompt_tokens=original,
        optimized_prompt_tokens=optimized,
        tokens_saved=saved,
        optimization_percentage=saved / original * 100.0,
        completion_tokens=50,
        total_tokens=optimized + 50,
        estimated_cost=0.01,
        cost_saved=0.002 if saved else 0.0,
        model="gpt-4o",
        optimization_strategy=strategy,
        was_optimized=saved > 0,
    )


@pytest.fixture
def records():
    return [
        _metric("planner", DAY_ONE),
        _metric("planner", DAY_ONE + timedelta(hours=1), saved=0, strategy="None - within token limits"),
        _metric("planner", DAY_TWO, saved=300, strategy="Retrieval context reduction"),
        _metric("researcher", DAY_ONE, saved=200),
    ]


class TestAggregateMetrics:
    """Tests for aggregate_metrics."""

    def test_empty_is_zeroed(self):
        metrics = aggregate_metrics([])

        assert metrics.total_prompts_processed == 0
        assert metrics.agent_stats == {}
        assert metrics.get_optimization_roi() == 0.0
        assert metrics.period_start is None

    def test_totals(self, records):
        metrics = aggregate_metrics(records)

        assert metrics.total_prompts_processed == 4
        assert metrics.prompts_optimized == 3
        assert metrics.total_tokens_processed == 4000
        assert metrics.total_tokens_saved == 600
        assert metrics.total_tokens_after_optimization == 3400
        assert metrics.total_completion_tokens == 200
        assert metrics.average_optimization_percentage == pytest.approx(15.0)
        assert metrics.most_common_strategy == "History pruning"
        assert metrics.period_start == DAY_ONE
        assert metrics.period_end == DAY_TWO

    def test_group_by_agent(self, records):
        metrics = aggregate_metrics(records, group_by=GroupBy.AGENT)

        planner = metrics.agent_stats["planner"]
        assert planner.operation_count == 3
        assert planner.optimized_operation_count == 2
        assert planner.tokens_saved == 400
        assert planner.optimization_rate == pytest.approx(200 / 3)
        assert metrics.agent_stats["researcher"].tokens_saved == 200
        assert metrics.daily_usage == {}

    def test_group_by_day(self, records):
        metrics = aggregate_metrics(records, group_by=GroupBy.DAY)

        assert set(metrics.daily_usage) == {
            UsageGroupKey("planner", DAY_ONE.date()),
            UsageGroupKey("planner", DAY_TWO.date()),
            UsageGroupKey("researcher", DAY_ONE.date()),
        }
        day_one = metrics.daily_usage[UsageGroupKey("planner", DAY_ONE.date())]
        assert day_one.operation_count == 2
        assert day_one.total_tokens_saved == 100
        assert day_one.total_tokens_used == 900 + 50 + 1000 + 50
        assert metrics.agent_stats == {}

    def test_day_buckets_use_utc(self):
        """A record late on March 1st in UTC-5 belongs to March 2nd UTC."""
        late_evening = datetime(2025, 3, 1, 21, 0, tzinfo=timezone(timedelta(hours=-5)))
        metrics = aggregate_metrics([_metric("planner", late_evening)], group_by=GroupBy.DAY)

        (key,) = metrics.daily_usage
        assert key.date == datetime(2025, 3, 2).date()

    def test_time_range_filter(self, records):
        metrics = aggregate_metrics(records, TimeRange(start=DAY_TWO - timedelta(hours=1)))

        assert metrics.total_prompts_processed == 1
        assert metrics.total_tokens_saved == 300

    def test_end_is_exclusive(self, records):
        metrics = aggregate_metrics(records, TimeRange(end=DAY_ONE))
        assert metrics.total_prompts_processed == 0

    def test_no_double_counting(self, records):
        first = aggregate_metrics(records)
        second = aggregate_metrics(records)

        assert first.to_dict() == second.to_dict()
        assert len(records) == 4

    def test_to_dict_serializable(self, records):
        data = aggregate_metrics(records, group_by=GroupBy.DAY).to_dict()

        assert data["group_by"] == "day"
        assert isinstance(data["daily_usage"], list)
        assert data["period_start"] == DAY_ONE.isoformat()


class TestCalculateSavings:
    """Tests for calculate_savings."""

    def test_breakdowns(self, records):
        savings = calculate_savings(records)

        assert savings["operations"] == 4
        assert savings["tokens_saved"] == 600
        assert savings["cost_incurred"] == pytest.approx(0.04)
        assert savings["cost_saved"] == pytest.approx(0.006)
        assert savings["roi_percentage"] == pytest.approx(15.0)
        assert savings["by_strategy"]["History pruning"]["count"] == 2
        assert "None - within token limits" not in savings["by_strategy"]
        assert savings["by_model"]["gpt-4o"]["count"] == 4

    def test_empty(self):
        savings = calculate_savings([])
        assert savings["roi_percentage"] == 0.0
        assert savings["by_model"] == {}


class TestTimeRange:
    """Tests for TimeRange validation."""

    def test_start_after_end_rejected(self):
        with pytest.raises(ValueError):
            TimeRange(start=DAY_TWO, end=DAY_ONE)

    def test_naive_bounds_assumed_utc(self):
        window = TimeRange(start=datetime(2025, 3, 1))
        assert window.contains(DAY_ONE)
