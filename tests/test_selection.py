"""
Unit tests for holder selection.

Tests eligibility filtering, fixed-point weights, the weighted pick and the
end-to-end selector against fake collaborators.
"""

import sys
import random
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from distribution.errors import (
    HolderDirectoryError,
    NoEligibleHolders,
    RandomnessTimeout,
    SelectionExhausted,
    SelectionFailure,
)
from distribution.models import Holder, WEIGHT_SCALE
from distribution.selection import build_weights, filter_eligible, pick_weighted
from conftest import OPERATING_ACCOUNT, default_holders


class TestEligibility:
    """Test the eligibility policy"""

    def test_drops_zero_balance_and_largest(self):
        eligible = filter_eligible(default_holders())
        assert [h.address for h in eligible] == ["carol", "alice", "bob"]

    def test_excluded_address_never_eligible(self):
        holders = default_holders() + [Holder(address="treasury", balance=500)]
        eligible = filter_eligible(holders, excluded_address="treasury")
        assert "treasury" not in [h.address for h in eligible]

    def test_excluded_largest_holder_does_not_save_pool(self):
        # Excluding the pool address still drops the next largest holder
        eligible = filter_eligible(default_holders(), excluded_address="pool")
        assert [h.address for h in eligible] == ["alice", "bob"]

    def test_only_pool_raises(self):
        with pytest.raises(NoEligibleHolders):
            filter_eligible([Holder("pool", 10), Holder("empty", 0)])

    def test_no_funded_holders_raises(self):
        with pytest.raises(NoEligibleHolders):
            filter_eligible([Holder("a", 0), Holder("b", 0)])

    def test_empty_holder_set_raises(self):
        with pytest.raises(NoEligibleHolders):
            filter_eligible([])

    def test_ties_keep_directory_order(self):
        holders = [Holder("pool", 100), Holder("x", 5), Holder("y", 5), Holder("z", 5)]
        eligible = filter_eligible(holders)
        assert [h.address for h in eligible] == ["x", "y", "z"]


class TestWeights:
    """Test fixed-point weight computation"""

    def test_weights_sum_to_scale(self):
        weighted = build_weights([Holder("a", 7), Holder("b", 11), Holder("c", 13)])

        assert sum(w.weight for w in weighted) == WEIGHT_SCALE
        assert weighted[-1].cumulative_weight == WEIGHT_SCALE

    def test_weights_proportional_to_balance(self):
        weighted = build_weights(filter_eligible(default_holders()))
        fractions = {w.address: w.weight_fraction for w in weighted}

        assert fractions["carol"] == pytest.approx(0.6)
        assert fractions["alice"] == pytest.approx(0.3)
        assert fractions["bob"] == pytest.approx(0.1)

    def test_cumulative_weights_monotonic(self):
        weighted = build_weights([Holder(f"h{i}", i + 1) for i in range(50)])
        cumulative = [w.cumulative_weight for w in weighted]
        assert cumulative == sorted(cumulative)

    def test_large_balances_stay_exact(self):
        huge = 10**30
        weighted = build_weights([Holder("a", huge), Holder("b", huge + 1)])
        assert sum(w.weight for w in weighted) == WEIGHT_SCALE


class TestWeightedPick:
    """Test the cumulative-weight pick"""

    def setup_method(self):
        self.weighted = build_weights(filter_eligible(default_holders()))

    def test_zero_scalar_picks_first(self):
        assert pick_weighted(self.weighted, 0).address == "carol"

    def test_scalar_on_boundary_picks_lower_holder(self):
        boundary = self.weighted[0].cumulative_weight
        assert pick_weighted(self.weighted, boundary).address == "carol"
        assert pick_weighted(self.weighted, boundary + 1).address == "alice"

    def test_max_scalar_picks_last(self):
        assert pick_weighted(self.weighted, WEIGHT_SCALE - 1).address == "bob"

    def test_same_scalar_same_winner(self):
        scalar = int.from_bytes(bytes([200, 1, 2, 3, 4, 5, 6, 7]), "big")
        winners = {pick_weighted(self.weighted, scalar).address for _ in range(10)}
        assert len(winners) == 1

    def test_exhausted_when_scalar_out_of_range(self):
        with pytest.raises(SelectionExhausted):
            pick_weighted(self.weighted, WEIGHT_SCALE + 1)

    @pytest.mark.slow
    def test_frequency_tracks_weight(self):
        rng = random.Random(1234)
        draws = 20_000
        counts = Counter(
            pick_weighted(self.weighted, rng.getrandbits(64)).address for _ in range(draws)
        )

        assert counts["carol"] / draws == pytest.approx(0.6, abs=0.02)
        assert counts["alice"] / draws == pytest.approx(0.3, abs=0.02)
        assert counts["bob"] / draws == pytest.approx(0.1, abs=0.02)


class TestHolderSelector:
    """Test the selector end to end"""

    @pytest.mark.asyncio
    async def test_select_records_provenance(self, selector, randomness_service):
        result = await selector.select()

        assert result.winner.address == "carol"
        assert result.eligible_count == 3
        assert result.provenance.seed == "seed-1"
        assert result.provenance.raw_bytes == bytes(range(64))
        assert randomness_service.submitted == [OPERATING_ACCOUNT]

    @pytest.mark.asyncio
    async def test_high_randomness_picks_smallest(self, selector, randomness_service):
        randomness_service.randomness = bytes([255] * 32)
        result = await selector.select()
        assert result.winner.address == "bob"

    @pytest.mark.asyncio
    async def test_directory_queried_every_call(self, selector, directory):
        await selector.select()
        await selector.select()
        assert directory.calls == 2

    @pytest.mark.asyncio
    async def test_directory_error_wrapped(self, selector, directory):
        directory.fail = RuntimeError("rpc down")

        with pytest.raises(HolderDirectoryError):
            await selector.select()

    @pytest.mark.asyncio
    async def test_no_eligible_skips_randomness(self, selector, directory, randomness_service):
        directory.holders = [Holder("pool", 10)]

        with pytest.raises(NoEligibleHolders):
            await selector.select()
        assert randomness_service.submitted == []

    @pytest.mark.asyncio
    async def test_randomness_timeout_is_selection_failure(self, selector, randomness_service):
        randomness_service.never_fulfill = True

        with pytest.raises(SelectionFailure) as exc_info:
            await selector.select()
        assert isinstance(exc_info.value, RandomnessTimeout)
