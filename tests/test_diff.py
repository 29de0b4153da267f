"""
Unit tests for the capability registry diff.

Tests compute_diff from facade/reconciler/diff.py
"""

import itertools

import pytest

from facade.core.exceptions import InvalidSnapshotError
from facade.core.models import Action, RoutingEntry, ZERO_ADDRESS, address, capability_id
from facade.reconciler.diff import compute_diff, routing_index


AAA = address("0xAAA")
BBB = address("0xBBB")


class TestScenarios:
    """Scenarios from the upgrade walkthroughs."""

    def test_add_to_empty(self, provider, aid):
        ops = compute_diff([], [provider("P1", [0x01])], {aid("P1"): AAA})

        assert len(ops) == 1
        assert ops[0].action == Action.ADD
        assert ops[0].capability == capability_id(0x01)
        assert ops[0].artifact_id == aid("P1")
        assert ops[0].previous_provider is None

    def test_replace_with_unresolved_target(self, provider, aid):
        current = [RoutingEntry(capability=0x01, provider=AAA)]
        ops = compute_diff(current, [provider("P2", [0x01])], {aid("P2"): ZERO_ADDRESS})

        assert [(op.action, op.capability, op.previous_provider) for op in ops] == [
            (Action.REPLACE, "0x00000001", AAA)
        ]
        assert ops[0].artifact_id == aid("P2")

    def test_missing_resolution_counts_as_unresolved(self, provider, aid):
        current = [RoutingEntry(capability=0x01, provider=AAA)]
        ops = compute_diff(current, [provider("P1", [0x01])], {})

        assert [op.action for op in ops] == [Action.REPLACE]

    def test_remove(self, provider, aid):
        current = [
            RoutingEntry(capability=0x01, provider=AAA),
            RoutingEntry(capability=0x02, provider=AAA),
        ]
        ops = compute_diff(current, [provider("P1", [0x01])], {aid("P1"): AAA})

        assert len(ops) == 1
        assert ops[0].action == Action.REMOVE
        assert ops[0].capability == "0x00000002"
        assert ops[0].artifact_id is None
        assert ops[0].previous_provider == AAA

    def test_unchanged_is_empty(self, provider, aid):
        current = {"0x01": AAA, "0x02": AAA}
        ops = compute_diff(current, [provider("P1", [0x01, 0x02])], {aid("P1"): AAA})

        assert ops == []

    def test_moved_to_other_resolved_provider(self, provider, aid):
        current = {"0x01": AAA}
        desired = [provider("P1", []), provider("P2", [0x01])]
        ops = compute_diff(current, desired, {aid("P1"): AAA, aid("P2"): BBB})

        assert [(op.action, str(op.artifact_id)) for op in ops] == [(Action.REPLACE, "P2")]

    def test_empty_capability_provider_accepted(self, provider, aid):
        ops = compute_diff([], [provider("Empty", [])], {aid("Empty"): AAA})
        assert ops == []


class TestDeterminism:
    """Output is independent of input ordering."""

    def test_permutations_give_same_operations(self, provider, aid):
        current = [
            RoutingEntry(capability=0x10, provider=AAA),
            RoutingEntry(capability=0x20, provider=AAA),
            RoutingEntry(capability=0x30, provider=BBB),
        ]
        desired = [
            provider("P1", [0x10, 0x40]),
            provider("P2", [0x20]),
            provider("P3", [0x50, 0x60]),
        ]
        resolutions = {aid("P1"): AAA, aid("P2"): BBB}

        baseline = compute_diff(current, desired, resolutions)
        assert {op.action for op in baseline} == {Action.ADD, Action.REPLACE, Action.REMOVE}

        for cur, des in itertools.product(itertools.permutations(current), itertools.permutations(desired)):
            assert compute_diff(list(cur), list(des), resolutions) == baseline

    def test_canonical_order(self, provider, aid):
        ops = compute_diff({"0x05": AAA}, [provider("P1", [0x09, 0x01, 0x03])], {aid("P1"): AAA})
        assert [(op.capability, op.action) for op in ops] == [
            ("0x00000001", Action.ADD),
            ("0x00000003", Action.ADD),
            ("0x00000005", Action.REMOVE),
            ("0x00000009", Action.ADD),
        ]


class TestRoutingIndex:
    """Snapshot routing table indexing."""

    def test_duplicate_rows_with_different_providers_rejected(self):
        rows = [
            RoutingEntry(capability=0x01, provider=AAA),
            RoutingEntry(capability=0x01, provider=BBB),
        ]
        with pytest.raises(InvalidSnapshotError) as exc:
            routing_index(rows)
        assert "0x00000001" in str(exc.value)

    def test_identical_duplicate_rows_tolerated(self):
        rows = [RoutingEntry(capability=0x01, provider=AAA)] * 2
        assert routing_index(rows) == {"0x00000001": AAA}

    def test_mapping_input_is_normalized(self):
        assert routing_index({"0x1": "0xaaa"}) == {"0x00000001": AAA}

    def test_mapping_keys_colliding_after_normalization_rejected(self):
        with pytest.raises(InvalidSnapshotError):
            routing_index({"0x1": "0xaaa", "0x01": "0xbbb"})
