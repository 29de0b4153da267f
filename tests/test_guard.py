"""
Unit tests for the collision and protection guard.
"""

import itertools

import pytest

from facade.core.exceptions import CollisionError, ProtectedCapabilityError
from facade.core.models import Action, DiffOperation, address
from facade.reconciler.diff import compute_diff
from facade.reconciler.guard import CORE_CAPABILITIES, check_collisions, check_protection


class TestCollisions:
    """No two desired providers may share a capability id."""

    def test_collision_names_capability_and_both_providers(self, provider):
        with pytest.raises(CollisionError) as exc:
            check_collisions([provider("P1", [0x01]), provider("P2", [0x01])])

        assert exc.value.capability == "0x00000001"
        assert (exc.value.provider_a, exc.value.provider_b) == ("P1", "P2")
        assert "0x00000001" in exc.value.message

    def test_collision_independent_of_order(self, provider):
        providers = [
            provider("P3", [0x07]),
            provider("P1", [0x05, 0x09]),
            provider("P2", [0x09, 0x05]),
        ]
        reported = set()
        for ordering in itertools.permutations(providers):
            with pytest.raises(CollisionError) as exc:
                check_collisions(list(ordering))
            reported.add((exc.value.capability, exc.value.provider_a, exc.value.provider_b))

        assert reported == {("0x00000005", "P1", "P2")}

    def test_disjoint_sets_pass(self, provider):
        check_collisions([provider("P1", [0x01, 0x02]), provider("P2", [0x03]), provider("P3", [])])

    def test_structured_artifact_ids_in_message(self, provider):
        with pytest.raises(CollisionError) as exc:
            check_collisions([
                provider("src/facets/B.sol:B", [0xAA]),
                provider("src/facets/A.sol:A", [0xAA]),
            ])
        assert exc.value.provider_a == "src/facets/A.sol:A"
        assert exc.value.provider_b == "src/facets/B.sol:B"


class TestProtection:
    """Core capabilities are never replaced or removed without an override."""

    @pytest.mark.parametrize("action", [Action.REPLACE, Action.REMOVE])
    def test_core_mutation_rejected(self, action, aid):
        op = DiffOperation(
            action=action,
            capability="0x1f931c1c",
            artifact_id=aid("Cut") if action == Action.REPLACE else None,
            previous_provider=address(0xAAA),
        )
        with pytest.raises(ProtectedCapabilityError) as exc:
            check_protection([op])
        assert exc.value.capability == "0x1f931c1c"
        assert exc.value.context["name"] == "diamondCut"

    def test_add_always_allowed(self, aid):
        ops = [DiffOperation(action=Action.ADD, capability=c, artifact_id=aid("Core")) for c in CORE_CAPABILITIES]
        check_protection(ops)

    def test_override_flag(self, aid):
        op = DiffOperation(action=Action.REMOVE, capability="0x8da5cb5b", previous_provider=address(1))
        check_protection([op], allow_core_mutation=True)

    def test_custom_protected_set(self, aid):
        op = DiffOperation(action=Action.REMOVE, capability="0x12345678", previous_provider=address(1))
        check_protection([op])
        with pytest.raises(ProtectedCapabilityError):
            check_protection([op], protected={"0x12345678"})

    def test_no_desired_state_mutates_core_unguarded(self, provider, aid):
        current = {capability: address(0xC0DE) for capability in CORE_CAPABILITIES}
        desired_states = [
            [],
            [provider("Other", [0x01])],
            [provider("Core", sorted(CORE_CAPABILITIES))],
            [provider("Core", sorted(CORE_CAPABILITIES)[:3])],
        ]
        for desired in desired_states:
            ops = compute_diff(current, desired, {aid("Core"): address(0xBEEF)})
            mutating = [op for op in ops if op.action != Action.ADD]
            assert mutating
            with pytest.raises(ProtectedCapabilityError):
                check_protection(ops)

    def test_reports_lowest_offending_id(self):
        ops = [
            DiffOperation(action=Action.REMOVE, capability=c, previous_provider=address(1))
            for c in ("0xf2fde38b", "0x01ffc9a7", "0x8da5cb5b")
        ]
        with pytest.raises(ProtectedCapabilityError) as exc:
            check_protection(ops)
        assert exc.value.capability == "0x01ffc9a7"
