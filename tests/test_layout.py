"""
Unit tests for the append-only layout checker.
"""

import pytest

from facade.core.exceptions import LayoutIncompatibleError
from facade.reconciler.layout import LayoutField, check_append_only, check_layouts, layout_hash


@pytest.fixture
def accepted():
    return [
        LayoutField(type_tag="address", slot=0, offset=0, label="owner"),
        LayoutField(type_tag="uint96", slot=0, offset=20, label="nonce"),
        LayoutField(type_tag="mapping", slot=1, offset=0, label="balances"),
    ]


def test_strict_extension_passes(accepted):
    extended = accepted + [
        LayoutField(type_tag="uint256", slot=2, offset=0),
        LayoutField(type_tag="bool", slot=3, offset=0),
    ]
    check_append_only("app.v1", accepted, extended)


def test_identical_passes(accepted):
    check_append_only("app.v1", accepted, list(accepted))


def test_label_change_is_ignored(accepted):
    renamed = [accepted[0], accepted[1].model_copy(update={"label": "counter"}), accepted[2]]
    check_append_only("app.v1", accepted, renamed)


@pytest.mark.parametrize(
    "index, change, attribute",
    [
        (0, {"type_tag": "uint160"}, "type"),
        (1, {"slot": 5}, "slot"),
        (1, {"offset": 0}, "offset"),
        (2, {"type_tag": "uint256", "slot": 7}, "type"),
    ],
)
def test_mutation_names_index_and_attribute(accepted, index, change, attribute):
    mutated = list(accepted)
    mutated[index] = accepted[index].model_copy(update=change)

    with pytest.raises(LayoutIncompatibleError) as exc:
        check_append_only("app.v1", accepted, mutated + [LayoutField(type_tag="bool", slot=9)])

    assert exc.value.namespace_id == "app.v1"
    assert exc.value.field_index == index
    assert exc.value.attribute == attribute


def test_removed_field_fails_on_length(accepted):
    with pytest.raises(LayoutIncompatibleError) as exc:
        check_append_only("app.v1", accepted, accepted[:2])
    assert (exc.value.field_index, exc.value.attribute) == (2, "length")


def test_inserted_field_shifts_and_fails(accepted):
    inserted = [accepted[0], LayoutField(type_tag="bool", slot=0, offset=20)] + accepted[1:]
    with pytest.raises(LayoutIncompatibleError) as exc:
        check_append_only("app.v1", accepted, inserted)
    assert (exc.value.field_index, exc.value.attribute) == (1, "type")


class TestLayoutHash:
    """Order-sensitive layout digest."""

    def test_equal_layouts_equal_hash(self, accepted):
        assert layout_hash(accepted) == layout_hash([f.model_copy() for f in accepted])

    def test_order_matters(self, accepted):
        assert layout_hash(accepted) != layout_hash(list(reversed(accepted)))

    def test_label_not_hashed(self, accepted):
        relabeled = [f.model_copy(update={"label": None}) for f in accepted]
        assert layout_hash(accepted) == layout_hash(relabeled)

    def test_empty_layout(self):
        assert layout_hash([]).startswith("0x")


def test_check_layouts_reports_first_namespace_in_order(accepted):
    broken = [accepted[0].model_copy(update={"slot": 3})] + accepted[1:]
    pairs = {
        "zeta": (accepted, broken),
        "alpha": (accepted, accepted[:1]),
    }
    with pytest.raises(LayoutIncompatibleError) as exc:
        check_layouts(pairs)
    assert exc.value.namespace_id == "alpha"

    check_layouts(pairs, append_only=False)
