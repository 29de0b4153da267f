"""
Append-Only Layout Checker.

A namespace's field layout may only grow: every field of the accepted layout
must keep its position, type tag, slot and intra-slot offset in the candidate.
"""

import hashlib
import logging
from typing import Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from facade.core.exceptions import LayoutIncompatibleError

logger = logging.getLogger(__name__)


class LayoutField(BaseModel):
    """One field of a namespace layout. `label` is informational only."""

    model_config = ConfigDict(frozen=True)

    type_tag: str
    slot: int = Field(ge=0)
    offset: int = Field(default=0, ge=0)
    label: Optional[str] = None


# attribute name reported in errors -> model field
COMPARED_ATTRIBUTES = (("type", "type_tag"), ("slot", "slot"), ("offset", "offset"))


def check_append_only(
    namespace_id: str,
    old: Sequence[LayoutField],
    new: Sequence[LayoutField],
) -> None:
    """
    Verify `new` is `old` plus zero or more trailing fields.

    Raises:
        LayoutIncompatibleError: naming the first offending field index and the
            mismatched attribute ("type", "slot", "offset", or "length" when
            `new` drops trailing fields)
    """
    for index, before in enumerate(old):
        if index >= len(new):
            raise LayoutIncompatibleError(
                namespace_id,
                index,
                "length",
                {"old_length": len(old), "new_length": len(new)},
            )
        after = new[index]
        for attribute, field_name in COMPARED_ATTRIBUTES:
            if getattr(before, field_name) != getattr(after, field_name):
                raise LayoutIncompatibleError(
                    namespace_id,
                    index,
                    attribute,
                    {"old": getattr(before, field_name), "new": getattr(after, field_name)},
                )

    logger.debug(f"Layout {namespace_id}: {len(old)} kept, {len(new) - len(old)} appended")


def layout_hash(fields: Sequence[LayoutField]) -> str:
    """Order-sensitive digest of a layout, for cheap equality checks."""
    h = hashlib.sha256()
    for field in fields:
        h.update(f"{field.type_tag}|{field.slot}|{field.offset}".encode("utf-8"))
        h.update(b"\x00")
    return "0x" + h.hexdigest()


def check_layouts(
    pairs: Mapping[str, tuple[Sequence[LayoutField], Sequence[LayoutField]]],
    append_only: bool = True,
) -> None:
    """
    Check (accepted, candidate) layouts for every namespace, in id order.

    A registry policy with append_only disabled skips the check.
    """
    if not append_only:
        logger.warning(f"Append-only layout policy disabled; {len(pairs)} layout(s) not checked")
        return
    for namespace_id in sorted(pairs):
        old, new = pairs[namespace_id]
        if layout_hash(old) == layout_hash(new):
            continue
        check_append_only(namespace_id, old, new)
