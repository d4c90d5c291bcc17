from __future__ import annotations

import itertools
import random

from ..errors import DuplicateName, ValidationFailed
from ..models import Group

MAX_CODE_NAME_LENGTH = 30

_ADJECTIVES = (
    "Jolly", "Merry", "Frosty", "Twinkly", "Snowy", "Cozy",
    "Sparkly", "Festive", "Sneaky", "Glittery", "Cheery", "Rosy",
)
_NOUNS = (
    "Reindeer", "Snowman", "Elf", "Penguin", "Gingerbread", "Candy Cane",
    "Mistletoe", "Snowflake", "Nutcracker", "Sleigh", "Polar Bear", "Ornament",
)

# 144 names, enough for the largest allowed group
BUILT_IN_CODE_NAMES = tuple(f"{a} {n}" for a, n in itertools.product(_ADJECTIVES, _NOUNS))


def clean_names(names) -> list[str]:
    return [n.strip() for n in (names or []) if n and n.strip()]


def validate_pool(existing: list[str], new: list[str], capacity: int) -> None:
    """
    The pool must hold at least `capacity` distinct names once `new` is added.
    Checked on create and on every settings edit.
    """
    for name in new:
        if len(name) > MAX_CODE_NAME_LENGTH:
            raise ValidationFailed(f"Custom code names cannot exceed {MAX_CODE_NAME_LENGTH} characters.")

    new_keys = [n.lower() for n in new]
    if len(set(new_keys)) != len(new_keys):
        raise ValidationFailed("Custom code names must be unique. Please remove any duplicate names.")
    if set(new_keys) & {n.lower() for n in existing}:
        raise ValidationFailed("Some new custom code names already exist. Please choose different names.")

    total = len(existing) + len(new)
    if total < capacity:
        raise ValidationFailed(
            f"You need at least {capacity} custom code names to match the group capacity "
            f"(you have {len(existing)} existing and {len(new)} new, total {total})."
        )


def _pool(group: Group) -> list[str]:
    if group.use_custom_code_names:
        return [c.name for c in group.custom_code_names]
    return list(BUILT_IN_CODE_NAMES)


def resolve_code_name(group: Group, requested: str | None, rng: random.Random | None = None) -> str | None:
    """Code name a new member gets, or None when the group does not use them."""
    if not group.use_code_names:
        return None

    taken = {m.code_name_key for m in group.members if m.code_name_key}

    if group.auto_assign_code_names:
        free = [n for n in _pool(group) if n.lower() not in taken]
        if not free:
            raise DuplicateName("No code names are left in this group's pool.")
        return (rng or random.SystemRandom()).choice(free)

    requested = (requested or "").strip()
    if not requested:
        raise ValidationFailed("A code name is required for this group.")
    if len(requested) > MAX_CODE_NAME_LENGTH:
        raise ValidationFailed(f"Code name cannot exceed {MAX_CODE_NAME_LENGTH} characters.")
    if group.use_custom_code_names:
        pool = {n.lower(): n for n in _pool(group)}
        if requested.lower() not in pool:
            raise ValidationFailed("Please pick one of the group's code names.")
        requested = pool[requested.lower()]
    if requested.lower() in taken:
        raise DuplicateName("That code name is already taken in this group.")
    return requested
