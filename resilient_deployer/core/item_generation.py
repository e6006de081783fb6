"""Helpers for building batch item lists."""

from __future__ import annotations

from typing import TypedDict

from resilient_deployer.core.errors import BatchValidationError
from resilient_deployer.models.batch import MAX_BATCH_SIZE, BatchItem


class AdminAssignment(TypedDict, total=False):
    admin: str
    recipient: str


def generate_items(
    count: int,
    name_prefix: str,
    symbol_prefix: str,
    *,
    first_number: int = 1,
    image: str | None = None,
    description: str | None = None,
    token_admin: str | None = None,
    reward_recipient: str | None = None,
) -> list[BatchItem]:
    """Numbered items: ``"<name_prefix> 1"`` / ``"<symbol_prefix>1"`` and so on."""
    if count < 1 or count > MAX_BATCH_SIZE:
        msg = f"count must be between 1 and {MAX_BATCH_SIZE}"
        raise BatchValidationError(msg, context={"count": count})

    return [
        BatchItem(
            name=f"{name_prefix} {number}",
            symbol=f"{symbol_prefix}{number}",
            image=image,
            description=description,
            token_admin=token_admin,
            reward_recipient=reward_recipient,
        )
        for number in range(first_number, first_number + count)
    ]


def generate_items_with_admins(configs: list[dict[str, str]]) -> list[BatchItem]:
    """Items with per-item ``admin`` and ``recipient`` keys; recipient defaults to admin."""
    return [
        BatchItem(
            id=f"token-{i}",
            name=config["name"],
            symbol=config["symbol"],
            image=config.get("image"),
            description=config.get("description"),
            token_admin=config.get("admin"),
            reward_recipient=config.get("recipient") or config.get("admin"),
        )
        for i, config in enumerate(configs)
    ]


def apply_admin_to_items(
    items: list[BatchItem],
    admin: str,
    recipient: str | None = None,
) -> list[BatchItem]:
    """Fill in admin and recipient where items leave them unset."""
    return [
        item.model_copy(
            update={
                "token_admin": item.token_admin or admin,
                "reward_recipient": item.reward_recipient or recipient or admin,
            }
        )
        for item in items
    ]


def apply_admins_by_index(
    items: list[BatchItem],
    assignments: dict[int, AdminAssignment],
) -> list[BatchItem]:
    """Override admin and recipient for the items at the given positions."""
    updated: list[BatchItem] = []
    for i, item in enumerate(items):
        assignment = assignments.get(i)
        if assignment and assignment.get("admin"):
            admin = assignment["admin"]
            item = item.model_copy(
                update={
                    "token_admin": admin,
                    "reward_recipient": assignment.get("recipient") or admin,
                }
            )
        updated.append(item)
    return updated
