"""Reward allocation normalization and validation.

Pure functions. Allocations are percentages and a normalized list sums to
exactly 100 whenever it has an entry that can absorb the rounding.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from resilient_deployer.core.errors import AllocationError
from resilient_deployer.models.recipient import NormalizedRecipient, RewardRecipient

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
TOTAL_ALLOCATION = 100
ALLOCATION_TOLERANCE = 0.01


@dataclass(frozen=True)
class AllocationValidation:
    """Outcome of validate_recipients. Never raised, callers decide what to do."""

    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def message(self) -> str:
        return ", ".join(self.errors)


def is_valid_address(address: str) -> bool:
    """Check for a 0x-prefixed 20-byte hex address."""
    return bool(ADDRESS_PATTERN.match(address))


def normalize_recipients(
    recipients: list[RewardRecipient],
    default_recipient: str | None = None,
) -> list[NormalizedRecipient]:
    """Resolve every recipient to an allocation so the list sums to 100.

    Explicit allocations are kept. Recipients without one share the
    remainder equally, extra units going to the earliest of them. If the
    total is still short and a default recipient is given, the shortfall is
    added to it (appending it when it is not already listed).

    Never raises: explicit shares above 100, or a shortfall with nobody to
    absorb it, come back as computed so validate_recipients can report them.
    """
    if not recipients:
        if default_recipient:
            return [NormalizedRecipient(address=default_recipient, allocation=TOTAL_ALLOCATION)]
        return []

    explicit_total = sum(
        r.explicit_share for r in recipients if r.explicit_share is not None
    )
    implicit_positions = [i for i, r in enumerate(recipients) if r.explicit_share is None]

    shares: list[int | float] = [
        r.explicit_share if r.explicit_share is not None else 0 for r in recipients
    ]
    if implicit_positions:
        remaining = max(0, TOTAL_ALLOCATION - explicit_total)
        per_recipient = int(remaining // len(implicit_positions))
        leftover = remaining - per_recipient * len(implicit_positions)
        whole_units = int(leftover)
        for offset, position in enumerate(implicit_positions):
            shares[position] = per_recipient + (1 if offset < whole_units else 0)
        # fractional explicit shares leave a sub-unit rest; the first implicit entry takes it
        fraction = leftover - whole_units
        if fraction:
            shares[implicit_positions[0]] += fraction

    normalized = [
        NormalizedRecipient(address=r.address, allocation=share)
        for r, share in zip(recipients, shares, strict=True)
    ]

    current_total = sum(shares)
    if current_total < TOTAL_ALLOCATION and default_recipient:
        shortfall = TOTAL_ALLOCATION - current_total
        target = default_recipient.lower()
        for i, recipient in enumerate(normalized):
            if recipient.address.lower() == target:
                normalized[i] = NormalizedRecipient(
                    address=recipient.address,
                    allocation=recipient.allocation + shortfall,
                )
                break
        else:
            normalized.append(
                NormalizedRecipient(address=default_recipient, allocation=shortfall)
            )

    return normalized


def validate_recipients(recipients: list[NormalizedRecipient]) -> AllocationValidation:
    """Check addresses, allocation bounds, the 100 total and duplicates."""
    if not recipients:
        return AllocationValidation()

    errors: list[str] = []
    total = 0.0

    for i, recipient in enumerate(recipients):
        prefix = f"recipients[{i}]"
        if not is_valid_address(recipient.address):
            errors.append(f"{prefix}.address: invalid address {recipient.address!r}")
        allocation = recipient.allocation
        if isinstance(allocation, bool) or not isinstance(allocation, (int, float)):
            errors.append(f"{prefix}.allocation must be a number")
        elif allocation < 0 or allocation > TOTAL_ALLOCATION:
            errors.append(f"{prefix}.allocation must be between 0 and 100")
        else:
            total += allocation

    if abs(total - TOTAL_ALLOCATION) > ALLOCATION_TOLERANCE:
        errors.append(f"Total allocation must equal 100%, got {total:g}%")

    addresses = [r.address.lower() for r in recipients]
    if len(addresses) != len(set(addresses)):
        errors.append("Duplicate recipient addresses are not allowed")

    return AllocationValidation(errors=errors)


def normalize_or_raise(
    recipients: list[RewardRecipient],
    default_recipient: str | None = None,
) -> list[NormalizedRecipient]:
    """Normalize and validate, raising AllocationError on any problem."""
    normalized = normalize_recipients(recipients, default_recipient)
    validation = validate_recipients(normalized)
    if not validation.ok:
        raise AllocationError(
            f"Invalid reward recipients: {validation.message}",
            context={"errors": validation.errors},
        )
    return normalized


def merge_recipients(
    defaults: list[RewardRecipient],
    overrides: list[RewardRecipient],
) -> list[RewardRecipient]:
    """Combine template defaults with item overrides.

    Overrides come first; defaults are appended unless their address is
    already overridden.
    """
    if not overrides:
        return list(defaults)
    if not defaults:
        return list(overrides)
    overridden = {r.address.lower() for r in overrides}
    return [*overrides, *(r for r in defaults if r.address.lower() not in overridden)]


def calculate_token_amounts(
    recipients: list[NormalizedRecipient],
    token_supply: int,
) -> list[tuple[str, int]]:
    """Integer token amount per recipient for a given supply (base units)."""
    return [
        (r.address, token_supply * int(round(r.allocation * 100)) // (TOTAL_ALLOCATION * 100))
        for r in recipients
    ]
