"""Display masking for beneficiary account numbers and SWIFT codes."""

from __future__ import annotations


def mask_account_number(account: str | None) -> str:
    if not account:
        return ""
    if len(account) <= 4:
        return "****"
    return f"****{account[-4:]}"


def mask_swift(swift: str | None) -> str:
    if not swift:
        return ""
    if len(swift) <= 4:
        return swift
    if len(swift) <= 8:
        return f"{swift[:4]}****"
    return f"{swift[:4]}****{swift[-2:]}"
