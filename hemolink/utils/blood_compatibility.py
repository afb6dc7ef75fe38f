"""Red-cell transfusion compatibility rules."""

BLOOD_TYPES: tuple[str, ...] = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")

# recipient -> donor types it can receive from
_COMPATIBLE_DONORS: dict[str, frozenset[str]] = {
    "O-": frozenset({"O-"}),
    "O+": frozenset({"O-", "O+"}),
    "A-": frozenset({"O-", "A-"}),
    "A+": frozenset({"O-", "O+", "A-", "A+"}),
    "B-": frozenset({"O-", "B-"}),
    "B+": frozenset({"O-", "O+", "B-", "B+"}),
    "AB-": frozenset({"O-", "A-", "B-", "AB-"}),
    "AB+": frozenset(BLOOD_TYPES),
}


def is_compatible(donor_blood_type: str, recipient_blood_type: str) -> bool:
    """True when donor blood can be given to the recipient. Unknown types are never compatible."""
    return donor_blood_type in _COMPATIBLE_DONORS.get(recipient_blood_type, frozenset())


def compatible_donor_types(recipient_blood_type: str) -> list[str]:
    """Donor types compatible with the recipient, in canonical order."""
    return [bt for bt in BLOOD_TYPES if is_compatible(bt, recipient_blood_type)]
