"""
Indian GST state codes.

Place of supply may arrive as the two-digit GST state code ("27"), the
state name ("Maharashtra") or a common short form ("MH").  Comparisons for
the intra/inter-state decision are made on the canonical two-digit code.
"""

from __future__ import annotations

# (code, name, short form)
GST_STATES: tuple[tuple[str, str, str], ...] = (
    ("01", "Jammu and Kashmir", "JK"),
    ("02", "Himachal Pradesh", "HP"),
    ("03", "Punjab", "PB"),
    ("04", "Chandigarh", "CH"),
    ("05", "Uttarakhand", "UK"),
    ("06", "Haryana", "HR"),
    ("07", "Delhi", "DL"),
    ("08", "Rajasthan", "RJ"),
    ("09", "Uttar Pradesh", "UP"),
    ("10", "Bihar", "BR"),
    ("11", "Sikkim", "SK"),
    ("12", "Arunachal Pradesh", "AR"),
    ("13", "Nagaland", "NL"),
    ("14", "Manipur", "MN"),
    ("15", "Mizoram", "MZ"),
    ("16", "Tripura", "TR"),
    ("17", "Meghalaya", "ML"),
    ("18", "Assam", "AS"),
    ("19", "West Bengal", "WB"),
    ("20", "Jharkhand", "JH"),
    ("21", "Odisha", "OD"),
    ("22", "Chhattisgarh", "CG"),
    ("23", "Madhya Pradesh", "MP"),
    ("24", "Gujarat", "GJ"),
    ("26", "Dadra and Nagar Haveli and Daman and Diu", "DD"),
    ("27", "Maharashtra", "MH"),
    ("29", "Karnataka", "KA"),
    ("30", "Goa", "GA"),
    ("31", "Lakshadweep", "LD"),
    ("32", "Kerala", "KL"),
    ("33", "Tamil Nadu", "TN"),
    ("34", "Puducherry", "PY"),
    ("35", "Andaman and Nicobar Islands", "AN"),
    ("36", "Telangana", "TS"),
    ("37", "Andhra Pradesh", "AP"),
    ("38", "Ladakh", "LA"),
    ("97", "Other Territory", "OT"),
)

_LOOKUP: dict[str, str] = {}
for _code, _name, _short in GST_STATES:
    _LOOKUP[_code] = _code
    _LOOKUP[_name.casefold()] = _code
    _LOOKUP[_short.casefold()] = _code


def normalize_state(value: str | None) -> str | None:
    """
    Return the canonical two-digit code for ``value``.

    Unknown values are returned stripped and case-folded so that two
    identical free-text states still compare equal.
    """
    if value is None:
        return None
    key = value.strip()
    if not key:
        return None
    if key.isdigit() and len(key) == 1:
        key = f"0{key}"
    return _LOOKUP.get(key.casefold(), key.casefold())


def is_inter_state(place_of_supply: str | None, home_state: str | None) -> bool:
    """True when both states are known and differ."""
    pos = normalize_state(place_of_supply)
    home = normalize_state(home_state)
    if pos is None or home is None:
        return False
    return pos != home
