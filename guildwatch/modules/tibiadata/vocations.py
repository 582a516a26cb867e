"""
Vocation name normalization.

TibiaData reports promoted vocations ("Elite Knight"); GuildWatch stores the
base class ("Knight").
"""

from __future__ import annotations

from typing import Dict

VOCATION_MAP: Dict[str, str] = {
    "Knight": "Knight",
    "Elite Knight": "Knight",
    "Paladin": "Paladin",
    "Royal Paladin": "Paladin",
    "Sorcerer": "Sorcerer",
    "Master Sorcerer": "Sorcerer",
    "Druid": "Druid",
    "Elder Druid": "Druid",
    "Monk": "Monk",
    "Exalted Monk": "Monk",
}


def normalize_vocation(vocation: str) -> str:
    """Map a promoted vocation to its base class; unknown names pass through."""
    return VOCATION_MAP.get(vocation, vocation)
