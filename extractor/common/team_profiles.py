"""
Team Profiles

Maps Chatwork account ids to team roles. Used by the speaker map so records
can later be attributed by role instead of by name.

File format (~/.chatwork-knowledge/team-profiles.json):
    {"profiles": {"12345": {"name": "Sato", "role": "senior"}}}
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger("extractor.common.team_profiles")

VALID_ROLES = ("senior", "member", "junior")
DEFAULT_ROLE = "member"

ROLE_LABELS = {
    "senior": "Senior",
    "member": "Member",
    "junior": "Junior",
}


@dataclass
class TeamProfile:
    name: str
    role: str = DEFAULT_ROLE


@dataclass
class ResolvedRole:
    role: str
    label: str


class TeamProfiles:
    """Account id -> role lookup table. Unknown accounts resolve to ``member``."""

    def __init__(self, profiles: Optional[Dict[str, TeamProfile]] = None):
        self._profiles: Dict[str, TeamProfile] = dict(profiles or {})

    @classmethod
    def load(cls, path: Union[str, Path, None]) -> "TeamProfiles":
        """
        Load profiles from a JSON file.

        A missing file yields an empty table (everyone is a member).
        An unreadable file is logged and also yields an empty table.
        """
        if not path or not Path(path).exists():
            logger.info("No team profiles configured, treating everyone as member")
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            raw_profiles = data.get("profiles", {})
        except (json.JSONDecodeError, IOError, AttributeError) as e:
            logger.error("Failed to read team profiles %s: %s", path, e)
            return cls()

        profiles = {}
        for account_id, raw in raw_profiles.items():
            role = str(raw.get("role", DEFAULT_ROLE)).lower()
            if role not in VALID_ROLES:
                logger.warning(
                    "Invalid role %r for account_id %s, using %s", raw.get("role"), account_id, DEFAULT_ROLE
                )
                role = DEFAULT_ROLE
            profiles[str(account_id)] = TeamProfile(name=raw.get("name", ""), role=role)

        logger.info("Loaded %d team profiles", len(profiles))
        return cls(profiles)

    @property
    def has_profiles(self) -> bool:
        return bool(self._profiles)

    def role_for(self, account_id: int) -> Optional[str]:
        """Role of a registered account, None if the account is not registered"""
        profile = self._profiles.get(str(account_id))
        return profile.role if profile else None

    def resolve_role(self, account_id: int) -> ResolvedRole:
        role = self.role_for(account_id) or DEFAULT_ROLE
        return ResolvedRole(role=role, label=ROLE_LABELS[role])
