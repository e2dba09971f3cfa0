"""
Staff Registry

Roster of field staff whose GPS trips are reconciled against WFX timesheets.
Each profile carries:
- Staff identifier (as used in trip exports)
- Configured home address (home-trip detection)
- WFX staff id (timesheet filtering)
- Default hourly rate and assigned vehicle
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Optional


@dataclass(frozen=True)
class StaffProfile:
    """
    Configuration for one staff member.
    """
    staff_id: str
    full_name: str
    home_address: str
    wfx_staff_id: Optional[str] = None
    default_hourly_rate: float = 0.0
    vehicle_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staff_id": self.staff_id,
            "full_name": self.full_name,
            "home_address": self.home_address,
            "wfx_staff_id": self.wfx_staff_id,
            "default_hourly_rate": self.default_hourly_rate,
            "vehicle_id": self.vehicle_id,
        }


class StaffRegistry:
    """
    Central registry for staff profiles.
    """

    _default_profiles: Dict[str, StaffProfile] = {
        "Ali_M": StaffProfile(
            staff_id="Ali_M",
            full_name="Ali Majid",
            home_address="4 Columbine Avenue, Bankstown New South Wales 2200, Australia",
            wfx_staff_id="wfx_staff_id_ali",
            default_hourly_rate=45.00,
            vehicle_id="VEH001",
        ),
    }

    def __init__(self, profiles: Optional[List[StaffProfile]] = None):
        if profiles is None:
            self._profiles = dict(self._default_profiles)
        else:
            self._profiles = {p.staff_id: p for p in profiles}

    def get_profile(self, staff_id: str) -> Optional[StaffProfile]:
        """Get profile for a staff member."""
        return self._profiles.get(staff_id)

    def require_profile(self, staff_id: str) -> StaffProfile:
        """Get profile for a staff member; raises KeyError when unknown."""
        profile = self._profiles.get(staff_id)
        if profile is None:
            raise KeyError(f"Staff member not configured: {staff_id}")
        return profile

    def get_all_profiles(self) -> List[StaffProfile]:
        return list(self._profiles.values())

    def register(self, profile: StaffProfile):
        self._profiles[profile.staff_id] = profile

    def to_dict(self) -> Dict[str, Any]:
        """Export registry as dictionary."""
        return {
            staff_id: profile.to_dict()
            for staff_id, profile in self._profiles.items()
        }


# Global registry instance
staff_registry = StaffRegistry()
