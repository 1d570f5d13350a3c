"""
Verification method registry.
Merges a university's configured method rows with the canonical fallback order.
"""
from dataclasses import dataclass
from typing import Dict, List

from university_config import UniversityDirectory


PORTAL = 'portal'
EMAIL = 'email'
REGISTRATION = 'registration'
WHATSAPP = 'whatsapp'

CANONICAL_ORDER = (PORTAL, EMAIL, REGISTRATION, WHATSAPP)


@dataclass
class MethodInfo:
    method: str
    is_available: bool
    priority: int

    def to_dict(self) -> Dict[str, object]:
        return {'method': self.method, 'isAvailable': self.is_available, 'priority': self.priority}


def canonical_position(method: str) -> int:
    return CANONICAL_ORDER.index(method)


class MethodRegistry:
    """Per-university ordered list of verification methods."""

    def __init__(self, universities: UniversityDirectory):
        self.universities = universities

    def get_available_methods(self, university_id: str) -> List[MethodInfo]:
        """
        Get verification methods for a university in priority order.

        With no configured rows every canonical method is available in
        canonical order. Otherwise configured rows keep their own flags and
        priorities, and any canonical method without a row is added as
        available after every configured row, in canonical order. Equal
        priorities fall back to canonical order.
        Unconfigured methods rank last so that, for example, rows
        [registration(0), email(1)] still fall back to email rather than an
        injected portal when no registration number is supplied.

        Args:
            university_id: University ID

        Returns:
            List of MethodInfo sorted ascending by priority
        """
        configs = self.universities.get_method_configs(university_id)

        configured = {}
        for config in configs:
            if config.method_type not in CANONICAL_ORDER:
                print(f"Ignoring unknown verification method '{config.method_type}' for university {university_id}")
                continue
            configured[config.method_type] = MethodInfo(
                method=config.method_type,
                is_available=config.is_active,
                priority=config.priority_order,
            )

        # Unconfigured methods rank behind the university's own choices
        offset = max((info.priority for info in configured.values()), default=-1) + 1

        methods = [
            configured.get(method) or MethodInfo(method=method, is_available=True, priority=offset + index)
            for index, method in enumerate(CANONICAL_ORDER)
        ]
        return sorted(methods, key=lambda info: (info.priority, canonical_position(info.method)))
