"""Per-session context handed to the workflow and the document planner.

Everything the core would otherwise read from process globals (settings,
bearer token, franchisee profile, the watermark asset, the clock) lives
here. The watermark is loaded once when the context is created and is
read-only afterwards.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from ..config import Settings, get_settings
from ..models.invoice import FranchiseeProfile

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def load_watermark(path: str) -> bytes | None:
    """Read the watermark image, or None when unset or unreadable."""
    if not path:
        return None
    try:
        return Path(path).read_bytes()
    except OSError as e:
        logger.warning("Watermark not loaded from %s: %s", path, e)
        return None


@dataclass(frozen=True)
class SessionContext:
    settings: Settings
    token: str = ""
    profile: FranchiseeProfile = field(default_factory=FranchiseeProfile)
    watermark_image: bytes | None = None
    clock: Callable[[], datetime] = utc_now

    def now(self) -> datetime:
        return self.clock()

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        token: str = "",
        profile: FranchiseeProfile | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "SessionContext":
        settings = settings or get_settings()
        return cls(
            settings=settings,
            token=token,
            profile=profile or FranchiseeProfile(),
            watermark_image=load_watermark(settings.watermark_path),
            clock=clock or utc_now,
        )
