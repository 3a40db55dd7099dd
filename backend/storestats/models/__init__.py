from storestats.core.database import Base
from storestats.models.access_log import AccessLog, AccessStat

__all__ = [
    "Base",
    "AccessLog",
    "AccessStat",
]
