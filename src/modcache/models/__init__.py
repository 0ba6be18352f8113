from modcache.models.game import Category, Game
from modcache.models.mod import Mod, ModChangelog, ModCheck, ModFiles, ModStatus
from modcache.models.settings import AppSetting
from modcache.models.tracking import Endorsement, EndorsementStatus, Tracked
from modcache.models.user import NexusUser

__all__ = [
    "AppSetting",
    "Category",
    "Endorsement",
    "EndorsementStatus",
    "Game",
    "Mod",
    "ModChangelog",
    "ModCheck",
    "ModFiles",
    "ModStatus",
    "NexusUser",
    "Tracked",
]
