"""Team avatar icons and random selection for newly created teams."""

import secrets
from typing import Iterable, List

TEAM_AVATAR_ICONS: List[str] = [
    'alien-1-svgrepo-com.svg',
    'alien-2-svgrepo-com.svg',
    'alien-3-svgrepo-com.svg',
    'alien-4-svgrepo-com.svg',
    'alien-ship-2-svgrepo-com.svg',
    'alien-ship-beam-svgrepo-com.svg',
    'alien-ship-svgrepo-com.svg',
    'astronaut-helmet-svgrepo-com.svg',
    'atom-svgrepo-com.svg',
    'atronaut-svgrepo-com.svg',
    'black-hole-svgrepo-com.svg',
    'brain-slug-svgrepo-com.svg',
    'cylon-raider-svgrepo-com.svg',
    'falling-space-capsule-svgrepo-com.svg',
    'falling-star-svgrepo-com.svg',
    'flag-svgrepo-com.svg',
    'galaxy-svgrepo-com.svg',
    'international-space-station-svgrepo-com.svg',
    'landing-space-capsule-svgrepo-com.svg',
    'laser-gun-svgrepo-com.svg',
    'ring-ship-svgrepo-com.svg',
    'rocket-svgrepo-com.svg',
    'satellite-svgrepo-com.svg',
    'space-capsule-svgrepo-com.svg',
    'space-invader-svgrepo-com.svg',
    'space-rocket-svgrepo-com.svg',
    'space-rover-1-svgrepo-com.svg',
    'space-rover-2-svgrepo-com.svg',
    'space-ship-1-svgrepo-com.svg',
    'space-ship-2-svgrepo-com.svg',
    'space-ship-3-svgrepo-com.svg',
    'space-ship-svgrepo-com.svg',
    'space-shuttle-launch-svgrepo-com.svg',
    'space-shuttle-svgrepo-com.svg',
    'sputnick-1-svgrepo-com.svg',
    'sputnick-2-svgrepo-com.svg',
]

# How many of the latest teams' icons are avoided when picking a new one.
RECENT_AVATAR_WINDOW = 15


def select_random_avatar(recent_avatars: Iterable[str] = ()) -> str:
    """Pick an icon not used by `recent_avatars`.

    Falls back to the full icon set once every icon has been used
    recently.
    """
    recent = set(recent_avatars)
    available = [icon for icon in TEAM_AVATAR_ICONS if icon not in recent]
    return secrets.choice(available or TEAM_AVATAR_ICONS)
