"""Phase constants and loading of per-phase form configs.

Each phase is described by a JSON file `phase-<n>.json` inside the
configured config directory. A config holds the form `fields`, the
`promptTemplate` they feed and presentation text for the client.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

TOTAL_PHASES = 8
MIN_PHASE = 1
MAX_PHASE = TOTAL_PHASES
SUBMISSION_PHASE = TOTAL_PHASES

PHASE_TITLES: Dict[int, str] = {
    1: 'Market & Competitor Research',
    2: 'Competitor Matrix Construction',
    3: 'Background Research',
    4: 'Hero Offer Ideation',
    5: 'Hero Concept Brief',
    6: 'Media Factory',
    7: 'AI Voice Agent',
    8: 'AI Website Builder',
}

logger = logging.getLogger("workshop.phases")


class PhaseConfigError(LookupError):
    """Raised when a phase number is unknown or its config cannot be read."""


def get_phase_numbers() -> List[int]:
    return list(range(MIN_PHASE, MAX_PHASE + 1))


def is_valid_phase_number(phase: int) -> bool:
    return MIN_PHASE <= phase <= MAX_PHASE


def phase_title(phase: int) -> str:
    return PHASE_TITLES.get(phase, 'Unknown')


def progress_percentage(current_phase: int) -> float:
    """Share of phases a team has moved past, in percent."""
    done = min(max(current_phase, MIN_PHASE), MAX_PHASE) - 1
    return round(done / (TOTAL_PHASES - 1) * 100, 1)


def load_phase_config(phase: int, config_dir: Optional[Path] = None) -> dict:
    """Return the parsed config for `phase`.

    Raises `PhaseConfigError` when the phase is out of range or the file
    is missing or not valid JSON. Parsed files are cached per path and
    modification time.
    """
    if not is_valid_phase_number(phase):
        raise PhaseConfigError('Phase not found')
    if config_dir is None:
        from ..config import settings
        config_dir = settings.PHASE_CONFIG_DIR
    path = Path(config_dir) / f'phase-{phase}.json'
    try:
        mtime = path.stat().st_mtime
    except OSError:
        raise PhaseConfigError('Phase configuration not found')
    config = _read_config(str(path), mtime)
    if config is None:
        raise PhaseConfigError('Phase configuration not found')
    return config


@lru_cache(maxsize=32)
def _read_config(path: str, mtime: float) -> Optional[dict]:
    try:
        with open(path, 'r', encoding='utf-8') as fh:
            config = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("phase config unreadable: %s (%s)", path, exc)
        return None
    if not isinstance(config, dict):
        logger.warning("phase config is not an object: %s", path)
        return None
    return config
