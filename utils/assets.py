"""Locate the overlay asset library on disk."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional, Union

from utils.logger import get_logger

logger = get_logger(__name__)

APP_DIR_NAME = "rustizarr"

GRADIENT_TOP = "gradients/gradient_top.png"
GRADIENT_BOTTOM = "gradients/gradient_bottom.png"
INNER_GLOW = "overlay-innerglow.png"
RECENTLY_ADDED = "recently_added.png"
STATUS_DIR = "Status"
TITLE_FONT = "fonts/Colus-Regular.ttf"
SCORE_FONT = "fonts/AvenirNextLTPro-Bold.ttf"
RESOLUTION_DIR = "media_info/resolution"
EDITION_DIR = "media_info/edition"
CODEC_DIR = "media_info/codec"
AUDIENCE_DIR = "audience_score"


def user_config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    xdg = env.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    if os.name == "nt" and env.get("APPDATA"):
        return Path(env["APPDATA"])
    return Path.home() / ".config"


def find_overlays_root(
    hint: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
) -> Path:
    """
    Resolve the overlay root, stopping at the first existing candidate:
    ``hint`` / ``$OVERLAYS_PATH``, ``<config dir>/rustizarr/overlays``, ``./overlays``.
    Falls back to ``./overlays`` even when it does not exist; stages then warn and no-op.
    """
    env = os.environ if environ is None else environ
    cwd = cwd or Path.cwd()

    candidates = []
    explicit = hint or env.get("OVERLAYS_PATH")
    if explicit:
        candidates.append(Path(explicit))
    candidates.append(user_config_dir(env) / APP_DIR_NAME / "overlays")
    candidates.append(cwd / "overlays")

    for candidate in candidates:
        if candidate.exists():
            logger.debug(f"Overlay root resolved to {candidate}")
            return candidate

    fallback = cwd / "overlays"
    logger.warning(f"No overlay directory found, falling back to {fallback}")
    return fallback


class OverlayAssets:
    """Resolves overlay files below a root directory. Missing files are reported, never raised."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    @classmethod
    def discover(cls, hint: Optional[str] = None) -> "OverlayAssets":
        return cls(find_overlays_root(hint))

    def path(self, relative: str) -> Path:
        return self.root / relative

    def find(self, relative: str, what: str = "Overlay") -> Optional[Path]:
        """Return the absolute path when the asset exists, else log a warning and return None."""
        target = self.path(relative)
        if target.is_file():
            return target
        logger.warning(f"⚠️ {what} not found: {target}")
        return None

