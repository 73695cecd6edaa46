"""
Configuration persistence.

Stores tunables like the reveal delay and the RNG seed in a JSON file
inside the data directory. Environment variables override the file.
"""

import json
import logging
import os
from pathlib import Path
from typing import TypedDict

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".weekgame_config.json"


class Config(TypedDict, total=False):
    """Runtime configuration."""
    data_dir: str  # Where games and this config file live
    reveal_delay_sec: float  # Pause between revealed resolution steps
    bank_auctions_per_turn: int  # Bank auctions queued at the start of a turn
    prize_option_count: int  # Options sampled into each prize queue
    starting_votes: int  # Top vote count for the highest-scoring voters
    max_eliminations_per_turn: int  # Upper bound on the elimination quota
    seed: int | None  # Fixed RNG seed, or None for fresh randomness
    log_level: str


DEFAULT_CONFIG: Config = {
    "data_dir": "games",
    "reveal_delay_sec": 2.0,
    "bank_auctions_per_turn": 2,
    "prize_option_count": 3,
    "starting_votes": 3,
    "max_eliminations_per_turn": 3,
    "seed": None,
    "log_level": "INFO",
}


def get_config_path(data_dir: Path | str = "games") -> Path:
    """Get path to config file."""
    return Path(data_dir) / CONFIG_FILENAME


def _apply_env(config: Config) -> Config:
    if os.environ.get("WEEKGAME_DATA_DIR"):
        config["data_dir"] = os.environ["WEEKGAME_DATA_DIR"]
    if os.environ.get("WEEKGAME_LOG_LEVEL"):
        config["log_level"] = os.environ["WEEKGAME_LOG_LEVEL"].upper()
    if os.environ.get("WEEKGAME_SEED"):
        try:
            config["seed"] = int(os.environ["WEEKGAME_SEED"])
        except ValueError:
            logger.warning(f"Ignoring non-integer WEEKGAME_SEED={os.environ['WEEKGAME_SEED']!r}")
    return config


def load_config(data_dir: Path | str | None = None) -> Config:
    """
    Load config from file, or return defaults if not found.

    The data directory comes from the argument, then WEEKGAME_DATA_DIR,
    then the default. Missing keys fall back to DEFAULT_CONFIG.
    """
    data_dir = data_dir or os.environ.get("WEEKGAME_DATA_DIR") or DEFAULT_CONFIG["data_dir"]
    path = get_config_path(data_dir)

    config = DEFAULT_CONFIG.copy()
    config["data_dir"] = str(data_dir)

    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                saved = json.load(f)
            config.update(saved)
        except (json.JSONDecodeError, IOError):
            logger.warning(f"Could not read {path}, using defaults")

    return _apply_env(config)


def save_config(config: Config, data_dir: Path | str | None = None) -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(data_dir or config.get("data_dir", DEFAULT_CONFIG["data_dir"]))
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        logger.warning(f"Could not write {path}")
        return False


def set_reveal_delay(seconds: float, data_dir: Path | str | None = None) -> None:
    """Save reveal delay preference."""
    config = load_config(data_dir)
    config["reveal_delay_sec"] = max(0.0, float(seconds))
    save_config(config, data_dir)


def set_seed(seed: int | None, data_dir: Path | str | None = None) -> None:
    """Save a fixed RNG seed, or clear it with None."""
    config = load_config(data_dir)
    config["seed"] = seed
    save_config(config, data_dir)
