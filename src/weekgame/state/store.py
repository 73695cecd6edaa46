"""
Game storage abstraction.

Separates persistence from game logic for testability. Games are saved
after every state mutation, so a restart resumes mid-turn.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from .schema import AuctionGameState, IslandGameState, parse_game_state

logger = logging.getLogger(__name__)

AnyGameState = IslandGameState | AuctionGameState


@runtime_checkable
class GameStore(Protocol):
    """
    Abstract storage interface for games.

    Implementations:
    - JsonGameStore: File-based persistence (production)
    - MemoryGameStore: In-memory storage (testing)
    """

    def save(self, game: AnyGameState) -> None:
        """Persist a game."""
        ...

    def load(self, game_id: str) -> AnyGameState | None:
        """Load a game by ID. Returns None if not found."""
        ...

    def delete(self, game_id: str) -> bool:
        """Delete a game. Returns True if deleted."""
        ...

    def list_all(self) -> list[dict]:
        """List all games with metadata."""
        ...

    def exists(self, game_id: str) -> bool:
        """Check if a game exists."""
        ...

    def archive(self, game_id: str) -> bool:
        """Move a finished game out of the active list."""
        ...


def _summary(game: AnyGameState, archived: bool = False) -> dict:
    return {
        "id": game.id,
        "name": game.name,
        "game_type": game.game_type,
        "season": game.season,
        "turn": game.turn,
        "phase": game.phase.value,
        "participants": len(game.participants),
        "archived": archived,
        "updated_at": game.updated_at,
    }


class JsonGameStore:
    """
    File-based game storage using JSON.

    Features:
    - Automatic backup on save
    - Partial ID matching on load
    - Finished games moved to an archive/ subdirectory
    """

    def __init__(self, games_dir: Path | str = "games"):
        self.games_dir = Path(games_dir)
        self.games_dir.mkdir(parents=True, exist_ok=True)
        self.archive_dir = self.games_dir / "archive"

    def _game_file(self, game_id: str) -> Path:
        return self.games_dir / f"{game_id}.json"

    def _find_file(self, game_id: str) -> Path | None:
        for directory in (self.games_dir, self.archive_dir):
            exact = directory / f"{game_id}.json"
            if exact.exists():
                return exact
        for directory in (self.games_dir, self.archive_dir):
            if not directory.exists():
                continue
            for f in directory.glob("*.json"):
                if f.name.startswith("."):
                    continue
                if f.stem.startswith(game_id):
                    return f
        return None

    def save(self, game: AnyGameState) -> None:
        """Save game to JSON file with backup. Archived games stay archived."""
        game.touch()
        archived = self.archive_dir / f"{game.id}.json"
        if archived.exists():
            archived.write_text(game.model_dump_json(indent=2), encoding="utf-8")
            return

        game_file = self._game_file(game.id)

        if game_file.exists():
            backup = game_file.with_suffix(".json.bak")
            backup.write_text(game_file.read_text(encoding="utf-8"), encoding="utf-8")

        game_file.write_text(game.model_dump_json(indent=2), encoding="utf-8")

    def load(self, game_id: str) -> AnyGameState | None:
        """
        Load game by ID or partial match.

        Looks in the active directory first, then the archive.
        A file that fails validation is logged and treated as missing.
        """
        game_file = self._find_file(game_id)
        if game_file is None:
            return None

        try:
            return parse_game_state(game_file.read_text(encoding="utf-8"))
        except (ValidationError, json.JSONDecodeError):
            logger.exception(f"Corrupt game file: {game_file}")
            return None

    def delete(self, game_id: str) -> bool:
        """Delete game file and its backup."""
        game_file = self._game_file(game_id)
        if not game_file.exists():
            return False

        game_file.unlink()
        backup = game_file.with_suffix(".json.bak")
        if backup.exists():
            backup.unlink()
        return True

    def list_all(self) -> list[dict]:
        """List active games sorted by modification time, newest first."""
        games = []

        for f in sorted(
            self.games_dir.glob("*.json"),
            key=lambda x: x.stat().st_mtime,
            reverse=True,
        ):
            if f.name.startswith("."):
                continue
            try:
                games.append(_summary(parse_game_state(f.read_text(encoding="utf-8"))))
            except (ValidationError, json.JSONDecodeError):
                logger.warning(f"Skipping unreadable game file: {f.name}")
                continue

        return games

    def exists(self, game_id: str) -> bool:
        """Check if an active game file exists."""
        return self._game_file(game_id).exists()

    def archive(self, game_id: str) -> bool:
        """Move a game file into archive/. Returns False if not found."""
        game_file = self._game_file(game_id)
        if not game_file.exists():
            return False

        self.archive_dir.mkdir(parents=True, exist_ok=True)
        game_file.replace(self.archive_dir / game_file.name)
        backup = game_file.with_suffix(".json.bak")
        if backup.exists():
            backup.unlink()
        logger.info(f"Archived game {game_id}")
        return True


class MemoryGameStore:
    """
    In-memory game storage for testing.

    No file I/O. Games are stored as deep copies so a load behaves like
    reading back from disk.
    """

    def __init__(self):
        self.games: dict[str, AnyGameState] = {}
        self.archived: dict[str, AnyGameState] = {}

    def save(self, game: AnyGameState) -> None:
        """Store a copy of the game in memory. Archived games stay archived."""
        game.touch()
        pool = self.archived if game.id in self.archived else self.games
        pool[game.id] = game.model_copy(deep=True)

    def load(self, game_id: str) -> AnyGameState | None:
        """Load a copy of the game from memory."""
        for pool in (self.games, self.archived):
            if game_id in pool:
                return pool[game_id].model_copy(deep=True)

        for pool in (self.games, self.archived):
            for gid, game in pool.items():
                if gid.startswith(game_id):
                    return game.model_copy(deep=True)

        return None

    def delete(self, game_id: str) -> bool:
        """Remove game from memory."""
        if game_id in self.games:
            del self.games[game_id]
            return True
        return False

    def list_all(self) -> list[dict]:
        """List active games in memory, newest first."""
        games = [_summary(g) for g in self.games.values()]
        games.sort(key=lambda x: x["updated_at"] or datetime.min, reverse=True)
        return games

    def exists(self, game_id: str) -> bool:
        """Check if an active game exists in memory."""
        return game_id in self.games

    def archive(self, game_id: str) -> bool:
        """Move a game out of the active pool."""
        if game_id not in self.games:
            return False
        self.archived[game_id] = self.games.pop(game_id)
        return True

    def clear(self) -> None:
        """Clear all games (test utility)."""
        self.games.clear()
        self.archived.clear()
