"""
Keyed on-disk storage for weight documents.

Provides:
- One JSON document per world seed (``neural_weights_<seed>.json``)
- Atomic writes (temp file + rename)
- Rotating backups and recovery from the newest valid one
"""
from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

KEY_PREFIX = "neural_weights_"

Seed = Union[int, str]


def storage_key(world_seed: Seed) -> str:
    return f"{KEY_PREFIX}{world_seed}"


class WeightStore:
    """
    Persists weight documents so independent worlds keep independent brains.

    A missing or unreadable document is reported as absent, never raised.

    Example:
        >>> store = WeightStore("./weights")
        >>> store.save(1234, document)
        >>> document = store.load(1234)
    """

    BACKUP_COUNT = 3

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, world_seed: Seed) -> Path:
        safe = "".join(c if c.isalnum() or c == "-" else "_" for c in str(world_seed))
        return self.base_path / f"{KEY_PREFIX}{safe}.json"

    def _get_backup_path(self, world_seed: Seed, n: int) -> Path:
        path = self._get_path(world_seed)
        return path.with_name(f"{path.stem}.backup{n}.json")

    def save(self, world_seed: Seed, document: Dict[str, Any]) -> bool:
        """
        Atomically write a document, rotating the previous one into backups.

        Returns:
            True on success, False if the write failed
        """
        path = self._get_path(world_seed)
        temp_path = path.with_suffix(".tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(document, f)

            if path.exists():
                self._rotate_backups(world_seed)

            shutil.move(str(temp_path), str(path))
            logger.debug(f"Saved weights for world {world_seed}")
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save weights for world {world_seed}: {e}")
            if temp_path.exists():
                temp_path.unlink()
            return False

    def _rotate_backups(self, world_seed: Seed) -> None:
        # backup1 is always the newest; the oldest falls off the end
        backups = [self._get_backup_path(world_seed, n) for n in range(1, self.BACKUP_COUNT + 1)]
        for newer, older in reversed(list(zip(backups, backups[1:]))):
            if newer.exists():
                newer.replace(older)
        shutil.copy2(str(self._get_path(world_seed)), str(backups[0]))

    def load(
        self,
        world_seed: Seed,
        validate: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Read the document for a world.

        Args:
            world_seed: World whose document to read
            validate: Optional check that raises ValueError for a document
                that parses but is unusable; a rejected primary falls back
                to the backups in the same way as an unreadable one

        Returns:
            The primary document, the newest backup that reads and passes
            ``validate``, or None when nothing usable exists
        """
        path = self._get_path(world_seed)
        if not path.exists():
            return None

        try:
            data = self._read(path, validate)
            logger.info(f"Loaded weights for world {world_seed}")
            return data

        except (OSError, ValueError) as e:
            logger.error(f"Failed to load weights for world {world_seed}: {e}")
            return self._try_recover_from_backup(world_seed, validate)

    @staticmethod
    def _read(path: Path, validate: Optional[Callable[[Dict[str, Any]], Any]]) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("document is not a JSON object")
        if validate is not None:
            validate(data)
        return data

    def _try_recover_from_backup(
        self,
        world_seed: Seed,
        validate: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        for i in range(1, self.BACKUP_COUNT + 1):
            backup_path = self._get_backup_path(world_seed, i)
            if not backup_path.exists():
                continue
            try:
                data = self._read(backup_path, validate)
            except (OSError, ValueError) as e:
                logger.debug(f"Skipping backup{i} for world {world_seed}: {e}")
                continue
            logger.warning(f"Recovered weights for world {world_seed} from backup{i}")
            return data

        logger.error(f"No valid weight backup found for world {world_seed}")
        return None

    def exists(self, world_seed: Seed) -> bool:
        return self._get_path(world_seed).exists()

    def list_seeds(self) -> List[str]:
        """Seeds with a saved primary document."""
        seeds = []
        for path in sorted(self.base_path.glob(f"{KEY_PREFIX}*.json")):
            if "backup" not in path.name:
                seeds.append(path.stem[len(KEY_PREFIX):])
        return seeds

    def delete(self, world_seed: Seed) -> None:
        """Delete a world's document and its backups."""
        path = self._get_path(world_seed)
        if path.exists():
            path.unlink()
        for i in range(1, self.BACKUP_COUNT + 1):
            backup = self._get_backup_path(world_seed, i)
            if backup.exists():
                backup.unlink()

    def stats(self) -> Dict:
        return {
            "base_path": str(self.base_path),
            "saved_worlds": len(self.list_seeds()),
        }
