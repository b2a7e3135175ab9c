"""JSON-file persistence for custom commands."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from parley.core.commands import CommandDefinition
from parley.errors import CommandDefinitionError, CommandNotFoundError


class JSONCommandStore:
    """
    A simple JSON-based command store.

    Commands are kept as their camelCase records in one JSON object keyed by
    name. Every mutation rewrites the whole file.
    """

    def __init__(self, file_path: str | Path):
        self.file_path = Path(file_path)
        self._lock = threading.RLock()
        self._records: dict[str, dict[str, Any]] = self._load()

    def _load(self) -> dict[str, dict[str, Any]]:
        """Load command records from the JSON file."""
        if self.file_path.exists():
            try:
                with open(self.file_path, encoding="utf-8") as f:
                    loaded = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading command store: {e}")
            else:
                if isinstance(loaded, dict):
                    return loaded
                logger.error(f"Command store {self.file_path} does not hold a JSON object")
        return {}

    def _save(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self.file_path, "w", encoding="utf-8") as f:
                json.dump(self._records, f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.error(f"Error saving command store: {e}")

    def _decode(self, record: dict[str, Any]) -> CommandDefinition | None:
        try:
            return CommandDefinition.model_validate(record)
        except ValidationError as e:
            logger.error(f"Skipping invalid command {record.get('name')!r}: {e}")
            return None

    def _require(self, name: str) -> CommandDefinition:
        record = self._records.get(name)
        command = self._decode(record) if record is not None else None
        if command is None:
            raise CommandNotFoundError(f"Command not found: {name}")
        return command

    def _put(self, command: CommandDefinition) -> None:
        self._records[command.name] = command.to_record()
        self._save()

    async def list_commands(self) -> list[CommandDefinition]:
        with self._lock:
            commands = [self._decode(record) for record in self._records.values()]
        return sorted((command for command in commands if command is not None), key=lambda item: item.name)

    async def get_command(self, name: str) -> CommandDefinition | None:
        with self._lock:
            record = self._records.get(name)
            return self._decode(record) if record is not None else None

    async def save_command(self, command: CommandDefinition) -> None:
        with self._lock:
            self._put(command)
        logger.info("store.save name={} kind={}", command.name, command.kind)

    async def remove_command(self, name: str) -> None:
        with self._lock:
            if name not in self._records:
                raise CommandNotFoundError(f"Command not found: {name}")
            del self._records[name]
            self._save()
        logger.info("store.remove name={}", name)

    async def toggle_favorite(self, name: str, is_favorite: bool) -> CommandDefinition:
        """Mark or unmark a favorite.

        A new favorite without an order is placed after the existing ones.
        Unfavoriting drops the order.
        """
        with self._lock:
            command = self._require(name)
            sort_order = command.sort_order
            if is_favorite and sort_order is None:
                orders = [
                    record.get("sortOrder")
                    for record in self._records.values()
                    if record.get("isFavorite") and isinstance(record.get("sortOrder"), int)
                ]
                sort_order = max(orders, default=0) + 1
            elif not is_favorite:
                sort_order = None
            updated = command.model_copy(update={"is_favorite": is_favorite, "sort_order": sort_order})
            self._put(updated)
        return updated

    async def set_sort_order(self, name: str, sort_order: int) -> CommandDefinition:
        with self._lock:
            command = self._require(name)
            if not command.is_favorite:
                raise CommandDefinitionError(f"Cannot set sort order for non-favorite command: {name}")
            updated = command.model_copy(update={"sort_order": sort_order})
            self._put(updated)
        return updated
