from __future__ import annotations

import glob
import json
import logging
import shutil
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, TypeVar, Union
from uuid import uuid4

from pydantic import BaseModel

from ledger.errors import ConcurrentUpdateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Union[BaseModel, Mapping[str, Any]])


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    return str(o)


class JsonRepository(Generic[T]):
    """
    Repo JSON générique avec clé primaire configurable.
    - Rotation de backups (backup_enabled, backup_keep)
    - N'écrit pas si le contenu ne change pas (réduction du bruit et des .bak)
    - update(..., expected_version=n) : compare-and-swap sur le champ `version`
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        entity_name: str = "entity",
        key: str = "id",
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.filepath = Path(filepath)
        self.entity_name = entity_name
        self.key = key
        # réentrant : update() relit puis réécrit sous le même verrou
        self._lock = threading.RLock()
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        if not self.filepath.exists():
            self._write_raw([])

    # ---------------- I/O bas niveau ---------------- #

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with self.filepath.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, list) else []
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            # Fichier corrompu → sauvegarde et repart sur liste vide
            backup = self.filepath.with_suffix(".corrupt.json")
            logger.warning("Corrupt %s store %s, copied to %s", self.entity_name, self.filepath, backup)
            try:
                shutil.copy2(self.filepath, backup)
            except OSError as e:
                logger.warning("Could not back up corrupt file %s: %s", self.filepath, e)
            return []

    def _rotate_backups(self) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        pattern = str(self.filepath.with_suffix(".*.bak.json"))
        files = sorted(glob.glob(pattern))
        # garde les plus récents
        if len(files) > self.backup_keep:
            for old in files[: len(files) - self.backup_keep]:
                try:
                    Path(old).unlink(missing_ok=True)
                except OSError as e:
                    logger.debug("Could not remove old backup %s: %s", old, e)

    def _write_raw(self, data: Iterable[Mapping[str, Any]]) -> None:
        with self._lock:
            new_dump = json.dumps(list(data), ensure_ascii=False, indent=2, default=_json_default)

            # si contenu identique → ne rien faire
            if self.filepath.exists():
                if self.filepath.read_text(encoding="utf-8") == new_dump:
                    return

            # backup
            if self.backup_enabled and self.filepath.exists():
                ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
                backup = self.filepath.with_suffix(f".{ts}.bak.json")
                try:
                    shutil.copy2(self.filepath, backup)
                except OSError as e:
                    logger.warning("Backup of %s failed: %s", self.filepath, e)
                self._rotate_backups()

            # write
            with self.filepath.open("w", encoding="utf-8") as f:
                f.write(new_dump)

    # ---------------- Helpers ---------------- #

    @staticmethod
    def _to_dict(item: T) -> Dict[str, Any]:
        if isinstance(item, BaseModel):
            return item.model_dump(mode="json")
        if isinstance(item, Mapping):
            return json.loads(json.dumps(dict(item), default=_json_default))
        raise TypeError(f"Cannot store object of type {type(item).__name__}")

    # ---------------- CRUD ---------------- #

    def list_all(self) -> List[Dict[str, Any]]:
        return self._read_raw()

    def get_by_id(self, obj_id: Any) -> Optional[Dict[str, Any]]:
        k = self.key
        for it in self._read_raw():
            if str(it.get(k)) == str(obj_id):
                return it
        return None

    def require(self, obj_id: Any) -> Dict[str, Any]:
        found = self.get_by_id(obj_id)
        if found is None:
            raise NotFoundError(self.entity_name, obj_id)
        return found

    def add(self, item: T) -> Dict[str, Any]:
        record = self._to_dict(item)
        k = self.key
        if not record.get(k):
            record[k] = uuid4().hex
        with self._lock:
            data = self._read_raw()
            if any(str(d.get(k)) == str(record[k]) for d in data):
                raise ValidationError(f"{self.entity_name} with {k}={record[k]} already exists", field=k)
            data.append(record)
            self._write_raw(data)
        return record

    def update(self, item: T, expected_version: Optional[int] = None) -> Dict[str, Any]:
        """Fusionne `item` dans l'enregistrement existant.

        Avec `expected_version`, refuse l'écriture si la version stockée a changé
        (ConcurrentUpdateError) et incrémente la version sinon.
        """
        record = self._to_dict(item)
        k = self.key
        obj_id = record.get(k)
        if not obj_id:
            raise ValidationError(f"Cannot update {self.entity_name} without '{k}'", field=k)
        with self._lock:
            data = self._read_raw()
            for idx, existing in enumerate(data):
                if str(existing.get(k)) != str(obj_id):
                    continue
                if expected_version is not None:
                    actual = int(existing.get("version") or 0)
                    if actual != expected_version:
                        raise ConcurrentUpdateError(self.entity_name, obj_id, expected_version, actual)
                    record["version"] = actual + 1
                merged = {**existing, **record}
                data[idx] = merged
                self._write_raw(data)
                return merged
        raise NotFoundError(self.entity_name, obj_id)

    def upsert(self, item: T) -> Dict[str, Any]:
        try:
            return self.update(item)
        except NotFoundError:
            return self.add(item)

    def delete(self, obj_id: Any) -> bool:
        k = self.key
        with self._lock:
            data = self._read_raw()
            new_data = [d for d in data if str(d.get(k)) != str(obj_id)]
            changed = len(new_data) != len(data)
            if changed:
                self._write_raw(new_data)
        return changed

    # ---------------- Instantanés ---------------- #

    @property
    def lock(self) -> threading.RLock:
        """Verrou du fichier, à tenir pour enchaîner plusieurs écritures."""
        return self._lock

    def snapshot(self, ids: Iterable[Any]) -> Dict[str, Optional[Dict[str, Any]]]:
        return {str(i): self.get_by_id(i) for i in ids}

    def restore(self, snapshot: Mapping[str, Optional[Dict[str, Any]]]) -> None:
        """Remet les enregistrements capturés par `snapshot` (None : absent à la capture)."""
        k = self.key
        with self._lock:
            out: List[Dict[str, Any]] = []
            seen = set()
            for d in self._read_raw():
                obj_id = str(d.get(k))
                if obj_id not in snapshot:
                    out.append(d)
                    continue
                seen.add(obj_id)
                if snapshot[obj_id] is not None:
                    out.append(snapshot[obj_id])
            out.extend(rec for obj_id, rec in snapshot.items() if obj_id not in seen and rec is not None)
            self._write_raw(out)

    # ---------------- Recherches ---------------- #

    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return [r for r in self._read_raw() if predicate(r)]

    def find_one(self, predicate: Callable[[Dict[str, Any]], bool]) -> Optional[Dict[str, Any]]:
        for r in self._read_raw():
            if predicate(r):
                return r
        return None
