# book_scraper/source_manager.py
import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml
from pydantic import ValidationError

from .errors import ImportValidationFailure
from .source_models import RuleSet

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = {"name": "name", "url": "url", "searchUrl": "search_url"}


# --- Exchange format (JSON, camelCase field names) ---

def _describe_validation_error(error: ValidationError, position: str) -> ImportValidationFailure:
    first = error.errors()[0]
    loc = [str(part) for part in first.get("loc", ())]
    field_name = ".".join(loc) if loc else None
    if first.get("type") == "missing":
        message = f"{position}missing field '{field_name}'"
    else:
        message = f"{position}invalid field '{field_name}': {first.get('msg')}"
    return ImportValidationFailure(message, field_name=field_name)


def rule_set_from_dict(data: Dict[str, Any], index: Optional[int] = None) -> RuleSet:
    position = f"source #{index}: " if index is not None else ""
    if not isinstance(data, dict):
        raise ImportValidationFailure(f"{position}expected an object, got {type(data).__name__}")
    for required, attribute in REQUIRED_FIELDS.items():
        if data.get(required) is None and data.get(attribute) is None:
            raise ImportValidationFailure(f"{position}missing field '{required}'", field_name=required)
    try:
        return RuleSet.model_validate(data)
    except ValidationError as e:
        raise _describe_validation_error(e, position) from e


def parse_rule_sets(data: Union[str, bytes, Dict[str, Any], List[Any]]) -> List[RuleSet]:
    """Accepts JSON text/bytes, a single source object, or a list of source objects."""
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ImportValidationFailure(f"Rule set data is not valid JSON: {e}") from e
    if isinstance(data, dict):
        return [rule_set_from_dict(data)]
    if isinstance(data, list):
        return [rule_set_from_dict(item, index=i) for i, item in enumerate(data)]
    raise ImportValidationFailure(f"Expected a source object or a list of them, got {type(data).__name__}")


def dump_rule_sets(rule_sets: Sequence[RuleSet], indent: Optional[int] = 2) -> str:
    return json.dumps([rs.to_exchange_dict() for rs in rule_sets], ensure_ascii=False, indent=indent)


class SourceManager:
    """In-memory, ordered list of book sources with JSON/YAML import and export."""

    def __init__(self, sources_path: Optional[str] = None, logger_instance=None):
        self.logger = logger_instance if logger_instance else logger
        self.sources_path = sources_path
        self.last_error: Optional[str] = None
        self._lock = threading.Lock()
        self._sources: List[RuleSet] = []

        if self.sources_path:
            self.logger.info(f"SourceManager initialized with path: {self.sources_path}")
            self.load_sources(self.sources_path)
        else:
            self.logger.info("No sources path for SourceManager. Starting with an empty source list.")

    def load_sources(self, sources_path: str) -> bool:
        """Replaces the current list with the file's sources. Returns False (and logs) on failure."""
        self.sources_path = sources_path
        self.last_error = None
        self.logger.info(f"Loading book sources from: {sources_path}")
        try:
            with open(sources_path, 'r', encoding='utf-8') as f:
                if sources_path.lower().endswith((".yaml", ".yml")):
                    raw = yaml.safe_load(f)
                else:
                    raw = json.load(f)
            sources = parse_rule_sets(raw if raw is not None else [])
            with self._lock:
                self._sources = sources
            self.logger.info(f"Loaded {len(sources)} book sources from {sources_path}")
            return True
        except FileNotFoundError:
            self.last_error = f"Sources file not found: {sources_path}"
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            self.last_error = f"Parsing error in {sources_path}: {e}"
        except ImportValidationFailure as e:
            self.last_error = f"Validation error in {sources_path}: {e}"
        self.logger.error(self.last_error)
        return False

    def save_sources(self, sources_path: Optional[str] = None) -> str:
        path = sources_path or self.sources_path
        if not path:
            raise ValueError("No path given for saving book sources")
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            if path.lower().endswith((".yaml", ".yml")):
                yaml.safe_dump([rs.to_exchange_dict() for rs in self.get_sources()], f, allow_unicode=True,
                               sort_keys=False)
            else:
                f.write(self.export_sources())
        self.logger.info(f"Saved {len(self._sources)} book sources to {path}")
        return path

    def import_sources(self, data: Union[str, bytes, Dict[str, Any], List[Any]]) -> int:
        """Parses and adds sources; raises ImportValidationFailure. Returns how many were added."""
        added = sum(1 for rs in parse_rule_sets(data) if self.add_source(rs))
        self.logger.info(f"Imported {added} new book sources")
        return added

    def add_source(self, rule_set: RuleSet) -> bool:
        with self._lock:
            if any(existing.url == rule_set.url for existing in self._sources):
                self.logger.debug(f"Source with url {rule_set.url} already present, skipping '{rule_set.name}'")
                return False
            self._sources.append(rule_set)
        return True

    def remove_source(self, name: str) -> bool:
        with self._lock:
            before = len(self._sources)
            self._sources = [rs for rs in self._sources if rs.name != name]
            return len(self._sources) != before

    def update_source(self, rule_set: RuleSet) -> bool:
        """Replaces the source that has the same name."""
        with self._lock:
            for index, existing in enumerate(self._sources):
                if existing.name == rule_set.name:
                    self._sources[index] = rule_set
                    return True
        self.logger.warning(f"Source '{rule_set.name}' not found, nothing updated.")
        return False

    def set_enabled(self, name: str, enabled: bool) -> bool:
        source = self.get_source_by_name(name)
        if source is None:
            return False
        return self.update_source(source.model_copy(update={"enabled": enabled}))

    def get_sources(self) -> Tuple[RuleSet, ...]:
        with self._lock:
            return tuple(self._sources)

    def get_enabled_sources(self) -> Tuple[RuleSet, ...]:
        return tuple(rs for rs in self.get_sources() if rs.enabled)

    def get_source_by_name(self, name: str) -> Optional[RuleSet]:
        for source in self.get_sources():
            if source.name == name:
                return source
        self.logger.warning(f"Source '{name}' not found in source list.")
        return None

    def export_sources(self) -> str:
        return dump_rule_sets(self.get_sources())

    def clear_sources(self):
        with self._lock:
            self._sources = []
