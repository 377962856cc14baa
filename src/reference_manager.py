# Loads reference dictionaries (segment definitions, code lists, profiles) from JSON files.
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from analyzer_errors import ReferenceDataError, ResolutionDegraded
from reference_models import ReferenceDictionary

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_PATH = Path(__file__).parent / "schemas"


class ReferenceManager:
    """
    Owns the reference dictionary used to resolve and check messages.

    Every ``*.json`` file under the base path is validated as a
    ReferenceDictionary and merged in file-name order, later files overriding
    earlier ones. ``snapshot()`` hands out the current merged dictionary, which
    is never mutated; ``reload_dictionaries()`` builds a complete replacement
    before swapping it in, so readers see either the old or the new dictionary.
    """

    def __init__(self, reference_path: Union[str, Path, None] = None):
        self.reference_path = Path(reference_path) if reference_path else DEFAULT_REFERENCE_PATH
        self._sources: Dict[str, ReferenceDictionary] = {}
        self._snapshot: ReferenceDictionary = ReferenceDictionary()
        self.reload_dictionaries()

    @classmethod
    def from_dictionary(cls, dictionary: ReferenceDictionary) -> "ReferenceManager":
        """Builds a manager around an in-memory dictionary (fixtures, tests)."""
        manager = cls.__new__(cls)
        manager.reference_path = None
        manager._sources = {dictionary.name: dictionary}
        manager._snapshot = dictionary
        return manager

    def _load_sources(self) -> Dict[str, ReferenceDictionary]:
        sources: Dict[str, ReferenceDictionary] = {}
        if not self.reference_path.exists():
            logger.warning(f"Reference path does not exist: {self.reference_path}")
            return sources

        logger.info(f"Loading reference dictionaries from: {self.reference_path}")
        for reference_file in sorted(self.reference_path.glob("*.json")):
            try:
                with open(reference_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                sources[reference_file.name] = ReferenceDictionary.model_validate(data)
                logger.info(f"Loaded reference dictionary: {reference_file.name}")
            except Exception as e:
                logger.error(f"Failed to load reference dictionary {reference_file.name}: {e}")
        return sources

    def reload_dictionaries(self) -> ReferenceDictionary:
        """Reloads all dictionaries from the filesystem and swaps them in."""
        if self.reference_path is None:
            return self._snapshot
        sources = self._load_sources()
        merged = ReferenceDictionary()
        for dictionary in sources.values():
            merged = merged.merged_with(dictionary)
        self._sources, self._snapshot = sources, merged
        logger.info(
            f"Reference data ready: {len(merged.segments)} segments, "
            f"{len(merged.code_lists)} code lists, {len(merged.message_types)} message types."
        )
        return merged

    def snapshot(self) -> ReferenceDictionary:
        """Returns the current dictionary; fails when nothing could be loaded."""
        if not self._sources:
            raise ReferenceDataError(f"No reference data available (path: {self.reference_path}).")
        return self._snapshot

    def get_dictionary(self, file_name: str) -> Optional[ReferenceDictionary]:
        return self._sources.get(file_name)

    def list_dictionaries(self) -> List[str]:
        return list(self._sources.keys())


def snapshot_or_empty(reference_source) -> ReferenceDictionary:
    """Takes a snapshot, degrading to an empty dictionary when none is available."""
    try:
        return reference_source.snapshot()
    except Exception as e:
        logger.warning(f"ResolutionDegraded: {ResolutionDegraded(1, [str(e)])}", exc_info=True)
        return ReferenceDictionary()
