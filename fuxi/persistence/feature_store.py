"""
Track feature store for Fuxi.

This module holds the read-mostly catalog of per-track content features and
provides JSON/CSV loading and atomic persistence of that catalog.
"""
import json
import os
import tempfile
from typing import Dict, Optional, List, Iterator, Tuple, Mapping
import logging

import numpy as np
import pandas as pd

from ..data.schemas import TrackFeatures, ValidationResult
from ..data.validator import CatalogValidator


class FeatureStore:
    """
    In-memory catalog of track features keyed by track id.

    Iteration order is catalog insertion order, which keeps strategy output
    deterministic for equal scores.
    """

    def __init__(self, tracks: Optional[Mapping[str, TrackFeatures]] = None):
        self.logger = logging.getLogger(__name__)
        self._tracks: Dict[str, TrackFeatures] = dict(tracks or {})
        self._matrix_cache: Optional[Tuple[List[str], np.ndarray]] = None
        self.version = 0

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, track_id: str) -> bool:
        return track_id in self._tracks

    def __iter__(self) -> Iterator[str]:
        return iter(self._tracks)

    def get(self, track_id: str) -> Optional[TrackFeatures]:
        return self._tracks.get(track_id)

    def items(self) -> List[Tuple[str, TrackFeatures]]:
        return list(self._tracks.items())

    def track_ids(self) -> List[str]:
        return list(self._tracks)

    def upsert(self, track_id: str, features: TrackFeatures) -> None:
        """Insert or replace a single track's features."""
        if not track_id:
            raise ValueError("Track id cannot be empty")
        self._tracks[track_id] = features
        self._invalidate()

    def replace_all(self, tracks: Mapping[str, TrackFeatures]) -> None:
        self._tracks = dict(tracks)
        self._invalidate()
        self.logger.info(f"Catalog replaced with {len(self._tracks)} tracks")

    def remove(self, track_id: str) -> bool:
        removed = self._tracks.pop(track_id, None) is not None
        if removed:
            self._invalidate()
        return removed

    def feature_matrix(self) -> Tuple[List[str], np.ndarray]:
        """Return (track ids, matrix of ``TrackFeatures.to_array`` rows)."""
        if self._matrix_cache is None:
            ids = list(self._tracks)
            if ids:
                matrix = np.vstack([self._tracks[t].to_array() for t in ids])
            else:
                matrix = np.zeros((0, 5))
            self._matrix_cache = (ids, matrix)
        return self._matrix_cache

    def _invalidate(self) -> None:
        self._matrix_cache = None
        self.version += 1

    @classmethod
    def load_json(cls, path: str) -> 'FeatureStore':
        """
        Load a catalog from a JSON object of ``{track_id: features}``.

        Invalid entries are skipped with an error log.

        Raises:
            FileNotFoundError: If the catalog file doesn't exist
            ValueError: If the file is not a JSON object
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Catalog file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"JSON corruption in catalog file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Catalog file must contain a JSON object")

        store = cls()
        tracks = {}
        for track_id, value in data.items():
            try:
                tracks[str(track_id)] = TrackFeatures.from_dict(value)
            except (ValueError, KeyError, TypeError) as e:
                store.logger.error(f"Invalid track data for {track_id}: {e}")
                continue
        store.replace_all(tracks)
        return store

    @classmethod
    def load_csv(cls, path: str, validator: Optional[CatalogValidator] = None) -> 'FeatureStore':
        """
        Load a catalog from CSV with one row per track.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the CSV fails validation
        """
        if not os.path.exists(path):
            raise FileNotFoundError(f"Catalog file not found: {path}")
        validator = validator or CatalogValidator()
        try:
            df = pd.read_csv(path, dtype={'track_id': str})
        except Exception as e:
            raise ValueError(f"Failed to load CSV file: {e}") from e

        validation = validator.validate_all(df)
        if validation.has_errors():
            raise ValueError("Catalog validation failed:\n" + "\n".join(validation.errors))

        store = cls()
        for warning in validation.warnings:
            store.logger.warning(warning)

        df = df.astype(object).where(pd.notna(df), None)
        tracks = {}
        for row in df.to_dict(orient='records'):
            tracks[str(row['track_id'])] = TrackFeatures.from_dict(row)
        store.replace_all(tracks)
        return store

    @classmethod
    def load(cls, path: str) -> 'FeatureStore':
        """Load by file extension (``.csv`` or JSON)."""
        if path.lower().endswith('.csv'):
            return cls.load_csv(path)
        return cls.load_json(path)

    def validate(self) -> ValidationResult:
        """Validate the in-memory catalog against feature ranges."""
        result = ValidationResult(is_valid=True)
        ranges = CatalogValidator.FEATURE_RANGES
        for track_id, features in self._tracks.items():
            for name, (low, high) in ranges.items():
                value = getattr(features, name)
                if not (low <= value <= high):
                    result.add_error(f"Track {track_id} {name}={value} outside [{low}, {high}]")
            if not features.genre:
                result.add_error(f"Track {track_id} missing genre")
            if features.artist is None:
                result.add_warning(f"Track {track_id} has no artist")
        result.metadata = {
            'total_tracks': len(self._tracks),
            'unique_genres': len({f.genre for f in self._tracks.values()}),
        }
        return result

    def save_atomic(self, path: str) -> None:
        """
        Atomically save the catalog as JSON.

        Raises:
            IOError: If saving fails
        """
        data = {track_id: features.to_dict() for track_id, features in self._tracks.items()}
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode='w',
                dir=directory,
                delete=False,
                suffix='.tmp',
                encoding='utf-8'
            ) as temp_file:
                temp_path = temp_file.name
                json.dump(data, temp_file, indent=2, ensure_ascii=False)

            os.replace(temp_path, path)
            temp_path = None

            self.logger.info(f"Atomically saved catalog with {len(data)} tracks to {path}")

        except OSError as e:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)
            error_msg = f"Failed to save catalog atomically: {e}"
            self.logger.error(error_msg)
            raise IOError(error_msg) from e
