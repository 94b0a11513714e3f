"""
Catalog validation module for the Fuxi system.
"""
from typing import Dict, Tuple
import pandas as pd
from .schemas import ValidationResult


class CatalogValidator:
    """Validates track catalog schema, missing values, and feature ranges."""

    REQUIRED_COLUMNS = {
        'track_id', 'genre', 'era', 'energy', 'valence', 'tempo'
    }

    OPTIONAL_COLUMNS = {'acousticness', 'danceability', 'artist', 'title'}

    FEATURE_RANGES: Dict[str, Tuple[float, float]] = {
        'energy': (0.0, 1.0),
        'valence': (0.0, 1.0),
        'acousticness': (0.0, 1.0),
        'danceability': (0.0, 1.0),
        'tempo': (0.0, 300.0),
        'era': (1000, 2100),
    }

    def validate_schema(self, df: pd.DataFrame) -> ValidationResult:
        """Check that required columns exist and numeric columns are numeric."""
        result = ValidationResult(is_valid=True)
        missing_columns = self.REQUIRED_COLUMNS - set(df.columns)
        if missing_columns:
            result.add_error(f"Missing required columns: {sorted(missing_columns)}")
            return result
        for column in self.FEATURE_RANGES:
            if column in df.columns and not pd.api.types.is_numeric_dtype(df[column]):
                result.add_error(f"Column '{column}' must be numeric")
        unknown = set(df.columns) - self.REQUIRED_COLUMNS - self.OPTIONAL_COLUMNS
        if unknown:
            result.add_warning(f"Ignoring unknown columns: {sorted(unknown)}")
        return result

    def validate_missing_values(self, df: pd.DataFrame) -> ValidationResult:
        result = ValidationResult(is_valid=True)
        for column in sorted(self.REQUIRED_COLUMNS & set(df.columns)):
            missing = int(df[column].isna().sum())
            if missing:
                result.add_error(f"Column '{column}' has {missing} missing values")
        if 'track_id' in df.columns:
            duplicates = df['track_id'][df['track_id'].duplicated()].unique().tolist()
            if duplicates:
                result.add_error(f"Duplicate track ids: {duplicates}")
        return result

    def validate_ranges(self, df: pd.DataFrame) -> ValidationResult:
        result = ValidationResult(is_valid=True)
        for column, (low, high) in self.FEATURE_RANGES.items():
            if column not in df.columns or not pd.api.types.is_numeric_dtype(df[column]):
                continue
            values = df[column].dropna()
            out_of_range = values[(values < low) | (values > high)]
            if len(out_of_range) > 0:
                result.add_error(
                    f"Column '{column}' has {len(out_of_range)} values outside [{low}, {high}]"
                )
        return result

    def validate_all(self, df: pd.DataFrame) -> ValidationResult:
        """Run every check and merge the results.

        Range and missing-value checks are skipped when the schema is broken.
        """
        combined = self.validate_schema(df)
        if combined.has_errors():
            return combined
        for partial in (self.validate_missing_values(df), self.validate_ranges(df)):
            for error in partial.errors:
                combined.add_error(error)
            combined.warnings.extend(partial.warnings)
        combined.metadata = {
            'total_tracks': len(df),
            'unique_genres': int(df['genre'].nunique()),
        }
        return combined
