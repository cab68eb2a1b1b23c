"""
Analysis Configuration
Runtime thresholds for network analysis, problem reporting and the quality scorecard.
"""

import os
from dataclasses import dataclass, field, fields, replace, asdict
from typing import Optional


@dataclass(frozen=True)
class ScorecardConfig:
    """Weights and grading thresholds for the quality scorecard."""

    # Overall score weights (must sum to 1)
    connectivity_weight: float = 0.30
    completeness_weight: float = 0.40
    topology_weight: float = 0.30

    # Letter grades, highest first
    grade_thresholds: tuple = (('A', 90.0), ('B', 80.0), ('C', 70.0), ('D', 60.0))
    failing_grade: str = 'F'

    # Connectivity sub-score
    degree_saturation: float = 4.0
    degree_points: float = 40.0
    isolation_penalty: float = 30.0
    dead_end_penalty: float = 20.0
    main_component_points: float = 40.0

    # Topology sub-score
    low_dead_end_points: float = 40.0
    quality_points: float = 30.0
    ratio_points: float = 30.0
    ideal_edge_node_ratio: float = 1.5
    component_penalty: float = 10.0
    max_component_penalty: float = 30.0

    def weights(self) -> dict:
        return {
            'connectivity': self.connectivity_weight,
            'completeness': self.completeness_weight,
            'topology': self.topology_weight,
        }

    def grade_for(self, score: float) -> str:
        """Map an overall score onto a letter grade."""
        for letter, threshold in self.grade_thresholds:
            if score >= threshold:
                return letter
        return self.failing_grade


@dataclass(frozen=True)
class AnalysisConfig:
    """Thresholds used by every analysis stage. All values are adjustable at runtime."""

    short_stub_threshold: float = 5.0       # meters
    long_link_threshold: float = 200.0      # meters
    sharp_angle_threshold: float = 30.0     # degrees
    zigzag_band: tuple = (60.0, 120.0)      # degrees
    zigzag_min_segments: int = 3
    zigzag_min_matches: int = 2
    centrality_sample_size: int = 30
    centrality_seed: Optional[int] = None
    boundary_margin: float = 0.02           # fraction of bbox extent
    max_dead_ends: int = 20
    max_bridges: int = 15
    max_articulation_points: int = 10
    scorecard: ScorecardConfig = field(default_factory=ScorecardConfig)

    def validate(self) -> 'AnalysisConfig':
        """
        Check the configuration for inconsistent values.

        Raises:
            ValueError: if any threshold is out of range
        """
        if self.short_stub_threshold < 0 or self.long_link_threshold < 0:
            raise ValueError("Length thresholds must be non-negative")
        if self.short_stub_threshold > self.long_link_threshold:
            raise ValueError("short_stub_threshold must not exceed long_link_threshold")
        if not 0 <= self.sharp_angle_threshold <= 180:
            raise ValueError("sharp_angle_threshold must be within [0, 180] degrees")

        low, high = self.zigzag_band
        if low > high:
            raise ValueError(f"zigzag_band is inverted: {self.zigzag_band}")
        if self.zigzag_min_segments < 2 or self.zigzag_min_matches < 1:
            raise ValueError("zigzag_min_segments must be >= 2 and zigzag_min_matches >= 1")
        if self.centrality_sample_size < 1:
            raise ValueError("centrality_sample_size must be positive")
        if not 0 <= self.boundary_margin < 0.5:
            raise ValueError("boundary_margin must be within [0, 0.5)")
        for name in ('max_dead_ends', 'max_bridges', 'max_articulation_points'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

        total = sum(self.scorecard.weights().values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Scorecard weights must sum to 1, got {total:.3f}")
        thresholds = [t for _, t in self.scorecard.grade_thresholds]
        if thresholds != sorted(thresholds, reverse=True):
            raise ValueError("grade_thresholds must be ordered from highest to lowest")
        return self

    def with_overrides(self, **changes) -> 'AnalysisConfig':
        """Return a copy with the given fields replaced."""
        scorecard_changes = changes.pop('scorecard', None)
        config = replace(self, **changes)
        if isinstance(scorecard_changes, dict):
            config = replace(config, scorecard=replace(config.scorecard, **scorecard_changes))
        elif scorecard_changes is not None:
            config = replace(config, scorecard=scorecard_changes)
        return config.validate()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'AnalysisConfig':
        """
        Build a configuration from a plain mapping (e.g. parsed JSON).

        Args:
            data: Field values; a nested 'scorecard' mapping configures the scorecard

        Raises:
            ValueError: on unknown keys or invalid values
        """
        data = dict(data)
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown analysis settings: {sorted(unknown)}")

        scorecard_data = data.pop('scorecard', None) or {}
        scorecard_known = {f.name for f in fields(ScorecardConfig)}
        unknown = set(scorecard_data) - scorecard_known
        if unknown:
            raise ValueError(f"Unknown scorecard settings: {sorted(unknown)}")
        scorecard_data = dict(scorecard_data)
        if 'grade_thresholds' in scorecard_data:
            scorecard_data['grade_thresholds'] = tuple(
                (str(letter), float(threshold))
                for letter, threshold in scorecard_data['grade_thresholds']
            )

        if 'zigzag_band' in data:
            data['zigzag_band'] = tuple(float(v) for v in data['zigzag_band'])

        return cls(scorecard=ScorecardConfig(**scorecard_data), **data).validate()

    @classmethod
    def from_env(cls, prefix: str = 'PNI_') -> 'AnalysisConfig':
        """Load settings from environment variables such as PNI_SHORT_STUB_THRESHOLD."""
        defaults = cls()
        values = {}
        for f in fields(cls):
            if f.name in ('scorecard', 'zigzag_band'):
                continue
            raw = os.getenv(prefix + f.name.upper())
            if raw is None:
                continue
            current = getattr(defaults, f.name)
            if f.name == 'centrality_seed':
                values[f.name] = int(raw)
            else:
                values[f.name] = type(current)(raw)

        band = os.getenv(prefix + 'ZIGZAG_BAND')
        if band:
            low, high = band.split(',')
            values['zigzag_band'] = (float(low), float(high))

        return replace(defaults, **values).validate()
