"""
Pattern Registry
================

Pattern classes are found by scanning the modules of this package for
subclasses of CalibrationPattern that declare their own ``PATTERN_INFO``.
Pattern IDs are the names used by the ``Calibrate_Pattern`` entry of the
settings file (CHESSBOARD, CIRCLES_GRID, ASYMMETRIC_CIRCLES_GRID).
"""

import importlib
import inspect
import pkgutil
from typing import Dict, Type
from .base import CalibrationPattern


SKIPPED_MODULES = ('base', 'manager')


class CalibrationPatternManager:
    """Registry of calibration pattern classes keyed by settings name."""

    def __init__(self):
        self.patterns: Dict[str, Type[CalibrationPattern]] = {}
        self._discover_patterns()

    def _discover_patterns(self):
        package = importlib.import_module(__package__)
        for module_info in pkgutil.iter_modules(package.__path__):
            if module_info.name.startswith('_') or module_info.name in SKIPPED_MODULES:
                continue
            module = importlib.import_module(f'.{module_info.name}', __package__)
            for _, cls in inspect.getmembers(module, inspect.isclass):
                if issubclass(cls, CalibrationPattern) and 'PATTERN_INFO' in vars(cls):
                    self.patterns[cls.PATTERN_INFO['id']] = cls

    def register_pattern_type(self, pattern_id: str, pattern_class: Type[CalibrationPattern]):
        """Register a pattern class under ``pattern_id``, replacing any previous one."""
        self.patterns[pattern_id] = pattern_class

    def has_pattern(self, pattern_id: str) -> bool:
        return pattern_id in self.patterns

    def get_pattern_class(self, pattern_id: str) -> Type[CalibrationPattern]:
        """
        Look up a pattern class.

        Raises:
            ValueError: If no pattern is registered under ``pattern_id``
        """
        try:
            return self.patterns[pattern_id]
        except KeyError:
            raise ValueError(f"Camera calibration mode does not exist: {pattern_id}. "
                             f"Known modes: {', '.join(sorted(self.patterns))}") from None

    def create_pattern(self, pattern_id: str, **kwargs) -> CalibrationPattern:
        """
        Instantiate a registered pattern.

        Args:
            pattern_id: Settings name of the pattern
            **kwargs: width, height and square_size
        """
        return self.get_pattern_class(pattern_id)(**kwargs)

    def get_available_patterns(self) -> Dict[str, Type[CalibrationPattern]]:
        return dict(self.patterns)


_pattern_manager = None


def get_pattern_manager() -> CalibrationPatternManager:
    """Shared registry, built on first use."""
    global _pattern_manager
    if _pattern_manager is None:
        _pattern_manager = CalibrationPatternManager()
    return _pattern_manager
