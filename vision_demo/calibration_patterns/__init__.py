"""
Modular Calibration Pattern System
=================================

Auto-discoverable calibration patterns for the interactive calibration.

Usage:
    from vision_demo.calibration_patterns import get_pattern_manager

    manager = get_pattern_manager()
    pattern = manager.create_pattern('CHESSBOARD', width=9, height=6, square_size=50)
"""

from .base import CalibrationPattern
from .manager import CalibrationPatternManager, get_pattern_manager

from .standard_chessboard import StandardChessboard
from .circles_grid import CirclesGrid, AsymmetricCirclesGrid


def create_pattern(pattern_id: str, board_size, square_size: float) -> CalibrationPattern:
    """Create a pattern from a settings-style (width, height) tuple."""
    width, height = board_size
    return get_pattern_manager().create_pattern(
        pattern_id, width=int(width), height=int(height), square_size=float(square_size)
    )


__all__ = [
    'CalibrationPattern',
    'StandardChessboard',
    'CirclesGrid',
    'AsymmetricCirclesGrid',
    'CalibrationPatternManager',
    'get_pattern_manager',
    'create_pattern'
]
