"""
Tests package for the ArUco & Camera Calibration Demo

Organized by test type:

- unit/: Unit tests for individual modules and classes
- integration/: Calibration sessions, the table demo and the command line
  run end-to-end on synthetic images
"""
