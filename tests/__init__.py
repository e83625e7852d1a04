"""Tests for Math Coach.

Core modules are tested directly against a fake clock and seeded RNG; the
pygame UI runs headlessly with SDL's dummy drivers. Run ``pytest`` from the
project root.
"""
