"""
CrisisWatch Fusion Engine — pure, synchronous risk computation.

Components:
- fusion: Weighted, confidence-discounted fusion of source signals
- displacement: Displacement estimate and trend from available signals
"""
