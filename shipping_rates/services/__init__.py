# Services layer for rate calculation
