# constants.py

DEFAULT_HISTOGRAM_BUCKETS: int = 50
PATHS_PER_CHUNK: int = 1000
HIGH_VOLATILITY_THRESHOLD: float = 0.5
DEGENERATE_BUCKET_SIZE: float = 1.0

# Plotting constants
TEXT_INPUT_COLOR = '#1f77b4'
TEXT_OUTPUT_COLOR = '#ff7f0e'
BAR_COLOR = '#4d6bdd'
BAR_EDGE_COLOR = '#6C83EE'
