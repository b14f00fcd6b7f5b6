"""Query sources and the metric query compiler."""
