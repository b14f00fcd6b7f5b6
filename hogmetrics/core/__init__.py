"""Query building blocks: dialect, filters, time buckets, result decoding and breakdowns."""
