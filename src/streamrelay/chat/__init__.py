"""Chat orchestration and streaming."""
