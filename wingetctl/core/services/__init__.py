"""Core services — parsing, path resolution, process orchestration."""
