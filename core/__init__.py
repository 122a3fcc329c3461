"""OpenWork core: dual-store workspace and per-thread run streaming."""
