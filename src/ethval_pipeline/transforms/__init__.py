"""ethval_pipeline.transforms — record normalization, tier merging, interpolation."""
