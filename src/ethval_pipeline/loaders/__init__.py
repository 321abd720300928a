"""ethval_pipeline.loaders — Supabase writes and run bookkeeping."""
