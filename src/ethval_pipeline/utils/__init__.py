"""ethval_pipeline.utils — logging, retry, rate limiting and run deadlines."""
