"""
ethval_pipeline.pipelines — Catalog, resolution and orchestration.

    catalog     build_catalog() declares the 28 MetricSeries
    resolver    TieredResolver turns one MetricSeries into a merged frame
    collector   Collector / run() process every metric and record status
    backfill    backfill_field() re-fetches null values of one field

    from ethval_pipeline.pipelines.collector import run

    summary = await run(settings, only=["eth_price", "eth_volatility"])
"""
