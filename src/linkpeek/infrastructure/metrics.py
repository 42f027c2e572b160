from prometheus_client import CollectorRegistry, Counter, Histogram

# Shared registry scraped at /metrics; task modules register into it as well.
registry = CollectorRegistry()

REQUESTS = Counter('api_requests_total', 'API Requests', ['endpoint'], registry=registry)
LATENCY = Histogram('api_request_latency_seconds', 'API request latency', ['endpoint'], registry=registry, buckets=(0.01,0.05,0.1,0.25,0.5,1,2,5))
RATE_LIMIT_HITS = Counter('api_rate_limit_hits_total', 'Rate limit rejections', ['tier'], registry=registry)
