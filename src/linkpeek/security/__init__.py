from linkpeek.security.rate_limit import RateLimiter, RateLimitResult, InMemoryRateLimiter, RedisRateLimiter, build_rate_limiter

__all__ = ["RateLimiter", "RateLimitResult", "InMemoryRateLimiter", "RedisRateLimiter", "build_rate_limiter"]
