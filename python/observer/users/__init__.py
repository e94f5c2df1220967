from .profiles import UserProfile, UserRegistry, INITIAL_RATE_LINE, UNLIMITED
from .rate_limiter import RateLimiter, RateDecision
