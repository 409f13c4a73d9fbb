from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# In-memory storage: limits are per process, like the log buffer
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
)
