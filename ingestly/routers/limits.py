from slowapi import Limiter
from slowapi.util import get_remote_address

# One limiter for every router so app.state.limiter sees all counters
limiter = Limiter(key_func=get_remote_address)
