from slowapi import Limiter
from slowapi.util import get_remote_address

# In-process storage: a single writer instance is assumed
limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
