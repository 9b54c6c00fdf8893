DEFAULT_LIMIT = 200
MAX_LIMIT = 200

def normalize_limit(limit_raw, max_limit: int = MAX_LIMIT):
    try:
        limit = int(limit_raw) if limit_raw is not None else min(DEFAULT_LIMIT, max_limit)
    except ValueError:
        raise ValueError('limit must be int')
    return max(1, min(limit, max_limit))
