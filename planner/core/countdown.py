from datetime import datetime


def format_duration(target: datetime, now: datetime, past_text: str = "Now") -> str:
    """Render the time left until target: '2h 5m', '4m 30s' or '12s'."""
    diff = (target - now).total_seconds()
    if diff <= 0:
        return past_text
    total_seconds = int(diff)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
