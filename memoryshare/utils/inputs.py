import datetime as dt
import math


def process_input_list(value: str | None, delimiter: str = ",", lower: bool = True) -> list[str]:
    """Split a delimited field, trimming items and dropping blanks and repeats."""
    if not value:
        return []
    items: list[str] = []
    for item in value.split(delimiter):
        item = item.strip()
        if not item:
            continue
        if lower:
            item = item.lower()
        if item not in items:
            items.append(item)
    return items


def normalise_tokens(tokens) -> list[str]:
    if isinstance(tokens, str):
        return sorted(process_input_list(tokens))
    normalised = set()
    for token in tokens or ():
        token = str(token).strip().lower()
        if token:
            normalised.add(token)
    return sorted(normalised)


def parse_date(value: str | int | dt.date | None) -> dt.date | None:
    """Accept ``YYYY-MM-DD`` or unix seconds; empty and zero mean unset."""
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.astimezone(dt.timezone.utc).date() if value.tzinfo else value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, int):
        if value == 0:
            return None
        return dt.datetime.fromtimestamp(value, tz=dt.timezone.utc).date()
    value = value.strip()
    if value in ("", "0"):
        return None
    if value.lstrip("-").isdigit():
        return parse_date(int(value))
    return dt.date.fromisoformat(value)


def format_byte_count(count: int, si: bool = False) -> str:
    unit = 1024 if si else 1000
    prefixes = "KMGTPE" if si else "kMGTPE"
    if count < unit:
        return f"{count} B"
    exp = min(int(math.log(count) / math.log(unit)), len(prefixes))
    prefix = prefixes[exp - 1]
    if si:
        prefix += "i"
    return f"{count / unit ** exp:.1f} {prefix}B"
