KB = 1024
MB = KB * 1024
GB = MB * 1024


def format_size(size_bytes: int) -> str:
    """Human readable binary size, e.g. ``1363148800 -> "1.27 GB"``."""
    if size_bytes < KB:
        return f"{size_bytes} B"
    if size_bytes < MB:
        return f"{size_bytes / KB:.1f} KB"
    if size_bytes < GB:
        return f"{size_bytes / MB:.1f} MB"
    return f"{size_bytes / GB:.2f} GB"
