"""Canvas layout arithmetic for containers and the outputs they own."""

GAP_BETWEEN_NODES = 33
CONTAINER_BASE_HEIGHT = 63
OUTPUT_HEIGHT = 33
MIN_CANVAS_MARGIN = 30
MAX_SUBITEMS = 5


def calculate_height(count: int, base_height: int = CONTAINER_BASE_HEIGHT) -> int:
    if count <= 0:
        return base_height
    return OUTPUT_HEIGHT * count + base_height


def slot_y(index: int) -> int:
    """Local y of the output at zero-based ``index`` inside its container."""
    return (index + 1) * GAP_BETWEEN_NODES


def container_height(child_count: int, is_group: bool = False) -> int:
    # Group shells have no header row, and their first slot starts at the top.
    if is_group:
        return max(calculate_height(child_count, 0) - GAP_BETWEEN_NODES, 0)
    return calculate_height(child_count)


def clamp_to_canvas(value: float | None) -> float:
    return max(MIN_CANVAS_MARGIN, value or 0)
