"""Class labels and model input constants for the DOTA oriented-box model."""

from __future__ import annotations

# DOTA class labels, in the order of the model's class indices
CLASS_NAMES: tuple[str, ...] = (
    "plane",
    "ship",
    "storage tank",
    "baseball diamond",
    "tennis court",
    "basketball court",
    "ground track field",
    "harbor",
    "bridge",
    "large vehicle",
    "small vehicle",
    "helicopter",
    "roundabout",
    "soccer ball field",
    "swimming pool",
)

# Model input image size (width and height)
MODEL_INPUT_SIZE = 512

# Default confidence floor for candidates
CONFIDENCE_THRESHOLD = 0.25

# Lowest confidence floor a caller may configure
CONFIDENCE_THRESHOLD_MIN = 0.05


def class_name_for(class_id: int, class_names: tuple[str, ...] | list[str] | None = None) -> str:
    """Look up the label for a class index.

    Indices outside the label set map to a ``class_<id>`` placeholder
    instead of failing.

    Args:
        class_id: Class index reported by the model.
        class_names: Label set to use. Defaults to the DOTA labels.

    Returns:
        Human-readable class name.
    """
    names = CLASS_NAMES if class_names is None else class_names
    if 0 <= class_id < len(names):
        return names[class_id]
    return f"class_{class_id}"
