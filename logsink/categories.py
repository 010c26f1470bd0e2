"""Category bitmask used for filtering events, plus the type labels written to disk."""

from enum import IntFlag

from logsink.errors import ConfigurationError


class CategoryMask(IntFlag):
    NONE = 0
    PROTOCOL = 0x1
    MESSAGING = 0x2
    CHANGE_RECORD = 0x4
    ERROR = 0x8
    WARNING = 0x10
    DEBUG = 0x20
    ENTRY_EXIT = 0x80
    CALLBACK = 0x100
    HISTORY = 0x200
    OPERATOR_ATTENTION = 0x400
    INFORMATION = 0x8000
    ARGUMENT = 0x10000
    EXCEPTION = 0x20000
    CUSTOM = 0xFF000000
    ALL = 0xFFFFFFFF


# Order decides the label of a combined mask: the first bit present wins.
_LABELS: list[tuple[CategoryMask, str]] = [
    (CategoryMask.EXCEPTION, "Exception"),
    (CategoryMask.ERROR, "Error"),
    (CategoryMask.WARNING, "Warning"),
    (CategoryMask.OPERATOR_ATTENTION, "OperatorAttention"),
    (CategoryMask.INFORMATION, "Information"),
    (CategoryMask.DEBUG, "Debug"),
    (CategoryMask.ENTRY_EXIT, "EntryExit"),
    (CategoryMask.CALLBACK, "Callback"),
    (CategoryMask.PROTOCOL, "Protocol"),
    (CategoryMask.MESSAGING, "Messaging"),
    (CategoryMask.CHANGE_RECORD, "ChangeRecord"),
    (CategoryMask.HISTORY, "History"),
    (CategoryMask.ARGUMENT, "Argument"),
    (CategoryMask.CUSTOM, "Custom"),
]

_LABEL_TO_CATEGORY: dict[str, CategoryMask] = {label: cat for cat, label in _LABELS}

DEFAULT_LABEL = "Information"


def type_label(category: CategoryMask) -> str:
    """Return the human-readable type for the dominant bit of ``category``."""
    for bit, label in _LABELS:
        if category & bit:
            return label
    return DEFAULT_LABEL


def category_for_label(label: str) -> CategoryMask:
    """Inverse of :func:`type_label`; unknown labels map to NONE."""
    return _LABEL_TO_CATEGORY.get(label, CategoryMask.NONE)


def parse_categories(value: str | list | int | CategoryMask) -> CategoryMask:
    """Parse a category mask from a config value.

    Accepts an int, a list of names, or a string such as ``"Error,Warning"``,
    ``"error|debug"`` or ``"All"``. Names match either the enum member name
    (``OPERATOR_ATTENTION``) or the type label (``OperatorAttention``).
    """
    if isinstance(value, CategoryMask):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return CategoryMask(value)
    if isinstance(value, str):
        parts = value.replace("|", ",").split(",")
    elif isinstance(value, list):
        parts = [str(p) for p in value]
    else:
        raise ConfigurationError(f"Unsupported category value: {value!r}")

    mask = CategoryMask.NONE
    for part in parts:
        name = part.strip()
        if not name:
            continue
        key = name.upper().replace("-", "_")
        if key in CategoryMask.__members__:
            mask |= CategoryMask[key]
            continue
        matched = next((cat for cat, label in _LABELS if label.lower() == name.lower()), None)
        if matched is None:
            raise ConfigurationError(f"Unknown log category: {name!r}")
        mask |= matched
    return mask
