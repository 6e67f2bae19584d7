"""
Label matchers for PromQL queries built from host, VM and pod names.
"""

import re

# host names, ip:port instances, libvirt domains and pod names
_SAFE_VALUE = re.compile(r'^[\w\-.:/]+$', re.ASCII)
_SAFE_NAME = re.compile(r'^[a-zA-Z_]\w*$', re.ASCII)
MAX_VALUE_LENGTH = 255


class PromQLValidationError(ValueError):
    """A name cannot be placed inside a label matcher."""


def build_label_matcher(label_name: str, label_value: str) -> str:
    """
    Return ``label_name="label_value"``.

    Raises:
        PromQLValidationError: If the label name is malformed, or the value
            is empty, longer than MAX_VALUE_LENGTH, or could escape the
            quoted matcher
    """
    if not _SAFE_NAME.match(label_name):
        raise PromQLValidationError(f"Invalid label name: {label_name}")
    if not label_value:
        raise PromQLValidationError(f"Empty value for label {label_name}")
    if len(label_value) > MAX_VALUE_LENGTH:
        raise PromQLValidationError(f"Value for label {label_name} is longer than {MAX_VALUE_LENGTH}")
    if not _SAFE_VALUE.match(label_value):
        raise PromQLValidationError(f"Unsafe value for label {label_name}: {label_value!r}")
    return f'{label_name}="{label_value}"'
