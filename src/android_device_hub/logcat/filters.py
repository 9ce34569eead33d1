"""Record filtering."""

from __future__ import annotations

from android_device_hub.logcat.models import LogFilterSpec, LogRecord


def matches(record: LogRecord, spec: LogFilterSpec) -> bool:
    """Return True if `record` passes every criterion set in `spec`.

    With a pid scope the record pid must match. Without one, a record whose
    package is known must match the package filter; unknown packages pass.
    """
    if spec.pid is not None:
        if record.pid != spec.pid:
            return False
    elif spec.package_name is not None:
        if record.package_name is not None and record.package_name != spec.package_name:
            return False

    if spec.min_level is not None and record.level < spec.min_level:
        return False

    if spec.tag_substring and spec.tag_substring not in record.tag:
        return False

    return True
