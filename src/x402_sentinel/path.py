import fnmatch
import re
from typing import Union

PathPattern = Union[str, list[str]]


def path_is_match(path: PathPattern, request_path: str) -> bool:
    """Check if a request path matches a pattern or list of patterns.

    Patterns are matched exactly, as fnmatch globs (``*`` also crosses
    ``/``), or as regular expressions when prefixed with ``regex:``
    (anchored at the start with re.match).

    Args:
        path: Pattern or list of patterns
        request_path: Path of the incoming request

    Returns:
        True if any pattern matches
    """
    if isinstance(path, str):
        if path.startswith("regex:"):
            return re.match(path[len("regex:") :], request_path) is not None
        if any(char in path for char in "*?["):
            return fnmatch.fnmatchcase(request_path, path)
        return path == request_path
    if isinstance(path, list):
        return any(path_is_match(pattern, request_path) for pattern in path)
    return False
