from typing import NamedTuple
from enum import Enum
import resource


class LimitType(Enum):
	Files = resource.RLIMIT_NOFILE


# Darwin reports unlimited hard limits that `setrlimit` then rejects, so we
# cap what we ask for.
REASONABLE_LIMITS: dict[LimitType, int] = {
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(scope.value))


def unlimit(scope: LimitType) -> int | bool:
	"""Raises the soft limit for `scope` up to its hard limit (capped by
	`REASONABLE_LIMITS`), returning the new soft limit or `False`."""
	lm = limit(scope)
	if lm.soft == resource.RLIM_INFINITY:
		return lm.soft
	target = lm.hard
	maximum = REASONABLE_LIMITS.get(scope)
	if maximum and (target == resource.RLIM_INFINITY or target > maximum):
		target = maximum
	if target <= lm.soft:
		return lm.soft
	try:
		resource.setrlimit(scope.value, (target, lm.hard))
		return target
	except (ValueError, OSError):
		return False


# EOF
