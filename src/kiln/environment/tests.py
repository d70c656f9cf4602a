"""Built-in tests for kiln templates.

Tests are boolean predicates used with `is` in output expressions:
`{{ value is defined }}` or `{{ value is divisibleby(3) }}`

Categories:
**Type Tests**:
    - `defined` / `undefined`: Value is (not) None
    - `none`: Value is None
    - `string`, `number`, `mapping`, `sequence`, `iterable`, `callable`

**Boolean Tests**:
    - `true`: Value is exactly True
    - `false`: Value is exactly False

**Number Tests**:
    - `odd`, `even`, `divisibleby(n)`

**Comparison Tests**:
    - `eq(other)` / `equalto(other)`, `ne(other)`, `lt(other)`, `gt(other)`
    - `sameas(other)`: Identity comparison
    - `in(seq)`: Value is in sequence

Negation:
Use `is not` for negated tests: `{{ count is not even }}`

Custom Tests:
    >>> env.add_test('prime', lambda n: n > 1 and all(n % i for i in range(2, n)))
    >>> env.from_string("{{ 17 is prime }}").render()
    'True'

"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any


def _test_callable(value: Any) -> bool:
    return callable(value)


def _test_defined(value: Any) -> bool:
    return value is not None


def _test_divisible_by(value: int, num: int) -> bool:
    return value % num == 0


def _test_eq(value: Any, other: Any) -> bool:
    return bool(value == other)


def _test_even(value: int) -> bool:
    return value % 2 == 0


def _test_gt(value: Any, other: Any) -> bool:
    return bool(value > other)


def _test_in(value: Any, seq: Any) -> bool:
    return value in seq


def _test_iterable(value: Any) -> bool:
    try:
        iter(value)
        return True
    except TypeError:
        return False


def _test_lt(value: Any, other: Any) -> bool:
    return bool(value < other)


def _test_mapping(value: Any) -> bool:
    return isinstance(value, dict)


def _test_ne(value: Any, other: Any) -> bool:
    return bool(value != other)


def _test_none(value: Any) -> bool:
    return value is None


def _test_number(value: Any) -> bool:
    """Test if value is a number (bools are not numbers)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _test_odd(value: int) -> bool:
    return value % 2 == 1


def _test_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, str))


def _test_string(value: Any) -> bool:
    return isinstance(value, str)


DEFAULT_TESTS: dict[str, Callable[..., bool]] = {
    "callable": _test_callable,
    "defined": _test_defined,
    "divisibleby": _test_divisible_by,
    "eq": _test_eq,
    "equalto": _test_eq,
    "even": _test_even,
    "false": lambda v: v is False,
    "gt": _test_gt,
    "in": _test_in,
    "iterable": _test_iterable,
    "lt": _test_lt,
    "mapping": _test_mapping,
    "ne": _test_ne,
    "none": _test_none,
    "number": _test_number,
    "odd": _test_odd,
    "sameas": lambda v, o: v is o,
    "sequence": _test_sequence,
    "string": _test_string,
    "true": lambda v: v is True,
    "undefined": lambda v: v is None,
}
