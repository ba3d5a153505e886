"""
FizzBuzz computation service.

Maps the integers 1..limit to tokens: multiples of int1 become string1,
multiples of int2 become string2, multiples of both become string1+string2
and everything else is the number itself.
"""

from dataclasses import dataclass, field

from constants import FIZZBUZZ_MAX_VALUE, FIZZBUZZ_MIN_VALUE

ERR_STRING1_REQUIRED = "string1 required"
ERR_STRING2_REQUIRED = "string2 required"
ERR_INVALID_INT1 = f"int1 must be between {FIZZBUZZ_MIN_VALUE} and {FIZZBUZZ_MAX_VALUE}"
ERR_INVALID_INT2 = f"int2 must be between {FIZZBUZZ_MIN_VALUE} and {FIZZBUZZ_MAX_VALUE}"
ERR_INVALID_LIMIT = f"limit must be between {FIZZBUZZ_MIN_VALUE} and {FIZZBUZZ_MAX_VALUE}"


class FizzBuzzValidationError(ValueError):
    """Raised when the request parameters are outside the accepted range."""


@dataclass
class ComputeFizzBuzzRangeParams:
    """Input of a FizzBuzz range computation"""

    # token for multiples of int1
    string1: str
    # token for multiples of int2
    string2: str
    int1: int
    int2: int
    # upper bound of the range, inclusive
    limit: int


@dataclass
class ComputeFizzBuzzRangeOutput:
    data: list[str] = field(default_factory=list)


def _in_bounds(value: int) -> bool:
    return FIZZBUZZ_MIN_VALUE <= value <= FIZZBUZZ_MAX_VALUE


def validate_params(params: ComputeFizzBuzzRangeParams) -> None:
    """Check the parameters, raising on the first invalid one."""
    if not params.string1:
        raise FizzBuzzValidationError(ERR_STRING1_REQUIRED)
    if not params.string2:
        raise FizzBuzzValidationError(ERR_STRING2_REQUIRED)
    if not _in_bounds(params.int1):
        raise FizzBuzzValidationError(ERR_INVALID_INT1)
    if not _in_bounds(params.int2):
        raise FizzBuzzValidationError(ERR_INVALID_INT2)
    if not _in_bounds(params.limit):
        raise FizzBuzzValidationError(ERR_INVALID_LIMIT)


class FizzBuzzMapper:
    """Maps a single integer to its token for one set of parameters"""

    def __init__(self, params: ComputeFizzBuzzRangeParams):
        self.fizz = params.string1
        self.buzz = params.string2
        self.fizzbuzz = params.string1 + params.string2
        self.fizz_mod = params.int1
        self.buzz_mod = params.int2
        self.limit = params.limit

    def map(self, value: int) -> str:
        is_fizz = value % self.fizz_mod == 0
        is_buzz = value % self.buzz_mod == 0

        if is_fizz and is_buzz:
            return self.fizzbuzz
        if is_fizz:
            return self.fizz
        if is_buzz:
            return self.buzz
        return str(value)

    def compute_range(self) -> list[str]:
        return [self.map(value) for value in range(1, self.limit + 1)]


class FizzBuzzService:
    """Service handling the FizzBuzz feature"""

    def compute_fizzbuzz_range(
        self, params: ComputeFizzBuzzRangeParams
    ) -> ComputeFizzBuzzRangeOutput:
        """Apply FizzBuzz configured by ``params`` to the range 1..limit.

        Raises:
            FizzBuzzValidationError: if any parameter is invalid
        """
        validate_params(params)
        return ComputeFizzBuzzRangeOutput(data=FizzBuzzMapper(params).compute_range())
