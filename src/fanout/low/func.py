import importlib
import inspect
from abc import abstractmethod
from typing import Any, Callable, Generic, Iterable, NoReturn, Optional, Protocol, TypeVar, cast, runtime_checkable

from pydantic import BaseModel
from typing_extensions import Self

T = TypeVar("T")


def maybe_head(v: Iterable[T]) -> Optional[T]:
    try:
        return next(iter(v))
    except StopIteration:
        return None


def assert_never(v: Any) -> NoReturn:
    """For exhaustive enum checks etc"""
    raise TypeError(v)


@runtime_checkable
class Semigroup(Protocol):
    """Basically 'has plus'"""

    @abstractmethod
    def __add__(self, other: Self) -> Self:
        pass


E = TypeVar("E", bound=Semigroup)


class Either(Generic[T, E]):
    """Mostly for lazy gathering of errors. Looks fancier than actually is"""

    def __init__(self, t: Optional[T] = None, e: Optional[E] = None):
        self.t = t
        self.e = e

    @classmethod
    def ok(cls, t: T) -> Self:
        return cls(t=t)

    @classmethod
    def error(cls, e: E) -> Self:
        return cls(e=e)

    def get_or_raise(self, raiser: Optional[Callable[[E], BaseException]] = None) -> T:
        if self.e:
            if not raiser:
                raise ValueError(self.e)
            else:
                raise raiser(self.e)
        else:
            return cast(T, self.t)

    def append(self, other: Optional[E]) -> Self:
        if other:
            if not self.e:
                return self.error(other)
            else:
                return self.error(self.e + other)
        else:
            return self


def resolve_callable(fqn: str) -> Callable:
    """Imports `module:qualname` (or `module.name`) and returns the attribute"""
    if ":" in fqn:
        module_name, qualname = fqn.split(":", 1)
    else:
        module_name, qualname = fqn.rsplit(".", 1)
    target: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        target = getattr(target, part)
    if not callable(target):
        raise TypeError(f"{fqn} is not callable")
    return target


def takes_argument(f: Callable) -> bool:
    """Whether `f` can be invoked with a single positional argument. Builtins without
    signature are assumed to take one"""
    try:
        signature = inspect.signature(f)
    except (TypeError, ValueError):
        return True
    positional = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    for param in signature.parameters.values():
        if param.kind == inspect.Parameter.VAR_POSITIONAL or param.kind in positional:
            return True
    return False


B = TypeVar("B", bound=BaseModel)
def pyd_replace(model: B, **kwargs) -> B:
    """Like dataclasses.replace but for pydantic"""
    return model.model_copy(update=kwargs)
