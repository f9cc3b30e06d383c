"""
Registry of named handlers -- callables addressable by a stable identifier rather than by
their pickled body.

Registration happens at module import, so a worker process resolves a handler by importing
the module that registered it and looking the name up:

```
from fanout.handlers import handler

@handler("double")
def double(x):
    return 2 * x
```

A Task constructed with `double` carries `handler:<module>:double` as its function source.
"""

import importlib
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

_registry: dict[str, Callable] = {}
_modules: dict[str, str] = {}


def register(name: str, f: Callable) -> Callable:
    if not name or ":" in name:
        raise ValueError(f"invalid handler name: {name!r}")
    if not callable(f):
        raise TypeError(f"handler {name} is not callable")
    if (existing := _registry.get(name)) is not None and existing is not f:
        raise ValueError(f"handler {name} already registered to {existing!r}")
    _registry[name] = f
    _modules[name] = f.__module__
    logger.debug(f"registered handler {name} from {f.__module__}")
    return f


def handler(name: str) -> Callable[[Callable], Callable]:
    """Decorator variant of `register`"""
    return lambda f: register(name, f)


def unregister(name: str) -> None:
    _registry.pop(name, None)
    _modules.pop(name, None)


def name_of(f: Callable) -> Optional[str]:
    """Name under which `f` is registered, if any"""
    for name, registered in _registry.items():
        if registered is f:
            return name
    return None


def module_of(name: str) -> str:
    return _modules[name]


def resolve(name: str, module: Optional[str] = None) -> Callable:
    if name not in _registry and module:
        importlib.import_module(module)
    if name not in _registry:
        raise KeyError(f"no handler registered under {name}")
    return _registry[name]
