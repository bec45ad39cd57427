"""Slide handler registry.

A data source's CUSTOM_FUNCTION names the handler that turns its rows into
slides. Handlers register themselves by name at import time:

    @register_handler("collection")
    def create_collection_slides(ctx, datasource): ...

and are looked up once per data source with resolve_handler().
"""

from typing import Callable

from errors import UnknownHandlerError

_HANDLERS: dict[str, Callable] = {}


def register_handler(name: str):
    """Decorator that registers a slide handler under name."""
    def decorator(func: Callable) -> Callable:
        if name in _HANDLERS and _HANDLERS[name] is not func:
            raise ValueError(f"Handler {name!r} is already registered")
        _HANDLERS[name] = func
        return func
    return decorator


def resolve_handler(name: str) -> Callable:
    try:
        return _HANDLERS[name]
    except KeyError:
        known = ", ".join(sorted(_HANDLERS)) or "none"
        raise UnknownHandlerError(
            f"Unknown slide handler {name!r} (registered: {known})"
        ) from None


def registered_handlers() -> list[str]:
    return sorted(_HANDLERS)


def select_handler_name(datasource) -> str:
    """CUSTOM_FUNCTION wins; otherwise SINGLE_VALUE picks single or collection."""
    if datasource.custom_function:
        return datasource.custom_function
    return "single" if datasource.single_value else "collection"
