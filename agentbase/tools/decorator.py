"""
@utility decorator - build a UtilityDescriptor from a typed async function.

Inspects the function signature and type hints to build the JSON Schema for
parameters, then wraps the function into the executor signature the
dispatcher expects (``async def executor(args: dict, context: ExecutionContext)``).

Usage::

    from typing import Annotated
    from agentbase.tools import utility, ExecutionContext

    @utility(id="utility_read_webpage")
    async def read_webpage(
        url: Annotated[str, "Page URL"],
        max_chars: Annotated[int, "Maximum characters to return"] = 20000,
        *,
        context: ExecutionContext,
    ) -> dict:
        \"\"\"Read the main content of a webpage.\"\"\"
        ...

    # read_webpage is now a UtilityDescriptor
    # read_webpage.parameters["required"] == ["url"]
"""

import inspect
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .models import ExecutionContext, UtilityDescriptor

_NoneType = type(None)


def _is_optional(annotation: Any) -> bool:
    """Return True if *annotation* is ``Optional[X]``."""
    if get_origin(annotation) is Union:
        return _NoneType in get_args(annotation)
    return False


def _unwrap_optional(annotation: Any) -> Any:
    non_none = [a for a in get_args(annotation) if a is not _NoneType]
    return non_none[0] if len(non_none) == 1 else annotation


def _extract_base_type(annotation: Any) -> Any:
    """Unwrap ``Annotated[T, ...]`` to get ``T``."""
    if get_origin(annotation) is Annotated:
        return get_args(annotation)[0]
    return annotation


def _extract_annotated_description(annotation: Any) -> Optional[str]:
    """If *annotation* is ``Annotated[T, "desc"]``, return ``"desc"``."""
    if get_origin(annotation) is not Annotated:
        return None
    for meta in get_args(annotation)[1:]:
        if isinstance(meta, str):
            return meta
    return None


def _python_type_to_json_schema(annotation: Any) -> Dict[str, Any]:
    """Map a Python type annotation to a JSON Schema dict."""
    base = _extract_base_type(annotation)

    if _is_optional(base):
        return _python_type_to_json_schema(_unwrap_optional(base))

    origin = get_origin(base)
    if base is str:
        return {"type": "string"}
    if base is bool:
        return {"type": "boolean"}
    if base is int:
        return {"type": "integer"}
    if base is float:
        return {"type": "number"}
    if base is list or origin is list:
        schema: Dict[str, Any] = {"type": "array"}
        args = get_args(base)
        if args:
            schema["items"] = _python_type_to_json_schema(args[0])
        return schema
    if base is dict or origin is dict:
        return {"type": "object"}

    return {"type": "string"}


def _build_json_schema(func: Callable) -> Dict[str, Any]:
    """Build ``{"type": "object", ...}`` from *func*'s signature."""
    sig = inspect.signature(func)
    hints = get_type_hints(func, include_extras=True)

    properties: Dict[str, Any] = {}
    required: List[str] = []

    for name, param in sig.parameters.items():
        if name == "context":
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        annotation = hints.get(name, str)
        prop_schema = _python_type_to_json_schema(annotation)
        desc = _extract_annotated_description(annotation)
        if desc:
            prop_schema["description"] = desc
        properties[name] = prop_schema

        has_default = param.default is not inspect.Parameter.empty
        if not has_default and not _is_optional(_extract_base_type(annotation)):
            required.append(name)

    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _build_wrapper(func: Callable) -> Callable:
    """Adapt *func* to ``async def executor(args, context)``."""
    sig = inspect.signature(func)
    hints = get_type_hints(func, include_extras=True)
    names: List[str] = []
    # Optional parameters without a default are passed None when omitted.
    none_if_missing: List[str] = []
    for name, param in sig.parameters.items():
        if name == "context":
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        names.append(name)
        if param.default is inspect.Parameter.empty and _is_optional(
            _extract_base_type(hints.get(name, str))
        ):
            none_if_missing.append(name)

    async def executor(args: Dict[str, Any], context: ExecutionContext) -> Any:
        kwargs = {name: args[name] for name in names if name in args}
        for name in none_if_missing:
            kwargs.setdefault(name, None)
        return await func(**kwargs, context=context)

    executor.__name__ = func.__name__
    executor.__doc__ = func.__doc__
    return executor


def utility(
    func: Optional[Callable] = None,
    *,
    id: Optional[str] = None,
    description: Optional[str] = None,
) -> Any:
    """Convert a typed async function into a :class:`UtilityDescriptor`.

    Supports both bare ``@utility`` and ``@utility(id=...)``. The first
    docstring paragraph becomes the description unless one is given.
    """

    def _make(fn: Callable) -> UtilityDescriptor:
        doc = inspect.getdoc(fn) or ""
        summary = doc.split("\n\n")[0].replace("\n", " ").strip()
        return UtilityDescriptor(
            id=id or fn.__name__,
            description=description or summary or fn.__name__,
            parameters=_build_json_schema(fn),
            executor=_build_wrapper(fn),
        )

    if func is not None:
        return _make(func)
    return _make
