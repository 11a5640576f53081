"""Python type to ClickHouse type mapping.

Python has a single ``int`` and ``float``; fixed-width integers and
single-precision floats are expressed with the marker types defined here
(``Int64``, ``UInt8``, ``Float32`` ...). They behave exactly like the
builtin at runtime and only change the inferred column type.

Example:
    @dataclass
    class Session:
        SessionId: str
        Hits: Int64
        Score: float

    clickhouse_type_for(Int64)  # 'Int64'
"""

from __future__ import annotations

import datetime
import decimal
import typing
import uuid
from typing import Any, Dict, NewType, Optional

__all__ = [
    "DEFAULT_CLICKHOUSE_TYPE",
    "Float32",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "UInt8",
    "UInt16",
    "UInt32",
    "UInt64",
    "clickhouse_type_for",
    "python_type_from_name",
]

Int8 = NewType("Int8", int)
Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
UInt8 = NewType("UInt8", int)
UInt16 = NewType("UInt16", int)
UInt32 = NewType("UInt32", int)
UInt64 = NewType("UInt64", int)
Float32 = NewType("Float32", float)

DEFAULT_CLICKHOUSE_TYPE = "String"

# Shared by column definitions and Redis structure inference
CLICKHOUSE_TYPES: Dict[Any, str] = {
    str: "String",
    int: "Int32",
    bool: "Bool",
    float: "Float64",
    decimal.Decimal: "Decimal(18,4)",
    uuid.UUID: "UUID",
    datetime.date: "Date",
    datetime.datetime: "DateTime64(3)",
    datetime.time: "String",
    Int8: "Int8",
    Int16: "Int16",
    Int32: "Int32",
    Int64: "Int64",
    UInt8: "UInt8",
    UInt16: "UInt16",
    UInt32: "UInt32",
    UInt64: "UInt64",
    Float32: "Float32",
}

# Names accepted in catalog files (``python_type: int64``)
PYTHON_TYPE_NAMES: Dict[str, Any] = {
    "str": str,
    "string": str,
    "int": int,
    "integer": int,
    "bool": bool,
    "boolean": bool,
    "float": float,
    "double": float,
    "decimal": decimal.Decimal,
    "uuid": uuid.UUID,
    "date": datetime.date,
    "datetime": datetime.datetime,
    "time": datetime.time,
    "int8": Int8,
    "int16": Int16,
    "int32": Int32,
    "int64": Int64,
    "uint8": UInt8,
    "uint16": UInt16,
    "uint32": UInt32,
    "uint64": UInt64,
    "float32": Float32,
    "float64": float,
}


def _unwrap_optional(python_type: Any) -> Any:
    """Optional[X] maps like X."""
    args = typing.get_args(python_type)
    if typing.get_origin(python_type) is not None and type(None) in args:
        remaining = [arg for arg in args if arg is not type(None)]
        if len(remaining) == 1:
            return remaining[0]
    return python_type


def clickhouse_type_for(python_type: Any) -> str:
    """Map a Python type annotation to a ClickHouse column type.

    Unknown types fall back to ``String``.
    """
    python_type = _unwrap_optional(python_type)
    return CLICKHOUSE_TYPES.get(python_type, DEFAULT_CLICKHOUSE_TYPE)


def python_type_from_name(name: str) -> Optional[Any]:
    """Look up a Python type by its catalog name (case-insensitive)."""
    return PYTHON_TYPE_NAMES.get(name.strip().lower())
