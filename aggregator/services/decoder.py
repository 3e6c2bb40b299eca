"""
Record Decoder — one buffer line → one ``Event``.

The collector writes each record as a JSON array::

    ["/pricing", true, true, "https://news.example/item?id=1"]

    path, new visitor?, unique pageview?, referrer URL ("" when none)

Decoding is strict: valid UTF-8, exactly four items, no type coercion.
"""

from typing import NamedTuple, Optional

from pydantic import StrictBool, StrictStr, TypeAdapter, ValidationError

from aggregator.errors import DecodeError


class Event(NamedTuple):
    path: str
    is_new_visitor: bool
    is_unique_pageview: bool
    referrer_url: str


_RECORD = TypeAdapter(tuple[StrictStr, StrictBool, StrictBool, StrictStr])


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def decode_line(line: bytes | str, line_number: int | None = None) -> Optional[Event]:
    """Decode one buffer line. Blank lines return None; anything malformed raises DecodeError."""
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(
                line.decode("utf-8", errors="replace"), "invalid UTF-8", line_number
            ) from e

    line = line.strip()
    if line == "":
        return None

    try:
        values = _RECORD.validate_json(line, strict=True)
    except ValidationError as e:
        raise DecodeError(line, _first_error(e), line_number) from e

    return Event(*values)
