from __future__ import annotations
import re
from email import policy
from email.parser import BytesParser

from loguru import logger

from mailnotifier.domain.entities.message_summary import MessageSummary

_UID_RE = re.compile(rb"UID (\d+)")
_DECODED_HEADERS = ("From", "Subject")


def _clean(value) -> str:
    # Collapse folded header whitespace onto one line
    return " ".join(str(value or "").split())


def _decode_headers(header_bytes: bytes) -> dict[str, str]:
    # Date stays as the server sent it; policy.default would re-render it
    raw = BytesParser(policy=policy.compat32).parsebytes(header_bytes, headersonly=True)
    headers = {"Date": _clean(raw.get("Date"))}

    em = BytesParser(policy=policy.default).parsebytes(header_bytes, headersonly=True)
    try:
        headers.update({name: _clean(em.get(name)) for name in _DECODED_HEADERS})
    except (ValueError, IndexError, TypeError) as e:
        # Malformed encoded words; keep the raw header text instead
        logger.debug(f"Falling back to raw headers: {e}")
        headers.update({name: _clean(raw.get(name)) for name in _DECODED_HEADERS})
    return headers


def headers_to_summary(uid: int, header_bytes: bytes) -> MessageSummary:
    headers = _decode_headers(header_bytes)
    return MessageSummary(
        uid=uid,
        sender=headers["From"],
        subject=headers["Subject"],
        date=headers["Date"],
    )


def parse_fetch_response(data: list) -> list[MessageSummary]:
    """Turn a UID FETCH ... BODY.PEEK[HEADER.FIELDS ...] response into summaries.

    imaplib returns each message as a ``(meta, literal)`` tuple followed by a
    closing ``b')'`` chunk. Servers may put ``UID n`` after the literal, in
    which case it lands in that trailing chunk.
    """
    summaries: list[MessageSummary] = []
    for i, item in enumerate(data):
        if not isinstance(item, tuple) or len(item) < 2:
            continue
        meta, header_bytes = item[0], item[1]
        match = _UID_RE.search(meta)
        if match is None and i + 1 < len(data) and isinstance(data[i + 1], bytes):
            match = _UID_RE.search(data[i + 1])
        if match is None:
            logger.warning(f"FETCH response without UID, skipping: {meta[:80]!r}")
            continue
        summaries.append(headers_to_summary(int(match.group(1)), header_bytes or b""))
    return summaries
