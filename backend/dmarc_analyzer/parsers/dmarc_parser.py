"""
DMARC Aggregate Report XML Parser

Pure decoder with no database dependencies. The decoder is permissive:
absent optional elements become empty strings or zero, and only malformed
XML or non-numeric counters are rejected.
"""
import codecs
import logging
import re
from typing import Any, BinaryIO, List, Union

import xmltodict
from pydantic import BaseModel, Field
from xml.parsers.expat import ExpatError

logger = logging.getLogger(__name__)

# Encodings expat decodes natively; anything else is transcoded to UTF-8 first
_EXPAT_ENCODINGS = {"utf-8", "utf-16", "iso8859-1", "ascii"}

_XML_DECLARATION = re.compile(
    rb"^(\xef\xbb\xbf)?\s*<\?xml[^>]*?encoding\s*=\s*[\"']([A-Za-z0-9._:-]+)[\"']"
)


class ReportDecodeError(Exception):
    """Raised when DMARC XML decoding fails"""
    pass


class PolicyOverrideReason(BaseModel):
    """Policy override reason (type + comment)"""
    reason: str = ""
    comment: str = ""


class DKIMAuthResult(BaseModel):
    """DKIM authentication result"""
    domain: str = ""
    selector: str = ""
    result: str = ""
    human_result: str = ""


class SPFAuthResult(BaseModel):
    """SPF authentication result"""
    domain: str = ""
    scope: str = ""
    result: str = ""


class ReportRecord(BaseModel):
    """Individual record from an aggregate report"""
    source_ip: str = ""
    count: int = 0
    disposition: str = ""
    eval_dkim: str = ""
    eval_spf: str = ""
    po_reasons: List[PolicyOverrideReason] = Field(default_factory=list)
    header_from: str = ""
    envelope_from: str = ""
    envelope_to: str = ""
    auth_dkim: List[DKIMAuthResult] = Field(default_factory=list)
    auth_spf: List[SPFAuthResult] = Field(default_factory=list)


class AggregateReport(BaseModel):
    """Complete DMARC aggregate report"""
    organization: str = ""
    email: str = ""
    extra_contact: str = ""
    report_id: str = ""
    date_range_begin: int = 0
    date_range_end: int = 0
    errors: List[str] = Field(default_factory=list)
    domain: str = ""
    align_dkim: str = ""
    align_spf: str = ""
    policy: str = ""
    subdomain_policy: str = ""
    percentage: int = 0
    failure_report: str = ""
    records: List[ReportRecord] = Field(default_factory=list)


def _as_list(value: Any) -> List[Any]:
    """xmltodict yields a dict for one element and a list for repeated ones"""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _node(parent: Any, key: str) -> dict:
    """Child element as a dict; missing or empty elements become {}"""
    if not isinstance(parent, dict):
        return {}
    value = parent.get(key)
    if isinstance(value, list):
        value = value[0] if value else None
    return value if isinstance(value, dict) else {}


def _text(parent: Any, key: str) -> str:
    """Child element text; missing or empty elements become ''"""
    if not isinstance(parent, dict):
        return ""
    value = parent.get(key)
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("#text")
    if value is None:
        return ""
    return str(value).strip()


def _int(parent: Any, key: str) -> int:
    raw = _text(parent, key)
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError:
        raise ReportDecodeError(f"Invalid integer for <{key}>: {raw!r}")


def _transcode(xml_data: bytes) -> bytes:
    """
    Re-encode documents whose declared charset expat cannot read

    Reporters use a variety of encodings (windows-1252, koi8-r, ...). The
    declaration is rewritten to UTF-8 so expat accepts the converted bytes.
    """
    match = _XML_DECLARATION.match(xml_data)
    if not match:
        return xml_data

    declared = match.group(2).decode("ascii")
    try:
        codec_name = codecs.lookup(declared).name
    except LookupError:
        raise ReportDecodeError(f"Unsupported XML encoding: {declared}")

    if codec_name in _EXPAT_ENCODINGS:
        return xml_data

    try:
        text = xml_data.decode(codec_name)
    except UnicodeDecodeError as e:
        raise ReportDecodeError(f"Failed to decode XML as {declared}: {str(e)}")

    start, end = match.span(2)
    head = xml_data[:start].decode("ascii", errors="ignore").lstrip("﻿")
    text = head + "UTF-8" + text[len(xml_data[:end].decode(codec_name)):]
    return text.encode("utf-8")


def _parse_record(rec: dict) -> ReportRecord:
    row = _node(rec, "row")
    policy_evaluated = _node(row, "policy_evaluated")
    identifiers = _node(rec, "identifiers")
    auth_results = _node(rec, "auth_results")

    return ReportRecord(
        source_ip=_text(row, "source_ip"),
        count=_int(row, "count"),
        disposition=_text(policy_evaluated, "disposition"),
        eval_dkim=_text(policy_evaluated, "dkim"),
        eval_spf=_text(policy_evaluated, "spf"),
        po_reasons=[
            PolicyOverrideReason(reason=_text(r, "type"), comment=_text(r, "comment"))
            for r in _as_list(policy_evaluated.get("reason"))
        ],
        header_from=_text(identifiers, "header_from"),
        envelope_from=_text(identifiers, "envelope_from"),
        envelope_to=_text(identifiers, "envelope_to"),
        auth_dkim=[
            DKIMAuthResult(
                domain=_text(d, "domain"),
                selector=_text(d, "selector"),
                result=_text(d, "result"),
                human_result=_text(d, "human_result"),
            )
            for d in _as_list(auth_results.get("dkim"))
        ],
        auth_spf=[
            SPFAuthResult(
                domain=_text(s, "domain"),
                scope=_text(s, "scope"),
                result=_text(s, "result"),
            )
            for s in _as_list(auth_results.get("spf"))
        ],
    )


def decode_report(source: Union[bytes, BinaryIO]) -> AggregateReport:
    """
    Decode a DMARC aggregate report

    Args:
        source: XML content as bytes or a readable binary stream

    Returns:
        Decoded AggregateReport

    Raises:
        ReportDecodeError: If the XML is malformed or a counter is not numeric
    """
    xml_data = source if isinstance(source, bytes) else source.read()
    if not xml_data or not xml_data.strip():
        raise ReportDecodeError("Empty XML document")

    try:
        data = xmltodict.parse(_transcode(xml_data))
    except ExpatError as e:
        raise ReportDecodeError(f"Failed to parse XML: {str(e)}")

    # The root element is normally <feedback>; decode whatever single root is present
    feedback = next(iter(data.values()), None) if data else None
    if not isinstance(feedback, dict):
        feedback = {}

    meta = _node(feedback, "report_metadata")
    date_range = _node(meta, "date_range")
    policy = _node(feedback, "policy_published")

    errors = []
    for err in _as_list(meta.get("error")):
        if isinstance(err, dict):
            err = err.get("#text")
        if err:
            errors.append(str(err).strip())

    return AggregateReport(
        organization=_text(meta, "org_name"),
        email=_text(meta, "email"),
        extra_contact=_text(meta, "extra_contact_info"),
        report_id=_text(meta, "report_id"),
        date_range_begin=_int(date_range, "begin"),
        date_range_end=_int(date_range, "end"),
        errors=errors,
        domain=_text(policy, "domain"),
        align_dkim=_text(policy, "adkim"),
        align_spf=_text(policy, "aspf"),
        policy=_text(policy, "p"),
        subdomain_policy=_text(policy, "sp"),
        percentage=_int(policy, "pct"),
        failure_report=_text(policy, "fo"),
        records=[
            _parse_record(rec)
            for rec in _as_list(feedback.get("record"))
            if isinstance(rec, dict)
        ],
    )
