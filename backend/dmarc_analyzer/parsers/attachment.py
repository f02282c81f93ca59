"""
DMARC report attachment extraction

Locates the aggregate report inside a raw email and returns the XML as a
byte stream. Reporters attach reports as gzip, zip or plain XML under a
variety of MIME types; the first top-level part whose type is recognized
is used and any later parts are ignored.
"""
import base64
import binascii
import email
import gzip
import io
import logging
import re
import zipfile
import zlib
from email.message import Message
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)

GZIP_TYPES = frozenset({
    "application/gzip",
    "application/x-gzip",
    "application/gzip-compressed",
    "application/gzipped",
    "application/x-gunzip",
    "application/x-gzip-compressed",
    "gzip/document",
})

ZIP_TYPES = frozenset({
    "application/zip",
    "application/x-zip-compressed",
})

XML_TYPES = frozenset({
    "text/xml",
})

OCTET_STREAM = "application/octet-stream"

FORMAT_GZIP = "gzip"
FORMAT_ZIP = "zip"
FORMAT_XML = "xml"

_GZIP_MAGIC = b"\x1f\x8b"
_ZIP_MAGIC = b"PK"

_MEDIA_TYPE = re.compile(r"^\s*[\w!#$&^.+-]+/[\w!#$&^.+-]+\s*(;.*)?$", re.DOTALL)
_BASE64_BODY = re.compile(rb"^[A-Za-z0-9+/=\s]+$")


class AttachmentError(Exception):
    """Base class for attachment extraction failures"""
    pass


class MessageParseError(AttachmentError):
    """The raw bytes could not be parsed as an email"""
    pass


class ContentTypeError(AttachmentError):
    """A Content-Type header could not be parsed"""
    pass


class EmptyArchiveError(AttachmentError):
    """A zip attachment contained no entries"""
    pass


class AttachmentNotFoundError(AttachmentError):
    """No part of the message had a recognized report format"""
    pass


class AttachmentDecodeError(AttachmentError):
    """Corrupt base64, gzip or zip content"""
    pass


def _media_type(part: Message) -> Optional[str]:
    """Lowercased type/subtype of a part, or None when the header is absent"""
    header = part.get("Content-Type")
    if header is None:
        return None
    if not _MEDIA_TYPE.match(str(header)):
        raise ContentTypeError(f"Unparseable Content-Type: {header!r}")
    return part.get_content_type()


def classify(media_type: str, filename: Optional[str] = None) -> Optional[str]:
    """
    Map a MIME type to a report format

    The filename is only consulted for application/octet-stream.

    Returns:
        FORMAT_GZIP, FORMAT_ZIP, FORMAT_XML, or None when unrecognized
    """
    if media_type in GZIP_TYPES:
        return FORMAT_GZIP
    if media_type in ZIP_TYPES:
        return FORMAT_ZIP
    if media_type in XML_TYPES:
        return FORMAT_XML
    if media_type == OCTET_STREAM and filename:
        name = filename.lower()
        if name.endswith(".zip"):
            return FORMAT_ZIP
        if name.endswith(".gz"):
            return FORMAT_GZIP
    return None


def _unwrap_base64(data: bytes, magic: bytes) -> bytes:
    """
    Strip a second layer of base64 some providers apply to archives

    The transfer encoding has already been removed by the email package;
    content that still lacks the archive magic but reads as base64 is
    decoded once more.
    """
    if data.startswith(magic) or not _BASE64_BODY.match(data):
        return data
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise AttachmentDecodeError(f"Invalid base64 content: {str(e)}")


def _decompress_gzip(data: bytes) -> bytes:
    data = _unwrap_base64(data, _GZIP_MAGIC)
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise AttachmentDecodeError(f"Failed to decompress gzip attachment: {str(e)}")


def _extract_zip(data: bytes) -> bytes:
    data = _unwrap_base64(data, _ZIP_MAGIC)
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            entries = zf.infolist()
            if not entries:
                raise EmptyArchiveError("Zip attachment is empty")
            # Only the first entry is the report
            return zf.read(entries[0])
    except zipfile.BadZipFile as e:
        raise AttachmentDecodeError(f"Failed to read zip attachment: {str(e)}")
    except (OSError, EOFError, zlib.error) as e:
        raise AttachmentDecodeError(f"Failed to decompress zip entry: {str(e)}")


def _decode(part: Message, fmt: str) -> BinaryIO:
    payload = part.get_payload(decode=True) or b""
    if fmt == FORMAT_GZIP:
        return io.BytesIO(_decompress_gzip(payload))
    if fmt == FORMAT_ZIP:
        return io.BytesIO(_extract_zip(payload))
    return io.BytesIO(payload)


def extract_report_attachment(raw: bytes) -> BinaryIO:
    """
    Extract the DMARC XML report from a raw email

    Args:
        raw: Complete RFC 5322 message as bytes

    Returns:
        Readable binary stream of the XML report

    Raises:
        MessageParseError: If the message cannot be parsed
        ContentTypeError: If a Content-Type header is malformed
        EmptyArchiveError: If the zip attachment has no entries
        AttachmentNotFoundError: If no part has a recognized format
        AttachmentDecodeError: If base64, gzip or zip content is corrupt
    """
    if not raw or not raw.strip():
        raise MessageParseError("Empty message")

    msg = email.message_from_bytes(raw)
    if not msg.keys():
        raise MessageParseError("Message has no headers")

    media_type = _media_type(msg)
    if media_type is None:
        raise ContentTypeError("Message has no Content-Type header")

    if msg.get_content_maintype() == "multipart":
        if not msg.get_boundary() or not msg.is_multipart():
            raise MessageParseError(f"Malformed {media_type} message: missing boundary")

        for index, part in enumerate(msg.get_payload()):
            part_type = _media_type(part)
            if part_type is None:
                # An untyped part defaults to text/plain, which is never a report
                continue
            fmt = classify(part_type, part.get_filename())
            if fmt is None:
                logger.debug(f"Skipping part {index} with type {part_type}")
                continue
            logger.debug(f"Using part {index} ({part_type}) as {fmt} report")
            return _decode(part, fmt)

        raise AttachmentNotFoundError("EOF before valid attachment")

    fmt = classify(media_type)
    if fmt is None:
        raise AttachmentNotFoundError(f"Unrecognized message type: {media_type}")
    return _decode(msg, fmt)
