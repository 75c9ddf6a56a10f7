import base64
import binascii
import os
import re

DEFAULT_STEM = "audio"
TARGET_EXT = "mp3"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_\-]")


class ValidationError(Exception):
    def __init__(self, reason, message):
        super().__init__(message)
        self.reason = reason
        self.message = message


def validate_request(body, source_ext, max_size):
    """
    Check a conversion request body and decode its payload.

    Args:
        body: parsed JSON body (anything that is not a dict counts as empty)
        source_ext: expected extension without the dot, e.g. "m4a"
        max_size: largest accepted decoded payload, in bytes

    Returns:
        (file_name, data) with the decoded bytes

    Raises:
        ValidationError with one of the reasons missing_fields,
        wrong_extension, invalid_encoding, empty_payload, too_large
    """
    if not isinstance(body, dict):
        body = {}
    file_name = body.get("fileName")
    file_data = body.get("fileData")

    if not isinstance(file_name, str) or not isinstance(file_data, str) or not file_name or not file_data:
        raise ValidationError("missing_fields", "fileName and fileData are required.")

    ext = os.path.splitext(file_name)[1].lower()
    if ext != f".{source_ext}":
        raise ValidationError("wrong_extension", f"Please choose a file with the .{source_ext} extension.")

    # data URIs look like "data:audio/ogg;base64,<payload>"
    # MIME-wrapped input carries newlines; unpadded input is accepted too
    encoded = "".join(file_data.rpartition(",")[2].split())
    encoded += "=" * (-len(encoded) % 4)
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("invalid_encoding", "fileData is not valid Base64.")

    if not data:
        raise ValidationError("empty_payload", "The uploaded file is empty.")
    if len(data) > max_size:
        limit_mb = max_size // (1024 * 1024)
        raise ValidationError("too_large", f"The file exceeds {limit_mb}MB and cannot be processed.")

    return file_name, data


def safe_output_name(file_name):
    stem = os.path.splitext(os.path.basename(file_name))[0]
    stem = _UNSAFE_CHARS.sub("_", stem) or DEFAULT_STEM
    return f"{stem}.{TARGET_EXT}"


def encode_output(output_path):
    with open(output_path, "rb") as f:
        return base64.b64encode(f.read()).decode("ascii")
