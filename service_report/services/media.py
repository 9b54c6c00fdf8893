"""Inline image extraction for technician/admin form payloads.

Payloads coming from the report forms embed photos as data URLs
(``data:image/png;base64,...``) in a handful of well-known fields. Before a
payload is persisted those values are decoded, written under the upload root
and replaced by stable ``/uploads/images/<report>/<folder>/<file>`` paths.

The walk is driven by IMAGE_FIELDS; adding a field means adding a row there.

Extraction is best-effort. A value that cannot be decoded or written is left
as it was and reported in ExtractionResult.errors; sibling fields are still
processed. A payload that is not a JSON object comes back untouched.
Values already pointing at http(s) URLs or /uploads/ paths are skipped, so
running the extractor twice over the same payload changes nothing.
"""
from __future__ import annotations
import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from service_report.models.report import ServiceReport
from service_report.utils.files import sanitize_filename, random_suffix, remove_quietly

logger = logging.getLogger(__name__)

SCALAR = 'scalar'
ARRAY = 'array'

DEFAULT_FOLDER = 'draft'
FINALIZED_FOLDER = 'finalized'
FOLDER_OVERRIDE_KEY = 'finalizedDate'

EXTENSIONS = {
    'jpeg': '.jpg',
    'jpg': '.jpg',
    'png': '.png',
    'webp': '.webp',
}
DEFAULT_EXTENSION = '.png'

SKIP_PREFIXES = ('http://', 'https://', '/uploads/')

RawPayload = Union[str, bytes, bytearray]


@dataclass(frozen=True)
class ImageField:
    name: str
    arity: str
    label: str


IMAGE_FIELDS: Tuple[ImageField, ...] = (
    ImageField('beforeImage', SCALAR, 'beforeImage'),
    ImageField('afterImage', SCALAR, 'afterImage'),
    ImageField('beforeEvidence', ARRAY, 'beforeEvidence'),
    ImageField('afterEvidence', ARRAY, 'afterEvidence'),
    ImageField('problemPhotos', ARRAY, 'problemPhoto'),
)


@dataclass(frozen=True)
class DataURL:
    mime: str
    extension: str
    encoded: str


@dataclass(frozen=True)
class FieldError:
    field: str
    label: str
    reason: str


@dataclass
class ExtractionResult:
    payload: Any
    errors: List[FieldError] = field(default_factory=list)
    stored: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.stored)


def parse_data_url(value: Any) -> Optional[DataURL]:
    """Return the parts of an image data URL, or None if value is not one."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed or trimmed.startswith(SKIP_PREFIXES):
        return None
    if not trimmed.startswith('data:image/'):
        return None
    meta, sep, encoded = trimmed.partition(',')
    if not sep or ';base64' not in meta:
        return None
    mime = meta[len('data:'):].replace(';base64', '')
    subtype = mime.split(';', 1)[0].split('/', 1)[-1].strip().lower()
    return DataURL(mime=mime, extension=EXTENSIONS.get(subtype, DEFAULT_EXTENSION), encoded=encoded)


def select_folder(root: Dict[str, Any], status: str) -> str:
    folder = FINALIZED_FOLDER if status == ServiceReport.STATUS_DONE else DEFAULT_FOLDER
    override = root.get(FOLDER_OVERRIDE_KEY)
    if isinstance(override, str) and override.strip():
        folder = sanitize_filename(override, default=DEFAULT_FOLDER)
    return folder


def load_json_value(payload: Any) -> Any:
    """Decode raw JSON text for storage; undecodable text is kept as a string."""
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode('utf-8')
        except UnicodeDecodeError:
            return payload.decode('utf-8', errors='replace')
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except ValueError:
            return payload
    return payload


class MediaExtractor:
    """Persist inline images of a payload under ``<upload_dir>/images``."""

    def __init__(self, upload_dir: str, fields: Tuple[ImageField, ...] = IMAGE_FIELDS):
        self.upload_dir = upload_dir
        self.fields = fields

    def extract(self, report_id: int, status: str, payload: Any) -> ExtractionResult:
        """Rewrite known image fields of payload.

        payload may be a decoded object or raw JSON text/bytes; the result has
        the same shape as the input. Anything that is not a JSON object is
        returned as-is.
        """
        if payload is None:
            return ExtractionResult(payload)
        raw = isinstance(payload, (str, bytes, bytearray))
        if raw:
            try:
                root = json.loads(payload)
            except ValueError:
                return ExtractionResult(payload)
        else:
            root = payload
        if not isinstance(root, dict):
            return ExtractionResult(payload)

        folder = select_folder(root, status)
        out = dict(root)
        result = ExtractionResult(out)
        for image_field in self.fields:
            if image_field.name not in out:
                continue
            if image_field.arity == SCALAR:
                out[image_field.name] = self._store_value(report_id, folder, image_field.name, image_field.label, out[image_field.name], result)
            elif isinstance(out[image_field.name], list):
                out[image_field.name] = [
                    self._store_value(report_id, folder, image_field.name, f"{image_field.label}-{i:02d}", item, result)
                    for i, item in enumerate(out[image_field.name], start=1)
                ]

        if not result.changed:
            # nothing written; hand back the caller's exact input
            result.payload = payload
        elif raw:
            try:
                text = json.dumps(out, ensure_ascii=False, allow_nan=False)
            except ValueError as e:
                # e.g. 1e400 decodes to inf, which has no JSON spelling
                logger.warning('report %s: payload cannot be re-encoded (%s); keeping input', report_id, e)
                self._discard(result.stored)
                result.stored = []
                result.payload = payload
                return result
            result.payload = text.encode('utf-8') if isinstance(payload, (bytes, bytearray)) else text
        return result

    def _discard(self, urls: List[str]):
        for url in urls:
            remove_quietly(os.path.join(self.upload_dir, *url[len('/uploads/'):].split('/')), logger)

    def _store_value(self, report_id: int, folder: str, field_name: str, label: str, value: Any, result: ExtractionResult) -> Any:
        parsed = parse_data_url(value)
        if parsed is None:
            return value
        try:
            url = self.store_data_url(report_id, folder, label, parsed)
        except (binascii.Error, ValueError) as e:
            logger.warning('report %s: cannot decode %s (%s)', report_id, label, e)
            result.errors.append(FieldError(field_name, label, f'decode failed: {e}'))
            return value
        except OSError as e:
            logger.warning('report %s: cannot write %s (%s)', report_id, label, e)
            result.errors.append(FieldError(field_name, label, f'write failed: {e}'))
            return value
        result.stored.append(url)
        return url

    def store_data_url(self, report_id: int, folder: str, label: str, data_url: DataURL) -> str:
        """Decode and write one image; returns its public /uploads path.

        Raises binascii.Error on bad base64 and OSError on filesystem failures.
        """
        buf = base64.b64decode(data_url.encoded, validate=True)
        safe_label = sanitize_filename(label)
        safe_folder = sanitize_filename(folder, default=DEFAULT_FOLDER)
        stored_name = f"{safe_label}-{random_suffix()}{data_url.extension}"
        directory = os.path.join(self.upload_dir, 'images', str(report_id), safe_folder)
        os.makedirs(directory, exist_ok=True)
        stored_path = os.path.join(directory, stored_name)
        try:
            with open(stored_path, 'wb') as fh:
                fh.write(buf)
        except OSError:
            remove_quietly(stored_path, logger)
            raise
        return f"/uploads/images/{report_id}/{safe_folder}/{stored_name}"


__all__ = [
    'SCALAR', 'ARRAY', 'IMAGE_FIELDS', 'ImageField', 'DataURL', 'FieldError', 'ExtractionResult',
    'MediaExtractor', 'parse_data_url', 'select_folder', 'load_json_value',
]
