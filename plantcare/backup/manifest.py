"""Parsing and validation of backup.json."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from plantcare.backup.exceptions import ManifestValidationError
from plantcare.backup.schemas import BackupManifest

logger = logging.getLogger(__name__)

# Maximum number of individual problems echoed back in an error message
MAX_REPORTED_ERRORS = 10


def _describe_location(data: Any, loc: tuple) -> str:
    """Render an error location as ``plants[2] (id=17): name``.

    Args:
        data: Raw decoded manifest.
        loc: Location tuple from a pydantic error.

    Returns:
        str: Human-readable path naming the offending record.
    """
    if len(loc) >= 2 and isinstance(loc[1], int):
        section, index = loc[0], loc[1]
        record = None
        if isinstance(data, dict) and isinstance(data.get(section), list):
            items = data[section]
            if 0 <= index < len(items):
                record = items[index]
        label = f"{section}[{index}]"
        if isinstance(record, dict) and "id" in record:
            label += f" (id={record['id']!r})"
        field_path = ".".join(str(part) for part in loc[2:])
        return f"{label}: {field_path}" if field_path else label
    return ".".join(str(part) for part in loc) or "manifest"


def _format_errors(data: Any, exc: ValidationError) -> list[str]:
    return [f"{_describe_location(data, err['loc'])}: {err['msg']}" for err in exc.errors()]


def parse_manifest(raw: bytes) -> BackupManifest:
    """Decode and validate backup.json.

    Args:
        raw: Manifest bytes from the archive.

    Returns:
        BackupManifest: Validated manifest with dates coerced to datetimes.

    Raises:
        ManifestValidationError: If the content is not JSON or does not match the schema.
    """
    try:
        data = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ManifestValidationError(f"backup.json is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestValidationError(f"backup.json is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ManifestValidationError("backup.json must contain a JSON object")

    try:
        return BackupManifest.model_validate(data)
    except ValidationError as e:
        errors = _format_errors(data, e)
        shown = "; ".join(errors[:MAX_REPORTED_ERRORS])
        if len(errors) > MAX_REPORTED_ERRORS:
            shown += f" (and {len(errors) - MAX_REPORTED_ERRORS} more)"
        logger.info(f"Rejected backup manifest with {len(errors)} validation errors")
        raise ManifestValidationError(f"Backup data validation failed: {shown}", errors) from e


def find_dangling_references(manifest: BackupManifest) -> list[str]:
    """List dependent records whose plant is not part of the manifest.

    These records would be skipped on import; listing them up front lets the
    user see what will be dropped.

    Args:
        manifest: Validated manifest.

    Returns:
        list[str]: One message per dangling reference.
    """
    plant_ids = {plant.id for plant in manifest.plants}
    problems = []

    for entry in manifest.watering_history:
        if entry.plant_id not in plant_ids:
            problems.append(
                f"Watering history entry {entry.id} references missing plant {entry.plant_id}"
            )

    for record in manifest.plant_health_records:
        if record.plant_id not in plant_ids:
            problems.append(f"Health record {record.id} references missing plant {record.plant_id}")

    for activity in manifest.care_activities:
        if activity.plant_id not in plant_ids:
            problems.append(
                f"Care activity {activity.id} references missing plant {activity.plant_id}"
            )

    return problems
