"""
Duplicate detection and resolution inside the uploaded file.

Rows are grouped by a composite key over the selected match fields
(AND semantics). Each group of two or more rows gets a resolution:

    keepFirst / keepLast  one member survives (selected_index)
    merge                 one composite row, field values picked per member
    skip                  every member is dropped

All functions are pure; ImportSession owns the state.
"""

from typing import Iterable, Optional
import structlog

from models.app_record import AppField, CANONICAL_FIELDS, AppSnapshot, MappedRow
from models.imports import (
    CsvDuplicateAction,
    CsvDuplicateResolution,
    CsvDuplicateSummary,
    DuplicateGroup,
)
from exceptions import DuplicateGroupNotFoundError, InvalidResolutionError

logger = structlog.get_logger(__name__)

DEFAULT_MATCH_FIELDS: list[AppField] = [AppField.APP_NAME]
DEFAULT_BULK_ACTION = CsvDuplicateAction.KEEP_FIRST

_KEEP_ACTIONS = (CsvDuplicateAction.KEEP_FIRST, CsvDuplicateAction.KEEP_LAST)


# ===================
# GROUPING
# ===================

def ordered_match_fields(fields: Iterable[AppField]) -> list[AppField]:
    """Selected fields in canonical order, without repeats."""
    selected = set(fields)
    return [field for field in CANONICAL_FIELDS if field in selected]


def match_fields_key(fields: Iterable[AppField]) -> str:
    """Stable string form of a field selection, used to detect changes."""
    return ",".join(sorted(field.value for field in set(fields)))


def composite_key(row: MappedRow, fields: list[AppField]) -> str:
    """field:value pairs over the given fields, joined with |."""
    return "|".join(f"{field.value}:{row.get(field)}" for field in fields)


def find_csv_duplicates(
    rows: Iterable[MappedRow],
    match_fields: Iterable[AppField]
) -> list[DuplicateGroup]:
    """
    Group rows sharing identical values on every selected field.

    Args:
        rows: Mapped rows in file order
        match_fields: Fields to compare; empty means no duplicates possible

    Returns:
        Groups with two or more members, in first-seen key order
    """
    fields = ordered_match_fields(match_fields)
    if not fields:
        logger.info("csv_duplicates_no_match_fields")
        return []

    buckets: dict[str, list[MappedRow]] = {}
    for row in rows:
        buckets.setdefault(composite_key(row, fields), []).append(row)

    groups = [
        DuplicateGroup(key=key, records=members, matched_on=fields)
        for key, members in buckets.items()
        if len(members) > 1
    ]

    logger.info(
        "csv_duplicates_checked",
        match_fields=[field.value for field in fields],
        groups=len(groups),
        rows_in_groups=sum(len(group.records) for group in groups)
    )

    return groups


def find_group(groups: Iterable[DuplicateGroup], group_key: str) -> DuplicateGroup:
    """
    Raises:
        DuplicateGroupNotFoundError: No group has that key
    """
    for group in groups:
        if group.key == group_key:
            return group
    raise DuplicateGroupNotFoundError(group_key)


# ===================
# RESOLUTIONS
# ===================

def initial_resolution(
    group: DuplicateGroup,
    action: CsvDuplicateAction
) -> CsvDuplicateResolution:
    """Resolution a group gets when a bulk action is applied to it."""
    if action == CsvDuplicateAction.SKIP:
        selected = None
    elif action == CsvDuplicateAction.KEEP_LAST:
        selected = group.records[-1].original_index
    else:
        selected = group.records[0].original_index

    return CsvDuplicateResolution(action=action, selected_index=selected)


def apply_bulk_action(
    groups: Iterable[DuplicateGroup],
    action: CsvDuplicateAction
) -> dict[str, CsvDuplicateResolution]:
    """Resolve every group with the same action, replacing earlier choices."""
    resolutions = {group.key: initial_resolution(group, action) for group in groups}
    logger.info("csv_bulk_action_applied", action=action.value, groups=len(resolutions))
    return resolutions


def set_group_action(
    group: DuplicateGroup,
    current: Optional[CsvDuplicateResolution],
    action: CsvDuplicateAction
) -> CsvDuplicateResolution:
    """
    Change one group's action.

    keepFirst/keepLast pick their member; merge keeps whatever member
    was selected before (first member if none). Skip selects nothing.
    """
    if action in _KEEP_ACTIONS or action == CsvDuplicateAction.SKIP:
        return initial_resolution(group, action)

    selected = current.selected_index if current else None
    if selected not in group.original_indices:
        selected = group.records[0].original_index

    merge_fields = dict(current.merge_fields) if current else {}

    return CsvDuplicateResolution(action=action, selected_index=selected, merge_fields=merge_fields)


def select_record(
    group: DuplicateGroup,
    current: Optional[CsvDuplicateResolution],
    original_index: int
) -> CsvDuplicateResolution:
    """
    Pick the surviving member of a keep group by its original row index.

    Raises:
        InvalidResolutionError: Row is not in the group, or the group is merged/skipped
    """
    if original_index not in group.original_indices:
        raise InvalidResolutionError(
            f"Row {original_index} is not part of this duplicate group",
            details={"group_key": group.key, "members": group.original_indices}
        )

    action = current.action if current else DEFAULT_BULK_ACTION
    if action not in _KEEP_ACTIONS:
        raise InvalidResolutionError(
            f"Cannot select a record while the group is set to {action.value}",
            details={"group_key": group.key, "action": action.value}
        )

    return CsvDuplicateResolution(action=action, selected_index=original_index)


def set_merge_field(
    group: DuplicateGroup,
    current: Optional[CsvDuplicateResolution],
    field: AppField,
    member_index: int
) -> CsvDuplicateResolution:
    """
    Choose which member supplies a field of the merged row.

    Args:
        member_index: 0-based position within the group (not a row index)

    Raises:
        InvalidResolutionError: Position outside the group, or group not merged
    """
    if not 0 <= member_index < len(group.records):
        raise InvalidResolutionError(
            f"Member {member_index} does not exist in a group of {len(group.records)}",
            details={"group_key": group.key, "member_index": member_index}
        )
    if current is None or current.action != CsvDuplicateAction.MERGE:
        raise InvalidResolutionError(
            "Set the group action to merge before choosing merge fields",
            details={"group_key": group.key}
        )

    merge_fields = {**current.merge_fields, field: member_index}
    return current.model_copy(update={"merge_fields": merge_fields})


def _is_valid_for(resolution: CsvDuplicateResolution, group: DuplicateGroup) -> bool:
    if resolution.action in _KEEP_ACTIONS:
        return resolution.selected_index in group.original_indices
    if resolution.action == CsvDuplicateAction.MERGE:
        return all(0 <= index < len(group.records) for index in resolution.merge_fields.values())
    return True


def reconcile_resolutions(
    groups: list[DuplicateGroup],
    previous_groups: list[DuplicateGroup],
    previous: dict[str, CsvDuplicateResolution],
    bulk_action: CsvDuplicateAction
) -> dict[str, CsvDuplicateResolution]:
    """
    Carry resolutions over to a recomputed set of groups.

    A group keeps its resolution when a group with the same key and the
    same members existed before; new or changed groups get the bulk action.
    """
    previous_members = {group.key: group.original_indices for group in previous_groups}
    resolutions = {}

    for group in groups:
        resolution = previous.get(group.key)
        if (
            resolution is not None
            and previous_members.get(group.key) == group.original_indices
            and _is_valid_for(resolution, group)
        ):
            resolutions[group.key] = resolution
        else:
            resolutions[group.key] = initial_resolution(group, bulk_action)

    return resolutions


# ===================
# SURVIVORS
# ===================

def merge_group(
    group: DuplicateGroup,
    merge_fields: dict[AppField, int]
) -> MappedRow:
    """
    Build the merged row of a group.

    Starts from the first member; each field listed in merge_fields takes
    the value of the member at that position. Custom fields and the row
    index come from the first member.
    """
    base = group.records[0]
    values = {}
    for field in CANONICAL_FIELDS:
        position = merge_fields.get(field, 0)
        if not 0 <= position < len(group.records):
            raise InvalidResolutionError(
                f"Merge source {position} for {field.value} is outside the group",
                details={"group_key": group.key, "field": field.value}
            )
        values[field.attr] = group.records[position].get(field)

    return MappedRow(
        original_index=base.original_index,
        snapshot=AppSnapshot(**values),
        custom_fields=dict(base.custom_fields),
    )


def _group_survivor(
    group: DuplicateGroup,
    resolution: CsvDuplicateResolution
) -> Optional[MappedRow]:
    """The single row a resolved group contributes, or None under skip."""
    if resolution.action == CsvDuplicateAction.SKIP:
        return None

    if resolution.action == CsvDuplicateAction.MERGE:
        return merge_group(group, resolution.merge_fields)

    for record in group.records:
        if record.original_index == resolution.selected_index:
            return record

    raise InvalidResolutionError(
        f"Selected row {resolution.selected_index} is not part of the group",
        details={"group_key": group.key, "members": group.original_indices}
    )


def resolve_survivors(
    rows: Iterable[MappedRow],
    groups: Iterable[DuplicateGroup],
    resolutions: dict[str, CsvDuplicateResolution]
) -> list[MappedRow]:
    """
    Rows that remain after collapsing every duplicate group.

    Rows outside any group pass through unchanged. A group contributes at
    most one row, placed at the position of its anchor (selected member,
    or first member when merged). Groups without a resolution keep their
    first member. Output is ordered by original index; calling this twice
    with the same inputs gives the same result.
    """
    anchors: dict[int, Optional[MappedRow]] = {}
    grouped: set[int] = set()

    for group in groups:
        resolution = resolutions.get(group.key) or initial_resolution(group, DEFAULT_BULK_ACTION)
        grouped.update(group.original_indices)
        survivor = _group_survivor(group, resolution)
        if survivor is not None:
            anchors[survivor.original_index] = survivor

    survivors = []
    for row in sorted(rows, key=lambda r: r.original_index):
        if row.original_index not in grouped:
            survivors.append(row)
        elif row.original_index in anchors:
            survivors.append(anchors[row.original_index])

    return survivors


def summarize(
    groups: Iterable[DuplicateGroup],
    resolutions: dict[str, CsvDuplicateResolution]
) -> CsvDuplicateSummary:
    """Group count plus rows kept and dropped by the resolutions. Skip drops the whole group."""
    summary = CsvDuplicateSummary()

    for group in groups:
        resolution = resolutions.get(group.key)
        summary.total_groups += 1
        if resolution is not None and resolution.action == CsvDuplicateAction.SKIP:
            summary.records_skipped += len(group.records)
        else:
            summary.records_kept += 1
            summary.records_skipped += len(group.records) - 1

    return summary
