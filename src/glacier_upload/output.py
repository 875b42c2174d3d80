"""Output formatting for JSON and human-readable modes."""

import json

from .multipart import PartDescriptor, UploadSummary
from .upload import UploadResult


def format_size(size_bytes: int | float) -> str:
    """Format bytes as human-readable size."""
    size: float = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(size) < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format seconds as human-readable duration."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def format_success(result: UploadResult, json_output: bool = False) -> str:
    """Format a completed upload."""
    if json_output:
        return json.dumps(
            {
                "status": "success",
                "archive_id": result.archive_id,
                "tree_hash": result.tree_hash,
                "size": result.size,
                "upload_id": result.upload_id,
                "parts": len(result.parts),
                "resumed_parts": result.resumed_parts,
                "elapsed_seconds": round(result.elapsed_seconds, 2),
            },
            indent=2,
        )

    lines = [
        "",
        "Upload complete:",
        f"  Archive:   {result.archive_id}",
        f"  Tree hash: {result.tree_hash}",
        f"  Size:      {format_size(result.size)}",
    ]
    if result.multipart:
        lines.append(
            f"  Parts:     {len(result.parts)} ({result.resumed_parts} resumed)"
        )
    lines.append(f"  Time:      {format_duration(result.elapsed_seconds)}")
    return "\n".join(lines)


def format_error(
    code: str,
    message: str,
    json_output: bool = False,
) -> str:
    """Format error result."""
    if json_output:
        return json.dumps(
            {
                "status": "error",
                "code": code,
                "message": message,
            },
            indent=2,
        )

    return f"Error: {message}"


def format_uploads(uploads: list[UploadSummary], json_output: bool = False, vault: str = "") -> str:
    """Format the in-progress multipart uploads of a vault."""
    if json_output:
        return json.dumps(
            {
                "vault": vault,
                "uploads": [
                    {
                        "upload_id": u.upload_id,
                        "part_size": u.part_size,
                        "description": u.description,
                        "created": u.created,
                    }
                    for u in uploads
                ],
            },
            indent=2,
        )

    if not uploads:
        return "(no uploads in progress)"

    lines = ["Uploads in progress:"]
    for u in uploads:
        lines.append(f"  {u.upload_id}")
        lines.append(
            f"    created {u.created or '?'}, part size {format_size(u.part_size)}"
            + (f", {u.description!r}" if u.description else "")
        )
    return "\n".join(lines)


def format_parts(
    parts: list[PartDescriptor],
    part_size: int,
    json_output: bool = False,
    upload_id: str = "",
) -> str:
    """Format the parts the service holds for an upload."""
    if json_output:
        return json.dumps(
            {
                "upload_id": upload_id,
                "part_size": part_size,
                "parts": [p.to_dict() for p in parts],
            },
            indent=2,
        )

    if not parts:
        return "(no parts uploaded)"

    lines = [f"Parts of {upload_id}:"]
    for p in parts:
        start, end = p.byte_range(part_size)
        lines.append(f"  {p.index:>5}  bytes {start}-{end}  {p.tree_hash}")
    total = sum(p.size for p in parts)
    lines.append(f"  {len(parts)} parts, {format_size(total)}")
    return "\n".join(lines)
