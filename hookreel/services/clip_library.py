"""Lookup of uploaded clips on the local filesystem.

Uploads live under ``{data_dir}/uploads/{reactions|demos|music}/{id}.{ext}``.
Writing them is the upload subsystem's job; this module only resolves ids.
"""

from pathlib import Path
from typing import Protocol

from hookreel.schemas.render import Clip, ClipKind

VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".webm"}
AUDIO_EXTENSIONS = {".mp3", ".m4a", ".aac", ".wav", ".ogg"}

_KIND_DIRS = {
    ClipKind.REACTION: "reactions",
    ClipKind.DEMO: "demos",
    ClipKind.MUSIC: "music",
}


class ClipResolver(Protocol):
    def resolve(self, kind: ClipKind, clip_id: str) -> Clip | None: ...


class ClipLibrary:
    """Resolves clip ids to files in the uploads directory."""

    def __init__(self, data_dir: str | Path):
        self.uploads_dir = Path(data_dir) / "uploads"

    def directory(self, kind: ClipKind) -> Path:
        return self.uploads_dir / _KIND_DIRS[kind]

    def resolve(self, kind: ClipKind, clip_id: str) -> Clip | None:
        # Ids are file stems; anything path-like is not a valid id
        if not clip_id or Path(clip_id).name != clip_id:
            return None

        directory = self.directory(kind)
        if not directory.is_dir():
            return None

        allowed = AUDIO_EXTENSIONS | VIDEO_EXTENSIONS if kind == ClipKind.MUSIC else VIDEO_EXTENSIONS
        # Exact stem match; ids are never treated as patterns
        for path in sorted(directory.iterdir()):
            if path.stem == clip_id and path.suffix.lower() in allowed and path.is_file():
                return Clip(id=clip_id, kind=kind, path=str(path))
        return None
