"""Temporary files for image attachments.

The agent CLI is sandboxed to the working directory, so attachments
are written beneath it and referenced by absolute path in the
instruction text. Everything written is removed when the session ends.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


def _attachment_data(image: Any) -> str | None:
    if isinstance(image, str):
        return image
    if isinstance(image, dict):
        data = image.get("data")
        if isinstance(data, str):
            return data
    return None


class TempAssets:
    """Image files written for one session, plus their directory."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self.temp_dir: Path | None = None
        self.paths: list[Path] = []
        self._cleaned = False

    def materialize(self, images: list[Any]) -> list[Path]:
        """Decode each data-URI attachment to ``image_<index>.<ext>``.

        Malformed entries are skipped with a warning.
        """
        if not images:
            return []

        stamp = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        self.temp_dir = (self._root / stamp).resolve()
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        for index, image in enumerate(images):
            data = _attachment_data(image)
            match = _DATA_URI_RE.match(data.strip()) if data else None
            if match is None:
                logger.warning("Skipping image %d: invalid data URI", index)
                continue
            mime_type, payload = match.groups()
            extension = mime_type.split("/", 1)[1] if "/" in mime_type else ""
            extension = extension or "png"
            try:
                raw = base64.b64decode(payload, validate=False)
            except (binascii.Error, ValueError) as exc:
                logger.warning("Skipping image %d: bad base64 payload: %s", index, exc)
                continue
            path = self.temp_dir / f"image_{index}.{extension}"
            path.write_bytes(raw)
            self.paths.append(path)

        logger.info("Wrote %d image(s) to %s", len(self.paths), self.temp_dir)
        return list(self.paths)

    def annotate(self, command: str | None) -> str | None:
        """Append the image paths to the instruction, if both exist."""
        if not self.paths or not command or not command.strip():
            return command
        listing = "\n".join(
            f"{i}. {path}" for i, path in enumerate(self.paths, start=1)
        )
        return f"{command}\n\n[Images provided at the following paths:]\n{listing}"

    def cleanup(self) -> None:
        """Delete every written file and the directory. Never raises."""
        if self._cleaned:
            return
        self._cleaned = True
        for path in self.paths:
            try:
                path.unlink(missing_ok=True)
            except (OSError, ValueError) as exc:
                logger.error("Failed to delete temp image %s: %s", path, exc)
        if self.temp_dir is not None:
            try:
                shutil.rmtree(self.temp_dir)
            except FileNotFoundError:
                pass
            except (OSError, ValueError) as exc:
                logger.error(
                    "Failed to delete temp directory %s: %s", self.temp_dir, exc
                )


class TempAssetManager:
    """Creates TempAssets rooted under a working directory."""

    def __init__(self, temp_dir_name: str = ".tmp/images") -> None:
        self._temp_dir_name = temp_dir_name

    def prepare(
        self,
        cwd: str,
        images: list[Any],
        command: str | None,
    ) -> tuple[TempAssets, str | None]:
        """Write ``images`` under ``cwd`` and return (assets, annotated command).

        Filesystem errors while writing are logged; whatever was
        written so far is still tracked for cleanup.
        """
        assets = TempAssets(Path(cwd) / self._temp_dir_name)
        try:
            assets.materialize(images)
        except (OSError, ValueError) as exc:
            logger.error("Error processing images in %s: %s", cwd, exc)
        return assets, assets.annotate(command)
