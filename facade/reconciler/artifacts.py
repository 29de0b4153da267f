"""
Compiled-artifact lookup on disk.

Supports the usual build output layout ``{out}/{File.sol}/{Unit}.json`` whose
``deployedBytecode.object`` (or ``bytecode.object``) holds the payload, and
plain ``{out}/{Unit}.hex`` / ``{out}/{Unit}.bin`` files.
"""

import json
import logging
from pathlib import Path
from typing import Union

from facade.core.models import ArtifactId

logger = logging.getLogger(__name__)


class DirectoryArtifactSource:
    """ArtifactSource reading compiled payloads from a build output directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def candidates(self, artifact_id: ArtifactId) -> list[Path]:
        paths = []
        if artifact_id.module_name:
            paths.append(self.root / Path(artifact_id.module_name).name / f"{artifact_id.unit_name}.json")
        paths.append(self.root / f"{artifact_id.unit_name}.json")
        paths.append(self.root / f"{artifact_id.unit_name}.hex")
        paths.append(self.root / f"{artifact_id.unit_name}.bin")
        return paths

    def load_payload(self, artifact_id: ArtifactId) -> Union[bytes, str]:
        for path in self.candidates(artifact_id):
            if not path.exists():
                continue
            logger.debug(f"Payload for {artifact_id} from {path}")
            if path.suffix == ".bin":
                return path.read_bytes()
            if path.suffix == ".hex":
                return path.read_text(encoding="utf-8").strip()
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"artifact {path} is not a JSON object")
            for key in ("deployedBytecode", "bytecode"):
                section = data.get(key)
                if isinstance(section, dict) and section.get("object"):
                    return section["object"]
                if isinstance(section, str) and section:
                    return section
            return ""
        raise FileNotFoundError(f"No compiled artifact for {artifact_id} under {self.root}")
