# /forkharness/adapters/artifacts.py
# Loads compiled contract artifacts (hardhat / foundry JSON output).

import json
from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, field_validator

from forkharness.core.config import settings
from forkharness.core.logger import get_logger

log = get_logger(__name__)


class Artifact(BaseModel):
    contract_name: str
    abi: List[dict]
    bytecode: str

    model_config = ConfigDict(frozen=True)

    @field_validator("bytecode", mode="before")
    @classmethod
    def _flatten_bytecode(cls, value):
        # foundry nests the hex under {"object": ...}
        if isinstance(value, dict):
            value = value.get("object", "")
        return value


def find_artifact(name: str, artifacts_dir: str = None) -> Path:
    root = Path(artifacts_dir or settings.ARTIFACTS_DIR)
    matches = sorted(p for p in root.rglob(f"{name}.json") if not p.name.endswith(".dbg.json"))
    if not matches:
        raise FileNotFoundError(f"No compiled artifact named {name} under {root}")
    if len(matches) > 1:
        log.warning("ARTIFACT_AMBIGUOUS", name=name, candidates=[str(p) for p in matches])
    return matches[0]


def load_artifact(name: str, artifacts_dir: str = None) -> Artifact:
    path = find_artifact(name, artifacts_dir)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    artifact = Artifact(
        contract_name=data.get("contractName", name),
        abi=data["abi"],
        bytecode=data.get("bytecode", ""),
    )
    log.debug("ARTIFACT_LOADED", name=name, path=str(path))
    return artifact
