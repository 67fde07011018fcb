# /forkharness/core/position.py
from typing import Dict, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, model_validator


class PositionSnapshot(BaseModel):
    """
    Read-only capture of a strategy's ``getDepositorPosition()`` result.
    Compared by value; field names come from the ABI outputs when it names them.
    """
    names: Tuple[str, ...]
    values: Tuple[int, ...]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _same_arity(self) -> "PositionSnapshot":
        if len(self.names) != len(self.values):
            raise ValueError(f"{len(self.names)} field names for {len(self.values)} values")
        return self

    @classmethod
    def from_result(cls, result, names: Optional[Sequence[str]] = None) -> "PositionSnapshot":
        values = tuple(int(v) for v in (result if isinstance(result, (list, tuple)) else [result]))
        if not names or len(names) != len(values) or not all(names):
            names = [f"field_{i}" for i in range(len(values))]
        return cls(names=tuple(names), values=values)

    def __getitem__(self, key: Union[int, str]) -> int:
        if isinstance(key, str):
            try:
                key = self.names.index(key)
            except ValueError:
                raise KeyError(key) from None
        return self.values[key]

    def __len__(self) -> int:
        return len(self.values)

    def as_dict(self) -> Dict[str, int]:
        return dict(zip(self.names, self.values))

    def delta(self, before: "PositionSnapshot") -> Dict[str, int]:
        """Per-field ``self - before``. Both snapshots must have the same shape."""
        if before.names != self.names:
            raise ValueError(f"Snapshot shapes differ: {before.names} vs {self.names}")
        return {name: after - prior for name, after, prior in zip(self.names, self.values, before.values)}

    def is_well_formed(self) -> bool:
        return len(self.values) > 0 and all(v >= 0 for v in self.values)
