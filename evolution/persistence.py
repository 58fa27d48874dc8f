"""
Generation state persistence.

The full state of an evolutionary run (population, configuration, iteration,
best-ever record) is written as one JSON document. Samples are not part of
the state; a restoring engine reattaches its own.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.exceptions import PersistenceError
from core.structured_log import jlog
from evolution.orders import Order
from neural.network import FeedForwardNetwork
from samples.provider import Sample

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _candidate_to_dict(candidate: Any) -> Dict[str, Any]:
    return candidate.to_dict()


def _candidate_from_dict(kind: str, data: Dict[str, Any], samples: Optional[Sequence[Sample]]) -> Any:
    if kind == "network":
        return FeedForwardNetwork.from_dict(data, samples)
    if kind == "order":
        return Order.from_dict(data)
    raise PersistenceError(f"Unknown candidate kind: {kind}")


@dataclass
class GenerationState:
    """Snapshot of an evolutionary run."""
    kind: str
    candidates: List[Any] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)
    iteration: int = 0
    best_score: Optional[float] = None
    best_ever: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': STATE_VERSION,
            'kind': self.kind,
            'config': self.config,
            'iteration': self.iteration,
            'best_score': self.best_score,
            'best_ever': None if self.best_ever is None else _candidate_to_dict(self.best_ever),
            'candidates': [_candidate_to_dict(c) for c in self.candidates],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], samples: Optional[Sequence[Sample]] = None) -> GenerationState:
        kind = data['kind']
        best = data.get('best_ever')
        best_score = data.get('best_score')
        return cls(
            kind=kind,
            candidates=[_candidate_from_dict(kind, c, samples) for c in data.get('candidates', [])],
            config=dict(data.get('config') or {}),
            iteration=int(data.get('iteration', 0)),
            best_score=None if best_score is None else float(best_score),
            best_ever=None if best is None else _candidate_from_dict(kind, best, samples),
        )


def save_state(state: GenerationState, path: str | Path) -> None:
    """
    Write ``state`` as JSON.

    Raises:
        PersistenceError: empty path or unwritable file
    """
    if not path or not str(path):
        raise PersistenceError("empty filename")
    try:
        Path(path).write_text(json.dumps(state.to_dict()), encoding="utf-8")
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError("Failed to save generation state", context={"path": str(path)}, cause=e) from e
    jlog("state_saved", kind=state.kind, path=str(path), iteration=state.iteration,
         candidates=len(state.candidates))


def load_state(
    path: str | Path,
    samples: Optional[Sequence[Sample]] = None,
) -> Tuple[Optional[GenerationState], bool]:
    """
    Read a state written by ``save_state``.

    Returns:
        ``(state, True)`` on success, ``(None, False)`` when the path is
        empty, the file is missing or the content is malformed
    """
    if not path or not str(path):
        logger.warning("Cannot load generation state: empty filename")
        return None, False
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return GenerationState.from_dict(data, samples), True
    except FileNotFoundError:
        logger.warning(f"Generation state not found: {path}")
    except (OSError, ValueError, KeyError, TypeError, PersistenceError) as e:
        logger.warning(f"Generation state unreadable ({path}): {e}")
    return None, False
