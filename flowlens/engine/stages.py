"""
Operational stages and their expected durations.

The expected duration of each stage is business policy, not part of the
bottleneck algorithm. The default table below can be replaced by a JSON file
(``STAGE_POLICY_PATH``) holding a list of stage definitions::

    [
        {"name": "Initiated", "nextStage": "Requests Sent", "expectedDurationHours": 24},
        ...
    ]

The order of the entries is significant: it breaks ties when ranking
bottlenecks and fixes the row order of the heat map.
"""

import json
from pathlib import Path
from typing import Iterable, Iterator, Optional

import structlog

from flowlens.models.analysis import StageDefinition
from flowlens.models.enums import OrderStage

logger = structlog.get_logger()


DEFAULT_STAGE_DEFINITIONS = [
    StageDefinition(name=OrderStage.INITIATED.value, next_stage=OrderStage.REQUESTS_SENT.value, expected_duration_hours=24),
    StageDefinition(name=OrderStage.REQUESTS_SENT.value, next_stage=OrderStage.QUOTED.value, expected_duration_hours=48),
    StageDefinition(name=OrderStage.QUOTED.value, next_stage=OrderStage.ACCEPTED.value, expected_duration_hours=72),
    StageDefinition(name=OrderStage.ACCEPTED.value, next_stage=OrderStage.PAID.value, expected_duration_hours=48),
    StageDefinition(name=OrderStage.PAID.value, next_stage=OrderStage.IN_PROGRESS.value, expected_duration_hours=24),
    StageDefinition(name=OrderStage.IN_PROGRESS.value, next_stage=OrderStage.IN_TRANSIT.value, expected_duration_hours=12),
    StageDefinition(name=OrderStage.IN_TRANSIT.value, next_stage=OrderStage.DELIVERED.value, expected_duration_hours=24),
    StageDefinition(name=OrderStage.DELIVERED.value, next_stage=OrderStage.COMPLETED.value, expected_duration_hours=24),
]


class StagePolicy:
    """
    Ordered, immutable table of scored stages.

    Only stages with a definition are scored; an order leaving any other stage
    (including the terminal ``Completed``) contributes no transition.
    """

    def __init__(self, definitions: Iterable[StageDefinition] = DEFAULT_STAGE_DEFINITIONS):
        self._definitions: dict[str, StageDefinition] = {}
        for definition in definitions:
            if definition.name in self._definitions:
                raise ValueError(f"Duplicate stage definition: {definition.name}")
            self._definitions[definition.name] = definition

        if not self._definitions:
            raise ValueError("Stage policy needs at least one stage definition")

    @classmethod
    def from_json_file(cls, path: str) -> "StagePolicy":
        """
        Load a policy from a JSON list of stage definitions.

        Raises:
            ValueError: If the file does not hold a non-empty list of valid definitions
            OSError: If the file cannot be read
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Stage policy file {path} must contain a JSON list")

        policy = cls(StageDefinition.model_validate(item) for item in raw)
        logger.info("stage_policy_loaded", path=path, stages=policy.stage_names)
        return policy

    @property
    def stage_names(self) -> list[str]:
        return list(self._definitions)

    @property
    def initial_stage(self) -> str:
        return next(iter(self._definitions))

    def get(self, stage: str) -> Optional[StageDefinition]:
        return self._definitions.get(stage)

    def expected_hours(self, stage: str) -> float:
        return self._definitions[stage].expected_duration_hours

    def __contains__(self, stage: object) -> bool:
        return stage in self._definitions

    def __iter__(self) -> Iterator[StageDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)


def load_stage_policy(path: Optional[str] = None) -> StagePolicy:
    """Policy from ``path`` when given, the default table otherwise."""
    if path:
        return StagePolicy.from_json_file(path)
    return StagePolicy()
