"""Response map: the runner's answers keyed by question id."""

from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from cadence.core.exceptions import ResponsesFrozenError

# Stored answer: a single value, or an ordered selection for multi-select
Answer = Union[str, Tuple[str, ...]]
AnswerInput = Union[str, Sequence[str]]


class ResponseMap:
    """Mapping from question id to answer.

    Recording an answer for an id that already has one overwrites it. Once
    frozen (at handoff) every further write raises ResponsesFrozenError.
    Multi-select answers are stored as tuples so snapshots can never be
    mutated from outside.
    """

    def __init__(self, initial: Optional[Dict[str, AnswerInput]] = None):
        self._answers: Dict[str, Answer] = {}
        self._frozen = False
        for question_id, answer in (initial or {}).items():
            self.record(question_id, answer)

    def record(self, question_id: str, answer: AnswerInput) -> None:
        if self._frozen:
            raise ResponsesFrozenError(
                f"Cannot record '{question_id}': responses were already handed off"
            )
        if isinstance(answer, str):
            self._answers[question_id] = answer
        else:
            self._answers[question_id] = tuple(answer)

    def get(self, question_id: str, default: Optional[Answer] = None) -> Optional[Answer]:
        return self._answers.get(question_id, default)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def as_dict(self) -> Dict[str, Union[str, List[str]]]:
        """Plain snapshot: strings stay strings, selections become lists."""
        return {
            key: value if isinstance(value, str) else list(value)
            for key, value in self._answers.items()
        }

    def copy(self) -> "ResponseMap":
        """Unfrozen copy with the same answers."""
        return ResponseMap(dict(self._answers))

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._answers

    def __getitem__(self, question_id: str) -> Answer:
        return self._answers[question_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._answers)

    def __len__(self) -> int:
        return len(self._answers)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ResponseMap):
            return self._answers == other._answers
        return NotImplemented

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"ResponseMap({self._answers!r}, {state})"
