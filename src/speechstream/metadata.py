"""Decode result types.

Read-only value objects returned by ``Model.stt_with_metadata`` and
``Stream.finish_stream_with_metadata``.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TokenMetadata:
    """A single decoded token (character or word piece) with timing."""

    text: str
    timestep: int  # logit frame index
    start_time: float  # seconds from start of audio
    duration: float = 0.0  # seconds

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "timestep": self.timestep,
            "start_time": round(self.start_time, 4),
            "duration": round(self.duration, 4),
        }


@dataclass(frozen=True)
class CandidateTranscript:
    """One decoding alternative.

    Tokens must be time-ordered and non-overlapping.
    """

    tokens: tuple[TokenMetadata, ...] = ()
    confidence: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "tokens", tuple(self.tokens))
        for prev, cur in zip(self.tokens, self.tokens[1:]):
            if cur.start_time < prev.end_time - 1e-9:
                raise ValueError(
                    f"Tokens overlap or are out of order: {prev!r} then {cur!r}"
                )

    @property
    def text(self) -> str:
        return "".join(token.text for token in self.tokens)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "confidence": self.confidence,
            "tokens": [token.to_dict() for token in self.tokens],
        }


@dataclass(frozen=True)
class Metadata:
    """Candidate transcripts ordered best-first by confidence."""

    transcripts: tuple[CandidateTranscript, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        ordered = sorted(self.transcripts, key=lambda c: c.confidence, reverse=True)
        object.__setattr__(self, "transcripts", tuple(ordered))

    @property
    def best(self) -> CandidateTranscript | None:
        """Highest-confidence candidate, or None if there are no candidates."""
        return self.transcripts[0] if self.transcripts else None

    @property
    def text(self) -> str:
        """Text of the best candidate ("" when there are no candidates)."""
        best = self.best
        return best.text if best else ""

    def __len__(self) -> int:
        return len(self.transcripts)

    def to_dict(self) -> dict:
        return {"transcripts": [c.to_dict() for c in self.transcripts]}
