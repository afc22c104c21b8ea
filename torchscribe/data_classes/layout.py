from typing import Iterator, List, Optional

import torch

from ..constants import GAP_SEQUENCE_ID


class SequenceInfo:
    """One sequence within a minibatch: the parallel slot it lives in and its time extent.

    t_begin may be negative and t_end may exceed the minibatch's number of time steps when the
    sequence started in an earlier minibatch or continues into a later one.
    """

    def __init__(self, seq_id: int, s: int, t_begin: int, t_end: int):
        self.seq_id = seq_id
        self.s = s
        self.t_begin = t_begin
        self.t_end = t_end

    @property
    def is_gap(self) -> bool:
        return self.seq_id == GAP_SEQUENCE_ID

    @property
    def num_steps(self) -> int:
        return self.t_end - self.t_begin

    def clipped_range(self, num_time_steps: int):
        """The [begin, end) time range of the sequence restricted to the current minibatch."""
        t_begin = max(self.t_begin, 0)
        t_end = min(self.t_end, num_time_steps)
        return t_begin, t_end

    def __eq__(self, other):
        if not isinstance(other, SequenceInfo):
            return NotImplemented
        return (self.seq_id, self.s, self.t_begin, self.t_end) == (
            other.seq_id,
            other.s,
            other.t_begin,
            other.t_end,
        )

    def __repr__(self) -> str:
        return f"SequenceInfo(seq_id={self.seq_id}, s={self.s}, t=[{self.t_begin}, {self.t_end}))"


class SequenceLayout:
    """Describes how the columns of a minibatch tensor partition into parallel sequences.

    A minibatch holds num_parallel_sequences slots by num_time_steps steps; column t * P + s holds
    time step t of parallel slot s. Each slot can hold several sequences back to back.
    """

    def __init__(
            self,
            num_parallel_sequences: int,
            num_time_steps: int,
            sequences: Optional[List[SequenceInfo]] = None,
    ):
        if num_parallel_sequences < 1:
            raise ValueError("A SequenceLayout needs at least one parallel sequence.")
        if num_time_steps < 0:
            raise ValueError("num_time_steps must be non-negative.")
        self.num_parallel_sequences = num_parallel_sequences
        self.num_time_steps = num_time_steps
        self.sequences: List[SequenceInfo] = []
        for seq in sequences or []:
            self.add_sequence(seq)

    # ********************************************
    # *************** Constructors ***************
    # ********************************************

    @classmethod
    def frame_mode(cls, num_samples: int) -> "SequenceLayout":
        """Layout where every column is its own one-step sequence."""
        layout = cls(num_parallel_sequences=max(num_samples, 1), num_time_steps=1)
        for s in range(num_samples):
            layout.add_sequence(SequenceInfo(seq_id=s, s=s, t_begin=0, t_end=1))
        return layout

    @classmethod
    def single_sequence(cls, num_steps: int) -> "SequenceLayout":
        """Layout with one sequence spanning all columns; used for nodes that have no layout."""
        layout = cls(num_parallel_sequences=1, num_time_steps=num_steps)
        layout.add_sequence(SequenceInfo(seq_id=0, s=0, t_begin=0, t_end=num_steps))
        return layout

    # ********************************************
    # ************* Built-in Methods *************
    # ********************************************

    def add_sequence(self, seq: SequenceInfo):
        if not 0 <= seq.s < self.num_parallel_sequences:
            raise ValueError(
                f"Sequence {seq.seq_id} is in parallel slot {seq.s}, but the layout only has "
                f"{self.num_parallel_sequences} parallel sequences."
            )
        self.sequences.append(seq)

    @property
    def num_cols(self) -> int:
        return self.num_parallel_sequences * self.num_time_steps

    def get_all_sequences(self) -> List[SequenceInfo]:
        return list(self.sequences)

    def get_actual_num_samples(self) -> int:
        """Number of non-gap frames in the minibatch."""
        num_samples = 0
        for seq in self.sequences:
            if seq.is_gap:
                continue
            t_begin, t_end = seq.clipped_range(self.num_time_steps)
            num_samples += max(t_end - t_begin, 0)
        return num_samples

    def column_index(self, s: int, t: int) -> int:
        return t * self.num_parallel_sequences + s

    def __iter__(self) -> Iterator[SequenceInfo]:
        return iter(self.sequences)

    def __len__(self) -> int:
        return len(self.sequences)

    def __eq__(self, other):
        if not isinstance(other, SequenceLayout):
            return NotImplemented
        return (
                self.num_parallel_sequences == other.num_parallel_sequences
                and self.num_time_steps == other.num_time_steps
                and self.sequences == other.sequences
        )

    def __repr__(self) -> str:
        return (
            f"SequenceLayout(P={self.num_parallel_sequences}, T={self.num_time_steps}, "
            f"{len(self.sequences)} sequences)"
        )


def num_columns(t: torch.Tensor) -> int:
    """Number of columns of a value viewed as a (rows, columns) matrix."""
    if t.dim() == 0:
        return 1
    if t.dim() == 1:
        return 1
    return t.shape[-1]


def as_matrix(t: torch.Tensor) -> torch.Tensor:
    """Views a value as a (rows, columns) matrix: scalars are 1x1, vectors are one column."""
    if t.dim() == 0:
        return t.reshape(1, 1)
    if t.dim() == 1:
        return t.reshape(-1, 1)
    if t.dim() > 2:
        return t.reshape(-1, t.shape[-1])
    return t
